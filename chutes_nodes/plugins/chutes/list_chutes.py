"""List public chutes and group them by what they do.

``standard_template`` is authoritative where it is set; most non-LLM chutes
have none, so names and descriptions are matched against model families.
"""

from typing import Dict, Any, List, Optional

from chutes_nodes.errors import ExecutionError
from chutes_nodes.exec_http import send

from chutes_nodes.plugins.chutes.common import require_api_key

CATALOG_URL = "https://api.chutes.ai"
DEFAULT_LIMIT = 500

KINDS = ("llm", "image", "video", "tts", "stt", "music", "embedding", "moderation")

TEMPLATE_KINDS = {
    "vllm": "llm",
    "diffusion": "image",
    "video": "video",
    "tei": "embedding",
    "embedding": "embedding",
    "moderation": "moderation",
}

# checked in order; the first kind whose keywords match wins
KEYWORDS = (
    ("moderation", ("moderation", "safety", "guard", "nsfw", "toxic", "hate-speech", "hatespeech", "detoxify")),
    ("embedding", ("embedding", "embed", "bge", "gte", "minilm", "mpnet", "mxbai", "stella", "sentence-transformer")),
    ("stt", ("whisper", "stt", "speech-to-text", "transcri", "parakeet", "canary")),
    ("music", ("music", "song", "diffrhythm", "musicgen", "ace-step", "yue")),
    ("tts", ("tts", "text-to-speech", "kokoro", "xtts", "chatterbox", "orpheus", "fish", "vibevoice", "csm")),
    ("video", ("video", "i2v", "t2v", "img2vid", "text2video", "wan", "ltx", "hunyuanvideo", "cogvideo",
               "mochi", "svd", "skyreels", "animatediff")),
    ("image", ("image", "flux", "stable-diffusion", "sdxl", "hidream", "pixart", "kandinsky", "kolors",
               "playground", "animagine", "cascade", "omnigen", "sana", "lumina")),
)


def chute_url(slug: str) -> str:
    return f"https://{slug}.chutes.ai"


def classify_chute(chute: Dict[str, Any]) -> Optional[str]:
    template = (chute.get("standard_template") or "").lower()
    text = " ".join(
        (chute.get(k) or "").lower() for k in ("name", "tagline", "description")
    )
    kind = TEMPLATE_KINDS.get(template)
    # guard models ship on vllm but belong with moderation
    if kind == "llm" and any(k in text for k in ("guard", "safety", "shield")):
        return "moderation"
    if kind and kind != "image":
        return kind
    for candidate, words in KEYWORDS:
        if any(w in text for w in words):
            if kind == "image" and candidate not in ("video", "image"):
                continue
            return candidate
    return kind


def format_chute(chute: Dict[str, Any]) -> Dict[str, Any]:
    tagline = chute.get("tagline") or ""
    return {
        "name": f"{chute.get('name')} - {tagline[:80]}" if tagline else chute.get("name"),
        "url": chute_url(chute.get("slug", "")),
        "kind": classify_chute(chute),
        "template": chute.get("standard_template") or "none",
        "owner": (chute.get("user") or {}).get("username") or "unknown",
    }


def filter_chutes(items: List[Dict[str, Any]], kind: Optional[str] = None) -> List[Dict[str, Any]]:
    out = []
    for chute in items:
        if not chute.get("public", False):
            continue
        entry = format_chute(chute)
        if kind and entry["kind"] != kind:
            continue
        out.append(entry)
    return out


async def run(params: Dict[str, Any], inputs: Dict[str, Any], creds: Optional[Dict[str, Any]], ctx):
    api_key = require_api_key(creds)
    kind = params.get("kind") or None
    if kind and kind not in KINDS:
        raise ExecutionError(f"Unknown chute kind '{kind}', expected one of: {', '.join(KINDS)}")
    query = {
        "include_public": str(params.get("include_public", True)).lower(),
        "limit": int(params.get("limit") or DEFAULT_LIMIT),
    }
    r = await send("GET", "/chutes/", None, CATALOG_URL, api_key, ctx.http, params=query)
    items = (r.json() or {}).get("items") or []
    return {"chutes": filter_chutes(items, kind)}
