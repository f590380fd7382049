from typing import Dict, Any, List, Optional

from chutes_nodes.exec_http import send

from chutes_nodes.plugins.chutes.common import chute_url, require_api_key, to_base64


def summarize_chunks(chunks: List[Dict[str, Any]], include_chunks: bool = False) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "text": "".join(c.get("text") or "" for c in chunks).strip(),
        "duration": chunks[-1].get("end", 0) if chunks else 0,
        "chunk_count": len(chunks),
    }
    if include_chunks:
        out["chunks"] = chunks
    return out


async def run(params: Dict[str, Any], inputs: Dict[str, Any], creds: Optional[Dict[str, Any]], ctx):
    api_key = require_api_key(creds)
    base_url = chute_url(params, creds, "speechToText")
    options = params.get("options") or {}

    body: Dict[str, Any] = {"audio_b64": to_base64(params.get("audio"), what="audio")}
    if options.get("language"):
        body["language"] = options["language"]

    r = await send("POST", "/transcribe", body, base_url, api_key, ctx.http)
    data = r.json()
    chunks = data if isinstance(data, list) else []
    return {"response": summarize_chunks(chunks, bool(options.get("include_chunks")))}
