from typing import Dict, Any, Optional, Tuple

from chutes_nodes.errors import ExecutionError
from chutes_nodes.exec_http import send

from chutes_nodes.plugins.chutes.common import chute_url, require_api_key, to_base64

DEFAULT_MODERATION_URL = "https://chutes-nsfw-classifier.chutes.ai"


def moderation_request(base_url: str, content: str, image: Any) -> Tuple[str, Dict[str, Any]]:
    if "hate-speech-detector" in base_url:
        # text only, batch shaped
        if not content:
            raise ExecutionError("Text content is required for hate-speech-detector (image moderation not supported by this chute)")
        return "/predict", {"texts": [content]}
    if image:
        return "/image", {"image_b64": to_base64(image)}
    if content:
        return "/text", {"text": content}
    raise ExecutionError("Either content (text) or image must be provided for moderation")


async def run(params: Dict[str, Any], inputs: Dict[str, Any], creds: Optional[Dict[str, Any]], ctx):
    api_key = require_api_key(creds)
    base_url = chute_url({"chute_url": params.get("chute_url") or DEFAULT_MODERATION_URL}, creds, "contentModeration")
    path, body = moderation_request(base_url, params.get("content") or "", params.get("image"))
    r = await send("POST", path, body, base_url, api_key, ctx.http)
    data = r.json()
    if path == "/predict" and isinstance(data, list) and data:
        return {"response": data[0]}
    return {"response": data}
