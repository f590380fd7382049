from typing import Dict, Any, Optional

from chutes_nodes.exec_http import send

from chutes_nodes.plugins.chutes.common import chute_url, require_api_key


async def run(params: Dict[str, Any], inputs: Dict[str, Any], creds: Optional[Dict[str, Any]], ctx):
    api_key = require_api_key(creds)
    base_url = chute_url(params, creds, "embeddings")
    # chute URLs pick the model; the field must still be sent as null
    body: Dict[str, Any] = {"input": params["text"], "model": None}
    encoding_format = (params.get("options") or {}).get("encoding_format")
    if encoding_format:
        body["encoding_format"] = encoding_format
    r = await send("POST", "/v1/embeddings", body, base_url, api_key, ctx.http)
    return {"response": r.json()}
