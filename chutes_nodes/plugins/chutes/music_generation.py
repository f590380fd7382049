from typing import Dict, Any, Optional

from chutes_nodes.errors import UnsupportedOperation
from chutes_nodes.exec_http import decode_response, send_plan
from chutes_nodes.openapi_registry import MUSIC, discover_chute_capabilities
from chutes_nodes.request_adapter import build_request_body

from chutes_nodes.plugins.chutes.common import chute_url, pick, require_api_key, to_base64


async def run(params: Dict[str, Any], inputs: Dict[str, Any], creds: Optional[Dict[str, Any]], ctx):
    api_key = require_api_key(creds)
    base_url = chute_url(params, creds, "musicGeneration")
    options = params.get("options") or {}

    fields: Dict[str, Any] = {"prompt": params["prompt"]}
    fields.update(pick(params, "lyrics"))
    fields.update(pick(options, "duration", "cfg_strength", "steps", "seed"))
    if options.get("reference_audio"):
        fields["audio"] = to_base64(options["reference_audio"], what="audio")

    capabilities = await discover_chute_capabilities(base_url, api_key, ctx.http)
    plan = build_request_body(MUSIC, capabilities, fields, base_url)
    if plan is None:
        raise UnsupportedOperation(f"Music generation is not available for {base_url}")

    r = await send_plan(plan, base_url, api_key, ctx.http)
    return {"response": decode_response(r)}
