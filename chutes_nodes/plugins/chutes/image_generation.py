from typing import Dict, Any, List, Optional

from chutes_nodes.errors import ExecutionError, UnsupportedOperation
from chutes_nodes.exec_http import decode_response, send, send_plan
from chutes_nodes.openapi_registry import IMAGE_EDIT, discover_chute_capabilities
from chutes_nodes.request_adapter import build_request_body

from chutes_nodes.plugins.chutes.common import chute_url, parse_size, pick, require_api_key, to_base64

OPTIONAL_FIELDS = ("negative_prompt", "guidance_scale", "response_format", "quality", "style")


def _base_fields(params: Dict[str, Any]) -> Dict[str, Any]:
    fields: Dict[str, Any] = {"prompt": params["prompt"]}
    width, height = parse_size(params.get("size"))
    if width and height:
        fields["width"], fields["height"] = width, height
    fields.update(pick(params.get("options") or {}, *OPTIONAL_FIELDS))
    return fields


def _seeded(fields: Dict[str, Any], seed: Optional[int], i: int) -> Dict[str, Any]:
    # one request per image; consecutive seeds keep a batch reproducible
    if seed is None:
        return dict(fields)
    return {**fields, "seed": int(seed) + i}


async def _generate(params, base_url, api_key, ctx) -> List[Any]:
    fields = _base_fields(params)
    seed = (params.get("options") or {}).get("seed")
    out = []
    for i in range(max(1, int(params.get("n") or 1))):
        r = await send("POST", "/generate", _seeded(fields, seed, i), base_url, api_key, ctx.http)
        out.append(decode_response(r))
    return out


async def _edit(params, base_url, api_key, ctx) -> List[Any]:
    fields = _base_fields(params)
    if params.get("images"):
        fields["images"] = [to_base64(i) for i in params["images"]]
    else:
        fields["image"] = to_base64(params.get("image"))

    capabilities = await discover_chute_capabilities(base_url, api_key, ctx.http)
    seed = (params.get("options") or {}).get("seed")
    out = []
    for i in range(max(1, int(params.get("n") or 1))):
        plan = build_request_body(IMAGE_EDIT, capabilities, _seeded(fields, seed, i), base_url)
        if plan is None:
            raise UnsupportedOperation(f"Image editing is not available for {base_url}")
        r = await send_plan(plan, base_url, api_key, ctx.http)
        out.append(decode_response(r))
    return out


async def run(params: Dict[str, Any], inputs: Dict[str, Any], creds: Optional[Dict[str, Any]], ctx):
    api_key = require_api_key(creds)
    base_url = chute_url(params, creds, "imageGeneration")
    operation = params.get("operation", "generate")
    if operation == "generate":
        results = await _generate(params, base_url, api_key, ctx)
    elif operation == "edit":
        results = await _edit(params, base_url, api_key, ctx)
    else:
        raise ExecutionError(f'Operation "{operation}" not supported for image generation')
    if len(results) == 1:
        return {"response": results[0]}
    return {"images": results}
