"""Text-to-video and image-to-video against any video chute.

The chute's contract is discovered at call time; frames are derived from
duration and fps and, for frame-constrained models, rounded by the adapter.
"""

from typing import Dict, Any, Optional

from chutes_nodes.errors import ExecutionError, UnsupportedOperation
from chutes_nodes.exec_http import decode_response, send_plan
from chutes_nodes.openapi_registry import IMAGE2VIDEO, TEXT2VIDEO, discover_chute_capabilities
from chutes_nodes.request_adapter import build_request_body

from chutes_nodes.plugins.chutes.common import chute_url, pick, require_api_key, to_base64

DEFAULT_DURATION_SEC = 5
DEFAULT_FPS = 24


def video_fields(params: Dict[str, Any]) -> Dict[str, Any]:
    options = params.get("options") or {}
    fields: Dict[str, Any] = {"prompt": params["prompt"]}
    fields.update(pick(options, "resolution", "steps", "seed", "negative_prompt", "guidance_scale"))

    duration = float(options.get("duration", DEFAULT_DURATION_SEC))
    fps = int(options.get("fps", DEFAULT_FPS))
    fields["frames"] = int(duration * fps + 0.5)
    fields["fps"] = fps
    return fields


async def run(params: Dict[str, Any], inputs: Dict[str, Any], creds: Optional[Dict[str, Any]], ctx):
    api_key = require_api_key(creds)
    base_url = chute_url(params, creds, "videoGeneration")
    operation = params.get("operation", TEXT2VIDEO)
    if operation not in (TEXT2VIDEO, IMAGE2VIDEO):
        raise ExecutionError(f'Operation "{operation}" not supported for video generation')

    fields = video_fields(params)
    if operation == IMAGE2VIDEO:
        fields["image"] = to_base64(params.get("image"))

    capabilities = await discover_chute_capabilities(base_url, api_key, ctx.http)
    plan = build_request_body(operation, capabilities, fields, base_url)
    if plan is None:
        raise UnsupportedOperation(f"Operation '{operation}' is not available for {base_url}")

    r = await send_plan(plan, base_url, api_key, ctx.http)
    return {"endpoint": plan.endpoint, "response": decode_response(r)}
