import json
from typing import Dict, Any, Optional

from chutes_nodes.errors import ExecutionError
from chutes_nodes.exec_http import send

from chutes_nodes.plugins.chutes.common import chute_url, require_api_key

OPTION_RENAMES = {"outputFormat": "output_format", "webhookUrl": "webhook_url"}


def _json_param(value: Any, name: str) -> Any:
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except ValueError as e:
        raise ExecutionError(f"Parameter '{name}' is not valid JSON: {e}")


def _options(params: Dict[str, Any]) -> Dict[str, Any]:
    options = dict(params.get("options") or {})
    options.pop("timeout", None)
    return {OPTION_RENAMES.get(k, k): v for k, v in options.items()}


async def run(params: Dict[str, Any], inputs: Dict[str, Any], creds: Optional[Dict[str, Any]], ctx):
    api_key = require_api_key(creds)
    base_url = chute_url(params, creds, "inference")
    operation = params.get("operation", "predict")

    if operation == "predict":
        body = {"input": _json_param(params["input"], "input"), **_options(params)}
        r = await send("POST", f"/v1/inference/{params['model_id']}/predict", body, base_url, api_key, ctx.http)
    elif operation == "batch":
        body = {"inputs": _json_param(params["batch_inputs"], "batch_inputs"), **_options(params)}
        r = await send("POST", f"/v1/inference/{params['model_id']}/batch", body, base_url, api_key, ctx.http)
    elif operation == "status":
        r = await send("GET", f"/v1/inference/jobs/{params['job_id']}", None, base_url, api_key, ctx.http)
    else:
        raise ExecutionError(f'Operation "{operation}" not supported for inference')
    return {"response": r.json()}
