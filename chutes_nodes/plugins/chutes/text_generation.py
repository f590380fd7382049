from typing import Dict, Any, Optional

from chutes_nodes.errors import ExecutionError
from chutes_nodes.exec_http import send

from chutes_nodes.plugins.chutes.common import chute_url, require_api_key

DEFAULT_MAX_TOKENS = 1000

OPTION_RENAMES = {
    "maxTokens": "max_tokens",
    "topP": "top_p",
    "frequencyPenalty": "frequency_penalty",
    "presencePenalty": "presence_penalty",
}


def build_chat_body(operation: str, params: Dict[str, Any]) -> Dict[str, Any]:
    options = dict(params.get("options") or {})
    stop = options.pop("stopSequences", None)
    response_format = options.pop("responseFormat", None)
    options.pop("timeout", None)

    body: Dict[str, Any] = {OPTION_RENAMES.get(k, k): v for k, v in options.items() if v not in (None, "")}
    body.setdefault("max_tokens", DEFAULT_MAX_TOKENS)
    # streaming responses are not consumed
    body["stream"] = False
    if stop:
        body["stop"] = [s.strip() for s in str(stop).split(",") if s.strip()]
    if response_format:
        body["response_format"] = {"type": response_format}

    if operation == "complete":
        body["messages"] = [{"role": "user", "content": params["prompt"]}]
    elif operation == "chat":
        body["messages"] = list(params.get("messages") or [])
    else:
        raise ExecutionError(f'Operation "{operation}" not supported for text generation')
    return body


async def run(params: Dict[str, Any], inputs: Dict[str, Any], creds: Optional[Dict[str, Any]], ctx):
    api_key = require_api_key(creds)
    base_url = chute_url(params, creds, "textGeneration")
    body = build_chat_body(params.get("operation", "chat"), params)
    r = await send("POST", "/v1/chat/completions", body, base_url, api_key, ctx.http)
    return {"response": r.json()}
