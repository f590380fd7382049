from openai import AsyncOpenAI
from typing import Dict, Any, Optional

from chutes_nodes.exec_http import MAX_RETRIES

from chutes_nodes.plugins.chutes.common import chute_url, require_api_key


async def run(params: Dict[str, Any], inputs: Dict[str, Any], creds: Optional[Dict[str, Any]], ctx):
    # the chute URL selects the model; the API still wants the field present
    client = AsyncOpenAI(
        api_key=require_api_key(creds),
        base_url=f"{chute_url(params, creds, 'textGeneration')}/v1",
        max_retries=MAX_RETRIES,
        http_client=ctx.http,
    )
    extra = {}
    if params.get("max_tokens"):
        extra["max_tokens"] = params["max_tokens"]
    if params.get("tools"):
        extra["tools"] = params["tools"]
    resp = await client.chat.completions.create(
        model=params.get("model", ""),
        messages=params["messages"],
        temperature=params.get("temperature", 0.7),
        **extra,
    )
    return {"response": resp.model_dump()}
