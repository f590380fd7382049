import asyncio
import logging
from typing import Any, Dict, Optional
from .schema import NodeSpec, ImplChute, ImplPython
from .errors import ExecutionError, NodeTimeout
from .exec_http import exec_chute
from .exec_python import exec_python


class Context:
    def __init__(self, http, logger=None, cred_resolver=None):
        self.http = http
        self.log = logger or logging.getLogger("chutes_nodes")
        self.cred_resolver = cred_resolver


async def _dispatch(spec: NodeSpec, params: Dict[str, Any], inputs: Dict[str, Any], creds, ctx: Context) -> Dict[str, Any]:
    if isinstance(spec.impl, ImplChute):
        return await exec_chute(spec, params, inputs, creds, ctx)
    elif isinstance(spec.impl, ImplPython):
        return await exec_python(spec, params, inputs, creds, ctx)

    raise ExecutionError(f"Unknown impl for {spec.name}")


async def run_node(
    spec: NodeSpec,
    params: Dict[str, Any],
    inputs: Dict[str, Any],
    ctx: Context,
    timeout: Optional[float] = None,
) -> Dict[str, Any]:
    """Run one node; ``timeout`` (seconds) bounds the whole call."""
    params = dict(params or {})
    creds = None
    credential_id = params.pop("credential_id", None)
    if spec.auth and spec.auth.type != "none" and ctx.cred_resolver:
        creds = await ctx.cred_resolver(spec.auth.provider, credential_id)

    if not timeout:
        return await _dispatch(spec, params, inputs, creds, ctx)
    try:
        return await asyncio.wait_for(_dispatch(spec, params, inputs, creds, ctx), timeout)
    except asyncio.TimeoutError as e:
        raise NodeTimeout(
            f"Request timeout: {spec.title} exceeded {timeout:g} seconds. "
            "The chute may be hanging; increase the timeout or check its status."
        ) from e
