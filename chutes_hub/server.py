import logging
import sys
from typing import Optional

import httpx
from mcp.server.fastmcp import FastMCP

from chutes_nodes.errors import ChutesApiError, ExecutionError
from chutes_nodes.exec_http import resolve_base_url
from chutes_nodes.openapi_registry import discover_chute_capabilities
from chutes_nodes.registry import get_node, list_nodes
from chutes_nodes.runtime import Context, run_node
from .config import Settings, get_settings


mcp = FastMCP("chutes-hub")


def _setup_logger(level: str = "INFO") -> logging.Logger:
	logger = logging.getLogger("chutes_nodes")
	logger.setLevel(level)
	if not logger.handlers:
		sh = logging.StreamHandler(sys.stderr)
		sh.setLevel(level)
		sh.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
		logger.addHandler(sh)
	return logger


def make_cred_resolver(settings: Settings):
	async def resolve(provider: Optional[str], credential_id: Optional[str]) -> dict:
		# one credential per process; credential_id is accepted for API parity
		return settings.credentials()

	return resolve


@mcp.tool()
def health() -> str:
	"""Simple health check."""
	return "ok"


@mcp.tool()
def list_chute_nodes(category: Optional[str] = None) -> list[dict]:
	"""List the installed chute nodes."""
	return list_nodes(category)


@mcp.tool()
async def discover_chute(chute_url: str) -> dict:
	"""Report which operations a chute supports and on which paths."""
	settings = get_settings()
	if not settings.chutes_api_key:
		return {"status": "error", "error": "CHUTES_API_KEY is not set"}
	base_url = resolve_base_url(settings.credentials(), custom_url=chute_url)
	caps = await discover_chute_capabilities(base_url, settings.chutes_api_key)
	return {"status": "ok", "base_url": base_url, "capabilities": caps.summary()}


@mcp.tool()
async def run_chute_node(name: str, params: dict, version: Optional[str] = None, timeout_sec: Optional[float] = None) -> dict:
	"""Run one chute node with the given parameters."""
	settings = get_settings()
	spec = get_node(name, version)
	if spec is None:
		return {"status": "error", "error": f"node {name} not found"}
	async with httpx.AsyncClient() as http:
		ctx = Context(http=http, logger=_setup_logger(settings.log_level), cred_resolver=make_cred_resolver(settings))
		try:
			out = await run_node(spec, params, {}, ctx, timeout=timeout_sec or settings.timeout_sec)
		except (ExecutionError, ChutesApiError) as e:
			return {"status": "error", "error": str(e)}
	return {"status": "ok", "outputs": out}


if __name__ == "__main__":
	_setup_logger(get_settings().log_level)
	mcp.run()
