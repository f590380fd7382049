from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ValidationError
import httpx
import logging
from typing import Optional
from chutes_hub.config import get_settings
from chutes_nodes.errors import ChutesApiError, ExecutionError, NodeTimeout, RemoteRejected, UnsupportedOperation
from chutes_nodes.exec_http import resolve_base_url
from chutes_nodes.openapi_registry import discover_chute_capabilities
from chutes_nodes.registry import list_nodes, install_nodes, get_node
from chutes_nodes.runtime import run_node, Context


router = APIRouter(prefix="/api/nodes")
logger = logging.getLogger("chutes_nodes")


class InstallIn(BaseModel):
    specs: list[dict]


@router.get("")
def api_list_nodes(category: Optional[str] = None):
    return list_nodes(category)


@router.post("/install")
def api_install_nodes(body: InstallIn):
    try:
        install_nodes(body.specs)
    except ValidationError as e:
        raise HTTPException(422, str(e))
    return {"ok": True, "count": len(body.specs)}


class RunIn(BaseModel):
    name: str
    version: Optional[str] = None
    params: dict = {}
    inputs: dict = {}
    credential_id: Optional[str] = None
    timeout_sec: Optional[float] = None


async def default_cred_resolver(provider: Optional[str], credential_id: Optional[str]):
    return get_settings().credentials()


def _status_for(e: ChutesApiError) -> int:
    if e.status_code is None and isinstance(e, RemoteRejected):
        return 400
    if e.status_code is None or e.status_code >= 500:
        return 502
    return e.status_code


@router.post("/run")
async def api_run_node(body: RunIn):
    spec = get_node(body.name, body.version)
    if not spec:
        raise HTTPException(404, f"node {body.name} not found")

    async with httpx.AsyncClient() as http:
        ctx = Context(http=http, logger=logger, cred_resolver=default_cred_resolver)
        try:
            out = await run_node(
                spec,
                {**body.params, "credential_id": body.credential_id},
                body.inputs,
                ctx,
                timeout=body.timeout_sec or get_settings().timeout_sec,
            )
        except NodeTimeout as e:
            raise HTTPException(504, str(e))
        except UnsupportedOperation as e:
            raise HTTPException(400, str(e))
        except ChutesApiError as e:
            raise HTTPException(_status_for(e), {"message": e.message, "description": e.description})
        except ExecutionError as e:
            raise HTTPException(400, str(e))
        return {"outputs": out}


class DiscoverIn(BaseModel):
    chute_url: str


@router.post("/discover")
async def api_discover(body: DiscoverIn):
    settings = get_settings()
    if not settings.chutes_api_key:
        raise HTTPException(400, "CHUTES_API_KEY is not set")
    base_url = resolve_base_url(settings.credentials(), custom_url=body.chute_url)
    async with httpx.AsyncClient() as http:
        caps = await discover_chute_capabilities(base_url, settings.chutes_api_key, http)
    return {"base_url": base_url, "capabilities": caps.summary()}
