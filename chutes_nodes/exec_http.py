import asyncio
import base64
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from .errors import ChutesApiError, ExecutionError, RemoteRateLimited, RemoteRejected, RemoteUnavailable, UnsupportedOperation
from .openapi_registry import discover_chute_capabilities
from .request_adapter import RequestPlan, build_request_body
from .schema import NodeSpec, ImplChute

logger = logging.getLogger(__name__)

VERSION = "0.1.0"
USER_AGENT = f"chutes-hub/{VERSION}"
MAX_RETRIES = 3
BASE_DELAY_SEC = 1.0
RATE_LIMIT_LOW_WATER = 10
DEFAULT_TIMEOUT_SEC = 600.0

# resource type -> chute subdomain
CHUTE_SUBDOMAINS = {
    "textGeneration": "llm",
    "imageGeneration": "image",
    "videoGeneration": "video",
    "textToSpeech": "audio",
    "speechToText": "stt",
    "musicGeneration": "audio",
    "embeddings": "llm",
    "contentModeration": "llm",
    "inference": "llm",
}

Sleep = Callable[[float], Awaitable[Any]]


def resolve_base_url(creds: Optional[Dict[str, Any]], resource: Optional[str] = None, custom_url: Optional[str] = None) -> str:
    """Chute URL from the node parameter, then the credential, then the resource default."""
    creds = creds or {}
    if custom_url:
        return custom_url.rstrip("/")
    if creds.get("custom_url"):
        return str(creds["custom_url"]).rstrip("/")
    subdomain = CHUTE_SUBDOMAINS.get(resource or "", "llm")
    if creds.get("environment") == "sandbox":
        return f"https://sandbox-{subdomain}.chutes.ai"
    return f"https://{subdomain}.chutes.ai"


def build_headers(api_key: str) -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
        "Accept": "application/json",
        "User-Agent": USER_AGENT,
        "X-Chutes-Source": "chutes-hub",
    }


def _error_message(r: httpx.Response) -> str:
    try:
        data = r.json()
    except ValueError:
        return r.text[:500] or r.reason_phrase
    if isinstance(data, dict):
        for key in ("detail", "message", "error"):
            if data.get(key):
                return str(data[key])
    return str(data)[:500]


def _error_from_response(r: httpx.Response) -> ChutesApiError:
    detail = _error_message(r)
    message = f"Chutes.ai API error: {r.status_code} {detail}"
    if r.status_code == 429:
        return RemoteRateLimited(429, message, "Rate limit exceeded; retries exhausted")
    if r.status_code >= 500:
        return RemoteUnavailable(r.status_code, message, "The chute failed or is unavailable")
    return RemoteRejected(r.status_code, message, "Check your API key and parameters")


def _warn_if_low(r: httpx.Response) -> None:
    remaining = r.headers.get("x-ratelimit-remaining")
    if remaining is None:
        return
    try:
        if int(remaining) < RATE_LIMIT_LOW_WATER:
            logger.warning(f"Low Chutes.ai rate limit: {remaining} requests remaining")
    except ValueError:
        pass


async def send(
    method: str,
    path: str,
    body: Optional[Dict[str, Any]],
    base_url: str,
    api_key: str,
    http: Optional[httpx.AsyncClient] = None,
    *,
    params: Optional[Dict[str, Any]] = None,
    timeout: float = DEFAULT_TIMEOUT_SEC,
    max_retries: int = MAX_RETRIES,
    base_delay: float = BASE_DELAY_SEC,
    sleep: Sleep = asyncio.sleep,
) -> httpx.Response:
    """Issue one call against a chute, retrying only on 429."""
    if http is None:
        async with httpx.AsyncClient() as client:
            return await send(
                method, path, body, base_url, api_key, client,
                params=params, timeout=timeout, max_retries=max_retries, base_delay=base_delay, sleep=sleep,
            )

    method = method.upper()
    url = f"{base_url.rstrip('/')}{path}"
    headers = build_headers(api_key)
    json_body = None if method == "GET" else (body or {})

    attempt = 0
    while True:
        try:
            r = await http.request(method, url, params=params, headers=headers, json=json_body, timeout=timeout)
        except httpx.TimeoutException as e:
            raise RemoteUnavailable(None, f"Chutes.ai API error: request to {url} timed out") from e
        except httpx.HTTPError as e:
            raise RemoteUnavailable(None, f"Chutes.ai API error: {e}") from e
        except httpx.InvalidURL as e:
            raise RemoteRejected(None, f"Chutes.ai API error: invalid URL {url}: {e}", "Check the chute URL") from e

        _warn_if_low(r)
        if r.status_code == 429 and attempt < max_retries:
            delay = base_delay * 2 ** attempt
            attempt += 1
            logger.warning(f"Rate limited by {url}; retry {attempt}/{max_retries} in {delay:.1f}s")
            await sleep(delay)
            continue
        if r.status_code >= 400:
            raise _error_from_response(r)
        return r


async def send_plan(plan: RequestPlan, base_url: str, api_key: str, http: Optional[httpx.AsyncClient] = None, **kwargs: Any) -> httpx.Response:
    """Send a plan flat; resend once wrapped if the chute rejects the flat shape."""
    try:
        return await send(plan.method, plan.endpoint, plan.body, base_url, api_key, http, **kwargs)
    except RemoteRejected as e:
        if plan.wrapped_body is None or e.status_code not in (400, 422):
            raise
        logger.info(f"Flat body rejected by {plan.endpoint} ({e.status_code}); retrying wrapped")
        return await send(plan.method, plan.endpoint, plan.wrapped_body, base_url, api_key, http, **kwargs)


def decode_response(r: httpx.Response) -> Any:
    ctype = r.headers.get("content-type", "")
    if "application/json" in ctype:
        return r.json()
    if ctype.startswith("text/"):
        return {"raw": r.text}
    return {
        "binary": {
            "data": base64.b64encode(r.content).decode("ascii"),
            "mime_type": ctype.split(";")[0].strip() or "application/octet-stream",
            "size": len(r.content),
        }
    }


async def exec_chute(spec: NodeSpec, params: Dict[str, Any], inputs: Dict[str, Any], creds: Optional[Dict[str, Any]], ctx):
    impl: ImplChute = spec.impl  # type: ignore
    creds = creds or {}
    api_key = creds.get("api_key")
    if not api_key:
        raise ExecutionError("No Chutes.ai API key configured (set CHUTES_API_KEY)")

    fields = dict(params)
    base_url = resolve_base_url(creds, impl.resource, fields.pop("chute_url", None) or impl.base_url)
    capabilities = await discover_chute_capabilities(base_url, api_key, ctx.http)
    plan = build_request_body(impl.family, capabilities, fields, base_url)
    if plan is None:
        raise UnsupportedOperation(f"Operation '{impl.family}' is not available for {base_url}")

    r = await send_plan(
        plan, base_url, api_key, ctx.http,
        max_retries=spec.retries.max,
        base_delay=spec.retries.base_delay_sec,
    )
    return {"endpoint": plan.endpoint, "response": decode_response(r)}
