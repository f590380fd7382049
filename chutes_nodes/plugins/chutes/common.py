import base64
import re
from typing import Any, Dict, Optional

from chutes_nodes.errors import ExecutionError
from chutes_nodes.exec_http import resolve_base_url

_DATA_URL_RE = re.compile(r"^data:([^;]+);base64,(.+)$", re.S)


def require_api_key(creds: Optional[Dict[str, Any]]) -> str:
    api_key = (creds or {}).get("api_key")
    if not api_key:
        raise ExecutionError("No Chutes.ai API key configured (set CHUTES_API_KEY)")
    return api_key


def chute_url(params: Dict[str, Any], creds: Optional[Dict[str, Any]], resource: str) -> str:
    return resolve_base_url(creds, resource, params.get("chute_url"))


def to_base64(value: Any, what: str = "image") -> str:
    """Accept raw bytes, a data URL or an already-encoded base64 string."""
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if not isinstance(value, str) or not value:
        raise ExecutionError(f"No {what} data found")
    if value.startswith(("http://", "https://")):
        raise ExecutionError(f"{what.capitalize()} URLs must be fetched by the host before calling the node")
    if value.startswith("data:"):
        m = _DATA_URL_RE.match(value)
        if not m:
            raise ExecutionError(f"Invalid data URL format. Expected: data:{what}/TYPE;base64,BASE64_DATA")
        return m.group(2)
    return value


def parse_size(size: Optional[str]):
    if not size:
        return None, None
    try:
        w, h = (int(s.strip()) for s in str(size).lower().split("x"))
    except ValueError:
        raise ExecutionError(f"Invalid size '{size}', expected WIDTHxHEIGHT")
    return w, h


def pick(source: Dict[str, Any], *keys: str) -> Dict[str, Any]:
    return {k: source[k] for k in keys if source.get(k) not in (None, "")}
