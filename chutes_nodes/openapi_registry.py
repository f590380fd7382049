"""Capability discovery for chutes.

Each chute publishes (or fails to publish) its own ``/openapi.json``. The
document is parsed into :class:`EndpointDescriptor` values and classified per
operation family into a :class:`ChuteCapabilities`. When the document is
missing or tells us nothing useful we fall back to the canonical topology and
let the remote service reject what it cannot do.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Tuple

import httpx
from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

SCHEMA_TIMEOUT_SEC = 10.0
WRAPPER_KEY = "input_args"

PROMPT_FIELDS = ("prompt", "text")
IMAGE_FIELDS = ("image", "image_b64", "image_url")
VIDEO_FIELDS = ("video", "video_b64", "video_url")

# operation family names
TEXT2VIDEO = "text2video"
IMAGE2VIDEO = "image2video"
IMAGE_EDIT = "image_edit"
VIDEO2VIDEO = "video2video"
KEYFRAME_INTERP = "keyframe_interp"
GENERATE = "generate"
MUSIC = "music"

FAMILY_ALIASES = {"edit": IMAGE_EDIT}


class OpenAPIDocument(BaseModel):
    paths: Dict[str, Dict[str, Any]]
    components: Dict[str, Any] = {}


@dataclass(frozen=True)
class EndpointDescriptor:
    path: str
    method: str = "POST"
    declared_fields: FrozenSet[str] = frozenset()
    field_types: Mapping[str, str] = field(default_factory=dict)
    wrapper: Optional[str] = None

    def declares(self, *names: str) -> bool:
        return any(n in self.declared_fields for n in names)

    def declares_array(self, name: str) -> bool:
        return self.field_types.get(name) == "array"


def _endpoint(path: str, fields: Dict[str, str]) -> EndpointDescriptor:
    return EndpointDescriptor(path=path, declared_fields=frozenset(fields), field_types=dict(fields))


_GENERATE_FIELDS = {
    "prompt": "string",
    "image": "string",
    "image_b64": "string",
    "image_url": "string",
    "video_b64": "string",
    "video_url": "string",
    "image_b64s": "array",
    "width": "integer",
    "height": "integer",
    "num_frames": "integer",
    "frame_rate": "integer",
    "negative_prompt": "string",
    "num_inference_steps": "integer",
    "cfg_guidance_scale": "number",
    "true_cfg_scale": "number",
    "seed": "integer",
    "distilled": "boolean",
}

FALLBACK_ENDPOINTS: Tuple[EndpointDescriptor, ...] = (
    _endpoint("/generate", _GENERATE_FIELDS),
    _endpoint("/text2video", {"prompt": "string"}),
    _endpoint("/image2video", {"prompt": "string", "image_b64": "string"}),
    _endpoint("/edit", {"prompt": "string", "image_b64s": "array"}),
)

DEFAULT_ENDPOINTS: Tuple[EndpointDescriptor, ...] = FALLBACK_ENDPOINTS + (
    _endpoint("/video2video", {"prompt": "string", "video_b64": "string"}),
    _endpoint("/keyframes", {"prompt": "string", "image_b64s": "array"}),
)


# ---------------------------------------------------------------------------
# Family rules
# ---------------------------------------------------------------------------


def _has_prompt(ep: EndpointDescriptor) -> bool:
    return ep.declares(*PROMPT_FIELDS)


def _has_image(ep: EndpointDescriptor) -> bool:
    return ep.declares(*IMAGE_FIELDS)


def _t2v_signature(ep: EndpointDescriptor) -> bool:
    return _has_prompt(ep) and not _has_image(ep) and not ep.declares("image_b64s")


def _i2v_signature(ep: EndpointDescriptor) -> bool:
    return _has_prompt(ep) and _has_image(ep)


def _edit_signature(ep: EndpointDescriptor) -> bool:
    if ep.path == "/generate" and _has_prompt(ep) and ep.declares_array("image_b64s"):
        return True
    return "edit" in ep.path and _has_prompt(ep) and (_has_image(ep) or ep.declares("image_b64s"))


def _v2v_signature(ep: EndpointDescriptor) -> bool:
    return _has_prompt(ep) and ep.declares(*VIDEO_FIELDS)


def _keyframe_signature(ep: EndpointDescriptor) -> bool:
    # first/last frame pairs or an explicit keyframe list
    return ep.declares("first_frame", "keyframes") or (
        ep.declares("first_image", "start_image") and ep.declares("last_image", "end_image")
    )


def _music_signature(ep: EndpointDescriptor) -> bool:
    return ep.declares("style_prompt", "lyrics")


@dataclass(frozen=True)
class FamilyRule:
    aliases: Tuple[str, ...]
    signature: Callable[[EndpointDescriptor], bool]
    default_path: str
    supports_attr: str
    path_attr: str


FAMILY_RULES: Dict[str, FamilyRule] = {
    TEXT2VIDEO: FamilyRule(("/text2video", "/t2v"), _t2v_signature, "/generate",
                           "supports_text_to_video", "text_to_video_path"),
    IMAGE2VIDEO: FamilyRule(("/image2video", "/i2v", "/animate"), _i2v_signature, "/generate",
                            "supports_image_to_video", "image_to_video_path"),
    IMAGE_EDIT: FamilyRule(("/edit", "/v1/images/edits"), _edit_signature, "/edit",
                           "supports_image_edit", "image_edit_path"),
    VIDEO2VIDEO: FamilyRule(("/video2video", "/v2v"), _v2v_signature, "/video2video",
                            "supports_video_to_video", "video_to_video_path"),
    KEYFRAME_INTERP: FamilyRule(("/keyframes", "/interpolate"), _keyframe_signature, "/keyframes",
                                "supports_keyframe_interp", "keyframe_interp_path"),
    GENERATE: FamilyRule(("/generate",), _has_prompt, "/generate",
                         "supports_generate", "generate_path"),
    MUSIC: FamilyRule(("/generate",), _music_signature, "/generate",
                      "supports_music", "music_path"),
}

# aliases that name one family unambiguously; /generate is shared
_EXPLICIT_ALIASES = {
    alias: family
    for family, rule in FAMILY_RULES.items()
    if family not in (GENERATE, MUSIC)
    for alias in rule.aliases
}


def normalize_family(family: str) -> str:
    return FAMILY_ALIASES.get(family, family)


@dataclass(frozen=True)
class ChuteCapabilities:
    endpoints: Tuple[EndpointDescriptor, ...]
    supports_text_to_video: bool = True
    supports_image_to_video: bool = True
    supports_image_edit: bool = True
    supports_video_to_video: bool = True
    supports_keyframe_interp: bool = True
    supports_generate: bool = True
    supports_music: bool = True
    text_to_video_path: str = "/generate"
    image_to_video_path: str = "/generate"
    image_edit_path: str = "/edit"
    video_to_video_path: str = "/video2video"
    keyframe_interp_path: str = "/keyframes"
    generate_path: str = "/generate"
    music_path: str = "/generate"
    discovered: bool = False

    def supports(self, family: str) -> bool:
        rule = FAMILY_RULES.get(normalize_family(family))
        return bool(rule and getattr(self, rule.supports_attr))

    def path_for(self, family: str) -> Optional[str]:
        rule = FAMILY_RULES.get(normalize_family(family))
        return getattr(self, rule.path_attr) if rule else None

    def endpoint(self, path: str) -> Optional[EndpointDescriptor]:
        for ep in self.endpoints:
            if ep.path == path:
                return ep
        return None

    def summary(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"discovered": self.discovered, "endpoints": [e.path for e in self.endpoints]}
        for family, rule in FAMILY_RULES.items():
            out[family] = {"supported": getattr(self, rule.supports_attr), "path": getattr(self, rule.path_attr)}
        return out


def default_capabilities() -> ChuteCapabilities:
    return ChuteCapabilities(endpoints=DEFAULT_ENDPOINTS)


# ---------------------------------------------------------------------------
# Schema fetch
# ---------------------------------------------------------------------------


async def fetch_schema(base_url: str, api_key: str, http: Optional[httpx.AsyncClient] = None) -> Optional[OpenAPIDocument]:
    """Fetch ``{base_url}/openapi.json``; ``None`` when it cannot be used."""
    url = f"{base_url.rstrip('/')}/openapi.json"
    headers = {"Authorization": f"Bearer {api_key}"}
    try:
        if http is None:
            async with httpx.AsyncClient(timeout=SCHEMA_TIMEOUT_SEC) as client:
                r = await client.get(url, headers=headers)
        else:
            r = await http.get(url, headers=headers, timeout=SCHEMA_TIMEOUT_SEC)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.warning(f"Error fetching OpenAPI schema from {base_url}: {e}")
        return None

    if r.status_code != 200:
        logger.warning(f"Failed to fetch OpenAPI schema from {base_url}: {r.status_code}")
        return None
    try:
        doc = OpenAPIDocument.model_validate(r.json())
    except (ValueError, ValidationError) as e:
        logger.warning(f"Unusable OpenAPI schema from {base_url}: {e}")
        return None
    logger.debug(f"Parsed schema from {base_url} with paths: {list(doc.paths)}")
    return doc


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _resolve_ref(schema: Any, components: Dict[str, Any], depth: int = 0) -> Dict[str, Any]:
    if not isinstance(schema, dict):
        return {}
    ref = schema.get("$ref")
    if ref is None or depth > 8:
        return schema
    if not isinstance(ref, str) or not ref.startswith("#/components/"):
        return {}
    node: Any = components
    for part in ref[len("#/components/"):].split("/"):
        node = node.get(part) if isinstance(node, dict) else None
    return _resolve_ref(node, components, depth + 1)


def _schema_type(schema: Dict[str, Any]) -> str:
    t = schema.get("type")
    if isinstance(t, str):
        return t
    # pydantic emits anyOf [{type: x}, {type: null}] for optionals
    options = schema.get("anyOf")
    for option in options if isinstance(options, list) else []:
        if isinstance(option, dict) and isinstance(option.get("type"), str) and option["type"] != "null":
            return option["type"]
    return "string"


def _body_fields(op: Dict[str, Any], components: Dict[str, Any]) -> Tuple[Dict[str, str], Optional[str]]:
    content: Any = op.get("requestBody")
    for key in ("content", "application/json"):
        content = content.get(key) if isinstance(content, dict) else None
    if not isinstance(content, dict):
        return {}, None
    schema = _resolve_ref(content.get("schema"), components)
    props = schema.get("properties")
    if not isinstance(props, dict):
        return {}, None

    wrapped = _resolve_ref(props.get(WRAPPER_KEY), components)
    if wrapped.get("type") == "object" and isinstance(wrapped.get("properties"), dict):
        nested = wrapped["properties"]
        return {n: _schema_type(_resolve_ref(s, components)) for n, s in nested.items()}, WRAPPER_KEY

    return {n: _schema_type(_resolve_ref(s, components)) for n, s in props.items()}, None


def is_placeholder_schema(doc: OpenAPIDocument) -> bool:
    return any(p.startswith("{") or "{path}" in p for p in doc.paths)


def parse_endpoints(doc: OpenAPIDocument) -> List[EndpointDescriptor]:
    if is_placeholder_schema(doc):
        logger.warning(f"Placeholder schema with paths {list(doc.paths)}; using fallback")
        return []

    endpoints: List[EndpointDescriptor] = []
    for path, methods in doc.paths.items():
        if not isinstance(methods, dict):
            continue
        for method, op in methods.items():
            if method.lower() not in ("post", "put") or not isinstance(op, dict):
                continue
            fields, wrapper = _body_fields(op, doc.components)
            endpoints.append(
                EndpointDescriptor(
                    path=path,
                    method=method.upper(),
                    declared_fields=frozenset(fields),
                    field_types=fields,
                    wrapper=wrapper,
                )
            )
    return endpoints


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def _has_inference_endpoint(endpoints: List[EndpointDescriptor]) -> bool:
    canonical = {"/generate", "/text2video", "/image2video", "/edit"}
    return any(e.path in canonical or e.path.startswith("/v1/") for e in endpoints)


def _match_family(family: str, rule: FamilyRule, endpoints: List[EndpointDescriptor]) -> Optional[str]:
    for alias in rule.aliases:
        for ep in endpoints:
            if ep.path != alias:
                continue
            # a shared alias only counts when the fields agree or nothing is declared
            if alias in _EXPLICIT_ALIASES or not ep.declared_fields or rule.signature(ep):
                return ep.path
    for ep in endpoints:
        owner = _EXPLICIT_ALIASES.get(ep.path)
        if owner and owner != family:
            continue
        if rule.signature(ep):
            return ep.path
    return None


def classify_endpoints(endpoints: List[EndpointDescriptor], discovered: bool = True) -> ChuteCapabilities:
    endpoints = list(endpoints)
    candidates = endpoints
    if not _has_inference_endpoint(endpoints):
        # inconclusive document: default topology, nothing is matched
        logger.info("No inference endpoints found, adding fallback endpoints")
        known = {e.path for e in endpoints}
        endpoints.extend(e for e in FALLBACK_ENDPOINTS if e.path not in known)
        candidates = []

    known_paths = {e.path for e in endpoints}
    values: Dict[str, Any] = {}
    for family, rule in FAMILY_RULES.items():
        path = _match_family(family, rule, candidates)
        if path:
            logger.debug(f"Detected {family} support at {path}")
            values[rule.supports_attr] = True
            values[rule.path_attr] = path
        else:
            values[rule.supports_attr] = rule.default_path in known_paths
            values[rule.path_attr] = rule.default_path

    return ChuteCapabilities(endpoints=tuple(endpoints), discovered=discovered, **values)


async def discover_chute_capabilities(base_url: str, api_key: str, http: Optional[httpx.AsyncClient] = None) -> ChuteCapabilities:
    """Discover what a chute can do. Never raises."""
    doc = await fetch_schema(base_url, api_key, http)
    if doc is None:
        logger.info(f"Schema unavailable for {base_url}; assuming default capabilities")
        return default_capabilities()
    try:
        caps = classify_endpoints(parse_endpoints(doc))
    except Exception as e:
        logger.warning(f"Could not classify OpenAPI schema from {base_url}: {e}; assuming default capabilities")
        return default_capabilities()
    logger.info(
        f"Discovered {base_url}: endpoints={[e.path for e in caps.endpoints]} "
        f"t2v={caps.supports_text_to_video}@{caps.text_to_video_path} "
        f"i2v={caps.supports_image_to_video}@{caps.image_to_video_path} "
        f"edit={caps.supports_image_edit}@{caps.image_edit_path}"
    )
    return caps
