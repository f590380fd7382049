"""Translate a flat bag of semantic fields into one chute's wire format.

The adapter is a whitelist: fields outside the semantic vocabulary never reach
the remote service. Which wire name a field gets depends on what the resolved
endpoint declares; when nothing is declared the canonical name is used.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import ExecutionError
from .openapi_registry import (
    FAMILY_RULES,
    IMAGE_EDIT,
    IMAGE_FIELDS,
    KEYFRAME_INTERP,
    MUSIC,
    ChuteCapabilities,
    EndpointDescriptor,
    normalize_family,
)

logger = logging.getLogger(__name__)

# semantic name -> wire aliases; the first alias is the canonical wire name
SEMANTIC_ALIASES: Dict[str, Tuple[str, ...]] = {
    "prompt": ("prompt", "text", "description"),
    "image": ("image", "image_b64", "image_url", "input_image"),
    "images": ("image_b64s", "images"),
    "video": ("video", "video_b64", "video_url"),
    "audio": ("audio_b64", "audio"),
    "resolution": ("resolution", "size", "dimensions"),
    "width": ("width",),
    "height": ("height",),
    "steps": ("steps", "num_inference_steps", "sampling_steps"),
    "fps": ("fps", "frame_rate", "frames_per_second"),
    "frames": ("frames", "num_frames", "frame_num"),
    "seed": ("seed", "random_seed"),
    "n": ("n", "num_images", "num_outputs"),
    "response_format": ("response_format", "format", "output_format"),
    "guidance_scale": ("guidance_scale", "cfg_guidance_scale", "true_cfg_scale", "cfg_scale"),
    "negative_prompt": ("negative_prompt", "neg_prompt"),
    "quality": ("quality",),
    "style": ("style",),
    "lyrics": ("lyrics",),
    "cfg_strength": ("cfg_strength",),
    "duration": ("duration",),
}

FAMILY_ALIAS_OVERRIDES: Dict[str, Dict[str, Tuple[str, ...]]] = {
    MUSIC: {
        "prompt": ("style_prompt",),
        "duration": ("music_duration",),
        "steps": ("steps",),
    },
}

# chunked VAE decoding clicks at chunk boundaries; mp3 adds compression artifacts
FAMILY_FLAGS: Dict[str, Dict[str, Any]] = {
    MUSIC: {"chunked": False, "file_type": "wav"},
}

FRAME_CONSTRAINED_MODELS = ("ltx",)
DIMENSION_MULTIPLE = 64
IMAGE_ARRAY_FIELDS = ("image_b64s", "images")


@dataclass(frozen=True)
class RequestPlan:
    endpoint: str
    body: Dict[str, Any]
    method: str = "POST"
    wrapped_body: Optional[Dict[str, Any]] = None


def round_frames_8n1(frames: int) -> int:
    """Round up to the nearest ``8n + 1`` with ``n >= 1``."""
    n = max(1, math.ceil((int(frames) - 1) / 8))
    return 8 * n + 1


def is_frame_constrained(base_url: Optional[str]) -> bool:
    url = (base_url or "").lower()
    return any(m in url for m in FRAME_CONSTRAINED_MODELS)


def parse_resolution(value: Any) -> Optional[Tuple[int, int]]:
    if not isinstance(value, str):
        return None
    for sep in ("*", "x", "X"):
        parts = value.split(sep)
        if len(parts) == 2:
            try:
                return int(parts[0].strip()), int(parts[1].strip())
            except ValueError:
                return None
    return None


def _round_dimension(value: int) -> int:
    return max(DIMENSION_MULTIPLE, int(value / DIMENSION_MULTIPLE + 0.5) * DIMENSION_MULTIPLE)


def _wire_name(aliases: Tuple[str, ...], endpoint: EndpointDescriptor, strict: bool) -> Optional[str]:
    for alias in aliases:
        if alias in endpoint.declared_fields:
            return alias
    if strict and endpoint.declared_fields:
        return None
    return aliases[0]


def _uses_image_array(family: str, endpoint: EndpointDescriptor) -> bool:
    has_array = endpoint.declares(*IMAGE_ARRAY_FIELDS)
    has_scalar = endpoint.declares(*IMAGE_FIELDS, "input_image")
    if family in (IMAGE_EDIT, KEYFRAME_INTERP):
        return has_array or not has_scalar
    return has_array and not has_scalar


def _array_field(endpoint: EndpointDescriptor) -> str:
    if "images" in endpoint.declared_fields and "image_b64s" not in endpoint.declared_fields:
        return "images"
    return "image_b64s"


def _image_entry(family: str, endpoint: EndpointDescriptor, values: Dict[str, Any]) -> Optional[Tuple[str, Any]]:
    images = values.get("images")
    image = values.get("image")
    if isinstance(images, (list, tuple)):
        if image is not None:
            logger.debug("Both image and images supplied; using images")
        return _array_field(endpoint), list(images)
    if image is None:
        return None
    if _uses_image_array(family, endpoint):
        logger.debug(f"Wrapping single image as {_array_field(endpoint)} array for {family}")
        return _array_field(endpoint), [image]
    return _wire_name(SEMANTIC_ALIASES["image"], endpoint, strict=False), image


def _describe(body: Mapping[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for k, v in body.items():
        if isinstance(v, list) and v and all(isinstance(i, str) and len(i) > 256 for i in v):
            out[k] = f"[{len(v)} base64 items]"
        elif isinstance(v, str) and len(v) > 256:
            out[k] = f"[{len(v)} chars]"
        else:
            out[k] = v
    return out


def build_request_body(
    family: str,
    capabilities: ChuteCapabilities,
    fields: Mapping[str, Any],
    base_url_hint: Optional[str] = None,
) -> Optional[RequestPlan]:
    """Build the request for ``family`` against the discovered chute.

    Returns ``None`` when the chute does not support the family; callers must
    treat that as a terminal error.
    """
    family = normalize_family(family)
    if family not in FAMILY_RULES or not capabilities.supports(family):
        logger.info(f"Operation {family} not supported by this chute")
        return None

    path = capabilities.path_for(family)
    endpoint = capabilities.endpoint(path) or EndpointDescriptor(path=path)
    strict = path.startswith("/v1/")
    aliases = {**SEMANTIC_ALIASES, **FAMILY_ALIAS_OVERRIDES.get(family, {})}

    values: Dict[str, Any] = {}
    for key, value in fields.items():
        if value is None:
            continue
        if key not in aliases:
            logger.debug(f"Dropping unrecognized field '{key}'")
            continue
        values[key] = value

    if "frames" in values and is_frame_constrained(base_url_hint):
        try:
            frames = int(round(float(values["frames"])))
        except (TypeError, ValueError):
            raise ExecutionError(f"Invalid frames value {values['frames']!r}; expected a number")
        rounded = round_frames_8n1(frames)
        if rounded != frames:
            logger.info(f"Frame-constrained model: rounding frames {frames} -> {rounded} (8n+1)")
        values["frames"] = rounded

    dims = parse_resolution(values.get("resolution"))
    if dims and endpoint.declares("width", "height") and not endpoint.declares("resolution"):
        width, height = _round_dimension(dims[0]), _round_dimension(dims[1])
        logger.info(f"Converted resolution {values['resolution']!r} to width={width}, height={height}")
        values["width"], values["height"] = width, height
        del values["resolution"]

    # OpenAI-style endpoints take "WxH" in size
    if "width" in values and "height" in values and "size" in endpoint.declared_fields and "resolution" not in values:
        values["resolution"] = f"{values['width']}x{values['height']}"
        logger.info(f"Converted width/height to size={values['resolution']!r}")
        for dim in ("width", "height"):
            if dim not in endpoint.declared_fields:
                del values[dim]

    body: Dict[str, Any] = {}
    for key, value in values.items():
        if key in ("image", "images"):
            continue
        wire = _wire_name(aliases[key], endpoint, strict)
        if wire is None:
            logger.debug(f"Skipping unmapped field '{key}' for strict endpoint {path}")
            continue
        body.setdefault(wire, value)

    entry = _image_entry(family, endpoint, values)
    if entry:
        body[entry[0]] = entry[1]

    body.update(FAMILY_FLAGS.get(family, {}))

    wrapped = {endpoint.wrapper: dict(body)} if endpoint.wrapper else None
    logger.info(f"Endpoint: {path}, body: {_describe(body)}")
    return RequestPlan(endpoint=path, body=body, wrapped_body=wrapped)
