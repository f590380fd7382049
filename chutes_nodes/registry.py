from typing import Dict, List, Optional, Tuple
from .schema import NodeSpec


PLUGINS = "chutes_nodes.plugins.chutes"

_TOKEN = {"type": "token", "provider": "chutes"}


def _python_node(name: str, title: str, category: str, module: str, doc: str, inputs: dict) -> dict:
    return {
        "name": name,
        "title": title,
        "category": category,
        "doc": doc,
        "auth": _TOKEN,
        "inputs": inputs,
        "outputs": {"response": {"type": "any"}},
        "impl": {"type": "python", "module": f"{PLUGINS}.{module}"},
    }


def _chute_node(name: str, title: str, family: str, resource: str, doc: str) -> dict:
    return {
        "name": name,
        "title": title,
        "category": "Chutes",
        "doc": doc,
        "auth": _TOKEN,
        "inputs": {
            "prompt": {"type": "string", "required": True},
            "chute_url": {"type": "string"},
        },
        "outputs": {"endpoint": {"type": "string"}, "response": {"type": "any"}},
        "impl": {"type": "chute", "family": family, "resource": resource},
    }


BUILTIN_NODES: List[dict] = [
    _python_node(
        "chutes.text_generation", "Text generation", "Chutes", "text_generation",
        "Complete a prompt or continue a chat on an LLM chute",
        {"operation": {"type": "string", "default": "chat"}, "prompt": {"type": "string"},
         "messages": {"type": "array"}, "options": {"type": "object"}},
    ),
    _python_node(
        "chutes.chat_model", "Chat model", "Chutes", "chat_model",
        "OpenAI-compatible chat completion against an LLM chute",
        {"messages": {"type": "array", "required": True}, "model": {"type": "string"},
         "temperature": {"type": "number", "default": 0.7}, "tools": {"type": "array"}},
    ),
    _python_node(
        "chutes.image_generation", "Image generation", "Chutes", "image_generation",
        "Generate or edit images; edits discover the chute's edit endpoint",
        {"operation": {"type": "string", "default": "generate"}, "prompt": {"type": "string", "required": True},
         "size": {"type": "string"}, "n": {"type": "number", "default": 1}, "image": {"type": "file"},
         "images": {"type": "array", "items": {"type": "file"}}, "options": {"type": "object"}},
    ),
    _python_node(
        "chutes.video_generation", "Video generation", "Chutes", "video_generation",
        "Text-to-video or image-to-video on any video chute",
        {"operation": {"type": "string", "default": "text2video"}, "prompt": {"type": "string", "required": True},
         "image": {"type": "file"}, "options": {"type": "object"}},
    ),
    _python_node(
        "chutes.music_generation", "Music generation", "Chutes", "music_generation",
        None,
        {"prompt": {"type": "string", "required": True}, "lyrics": {"type": "string"}, "options": {"type": "object"}},
    ),
    _python_node(
        "chutes.text_to_speech", "Text to speech", "Chutes", "text_to_speech",
        "Synthesize speech with an audio chute",
        {"text": {"type": "string", "required": True}, "voice": {"type": "string"},
         "custom_voice": {"type": "string"}, "options": {"type": "object"}},
    ),
    _python_node(
        "chutes.speech_to_text", "Speech to text", "Chutes", "speech_to_text",
        "Transcribe audio with a Whisper-style chute",
        {"audio": {"type": "file", "required": True}, "options": {"type": "object"}},
    ),
    _python_node(
        "chutes.embeddings", "Embeddings", "Chutes", "embeddings",
        None,
        {"text": {"type": "any", "required": True}, "options": {"type": "object"}},
    ),
    _python_node(
        "chutes.content_moderation", "Content moderation", "Chutes", "content_moderation",
        "Classify text or an image for unsafe content",
        {"content": {"type": "string"}, "image": {"type": "file"}},
    ),
    _python_node(
        "chutes.inference", "Inference", "Chutes", "inference",
        "Raw predict, batch and job status calls",
        {"operation": {"type": "string", "default": "predict"}, "model_id": {"type": "string"},
         "input": {"type": "any"}, "batch_inputs": {"type": "any"}, "job_id": {"type": "string"},
         "options": {"type": "object"}},
    ),
    _python_node(
        "chutes.list_chutes", "List chutes", "Chutes", "list_chutes",
        "Public chutes grouped by kind",
        {"kind": {"type": "string"}, "limit": {"type": "number", "default": 500}},
    ),
    _chute_node("chutes.generate", "Generate", "generate", "imageGeneration",
                "POST a prompt to whatever endpoint the chute uses for generation"),
    _chute_node("chutes.video2video", "Video to video", "video2video", "videoGeneration",
                "Restyle a video (pass video as base64)"),
    _chute_node("chutes.keyframe_interp", "Keyframe interpolation", "keyframe_interp", "videoGeneration",
                "Interpolate between keyframes (pass images as a list)"),
]


_nodes: Dict[Tuple[str, str], NodeSpec] = {}
_loaded = False


def _ensure_builtins():
    global _loaded
    if not _loaded:
        _loaded = True
        for d in BUILTIN_NODES:
            spec = NodeSpec.model_validate(d)
            _nodes.setdefault((spec.name, spec.version), spec)


def install_nodes(specs: List[dict]) -> List[NodeSpec]:
    installed = []
    for d in specs:
        spec = NodeSpec.model_validate(d)
        _nodes[(spec.name, spec.version)] = spec
        installed.append(spec)
    return installed


def _infer_required_keys(spec: NodeSpec) -> List[str]:
    if spec.auth.type == "none":
        return []
    if (spec.auth.provider or "").lower() == "chutes":
        return ["CHUTES_API_KEY"]
    return []


def _version_key(version: str):
    return tuple(int(p) if p.isdigit() else 0 for p in version.split("."))


def list_nodes(category: Optional[str] = None) -> List[dict]:
    _ensure_builtins()
    out: List[dict] = []
    for spec in sorted(_nodes.values(), key=lambda s: (s.name, _version_key(s.version))):
        if category and spec.category != category:
            continue
        d = {
            "name": spec.name,
            "version": spec.version,
            "title": spec.title,
            "category": spec.category,
            "enabled": True,
        }
        doc = spec.doc
        if not doc and spec.inputs:
            doc = "Inputs: " + ", ".join(list(spec.inputs)[:4])
        if doc:
            d["doc"] = doc
        req_keys = _infer_required_keys(spec)
        if req_keys:
            d["required_keys"] = req_keys
        out.append(d)
    return out


def get_node(name: str, version: Optional[str] = None) -> Optional[NodeSpec]:
    _ensure_builtins()
    if version:
        return _nodes.get((name, version))
    matches = [s for (n, _), s in _nodes.items() if n == name]
    if not matches:
        return None
    return max(matches, key=lambda s: _version_key(s.version))
