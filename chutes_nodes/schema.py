from pydantic import BaseModel, Field, field_validator
from typing import Dict, List, Literal, Optional, Any, Union


class Retries(BaseModel):
    max: int = 3
    base_delay_sec: float = 1.0


class IOField(BaseModel):
    type: Literal["string", "number", "boolean", "object", "array", "file", "any"] = "string"
    required: bool = False
    default: Optional[Any] = None
    items: Optional["IOField"] = None
    description: Optional[str] = None


IOField.model_rebuild()


class AuthSpec(BaseModel):
    type: Literal["none", "token"] = "none"
    provider: Optional[str] = None
    scopes: List[str] = []


ResourceType = Literal[
    "textGeneration",
    "imageGeneration",
    "videoGeneration",
    "textToSpeech",
    "speechToText",
    "musicGeneration",
    "embeddings",
    "contentModeration",
    "inference",
]


class ImplChute(BaseModel):
    """Generic discover -> adapt -> send pipeline against a single chute."""

    type: Literal["chute"] = "chute"
    family: str
    resource: ResourceType = "inference"
    base_url: Optional[str] = None


class ImplPython(BaseModel):
    type: Literal["python"] = "python"
    module: str
    function: str = "run"


Impl = Union[ImplChute, ImplPython]


class NodeSpec(BaseModel):
    name: str
    version: str = "1.0.0"
    title: str
    category: str
    doc: Optional[str] = None
    auth: AuthSpec = AuthSpec()
    inputs: Dict[str, IOField] = Field(default_factory=dict)
    outputs: Dict[str, IOField] = Field(default_factory=dict)
    retries: Retries = Retries()
    impl: Impl = Field(discriminator="type")

    @field_validator("name")
    @classmethod
    def name_must_have_dot(cls, v):
        if "." not in v:
            raise ValueError("name should be namespaced like provider.action")
        return v
