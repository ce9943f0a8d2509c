from __future__ import annotations

import uuid
from typing import Annotated, Any, Literal, Optional, Union
from urllib.parse import urlparse

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    ValidationError,
    field_validator,
    model_serializer,
    model_validator,
)
from pydantic.alias_generators import to_camel

from giftflow.services.errors import ContentValidationError

from .themes import Theme


NodeType = Literal["hero", "choice", "text-input", "reveal", "media", "end"]
NODE_TYPES: tuple[str, ...] = ("hero", "choice", "text-input", "reveal", "media", "end")
TERMINAL_TYPE = "end"
INTERACTIVE_TYPES = frozenset({"choice", "text-input"})

MIN_FLOW_NODES = 1
MAX_FLOW_NODES = 20

# Image urls carrying this prefix are search queries waiting to be resolved.
PLACEHOLDER_PREFIX = "UNSPLASH:"


class ContentModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def _check_http_url(value: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("must be an absolute http(s) URL")
    return value


class ResolvedImage(ContentModel):
    url: str
    alt: str
    attribution: Optional[str] = None
    attribution_url: Optional[str] = None
    photographer_name: Optional[str] = None
    photographer_url: Optional[str] = None
    source: Optional[Literal["unsplash", "upload", "manual"]] = None
    asset_id: Optional[str] = None

    @field_validator("url")
    @classmethod
    def _url_is_absolute(cls, value: str) -> str:
        return _check_http_url(value)

    @field_validator("attribution_url", "photographer_url")
    @classmethod
    def _optional_url_is_absolute(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else _check_http_url(value)

    @field_validator("asset_id")
    @classmethod
    def _asset_id_is_uuid(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return str(uuid.UUID(value))


class DeferredImage(ContentModel):
    """An image still described by a search query.

    Read from and written back as ``{"url": "UNSPLASH:<query>", "alt": ...}`` so
    stored content keeps the placeholder that renderers know to skip.
    """

    query: str = Field(..., min_length=1)
    alt: str = ""

    @field_validator("query", mode="before")
    @classmethod
    def _strip_query(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @model_validator(mode="before")
    @classmethod
    def _from_placeholder(cls, data: Any) -> Any:
        if isinstance(data, dict) and "query" not in data:
            url = str(data.get("url") or "")
            if url.startswith(PLACEHOLDER_PREFIX):
                return {**data, "query": url[len(PLACEHOLDER_PREFIX):].strip()}
        return data

    @model_serializer
    def _as_placeholder(self) -> dict[str, Any]:
        return {"url": self.placeholder, "alt": self.alt}

    @property
    def placeholder(self) -> str:
        return f"{PLACEHOLDER_PREFIX}{self.query}"


def _image_kind(value: Any) -> str:
    if isinstance(value, DeferredImage):
        return "deferred"
    if isinstance(value, dict):
        if "query" in value or str(value.get("url") or "").startswith(PLACEHOLDER_PREFIX):
            return "deferred"
    return "resolved"


ImageField = Annotated[
    Union[Annotated[ResolvedImage, Tag("resolved")], Annotated[DeferredImage, Tag("deferred")]],
    Discriminator(_image_kind),
]


class HeroContent(ContentModel):
    headline: str = Field(..., min_length=1, max_length=200)
    body: Optional[str] = Field(None, max_length=1000)
    background_color: Optional[str] = None
    background_image: Optional[ImageField] = None


class ChoiceOption(ContentModel):
    id: str = Field(..., min_length=1)
    label: str = Field(..., min_length=1, max_length=100)


class ChoiceContent(ContentModel):
    question: str = Field(..., min_length=1, max_length=200)
    options: list[ChoiceOption] = Field(..., min_length=2, max_length=4)
    allow_multiple: bool = Field(False, strict=True)


class TextInputContent(ContentModel):
    question: str = Field(..., min_length=1, max_length=200)
    placeholder: Optional[str] = Field(None, max_length=100)
    max_length: int = Field(200, ge=1, le=500, strict=True)


class CallToAction(ContentModel):
    label: str = Field(..., min_length=1, max_length=50)
    url: str

    @field_validator("url")
    @classmethod
    def _url_is_absolute(cls, value: str) -> str:
        return _check_http_url(value)


class RevealContent(ContentModel):
    headline: str = Field(..., min_length=1, max_length=200)
    body: Optional[str] = Field(None, max_length=1000)
    cta: Optional[CallToAction] = None
    confetti: bool = Field(True, strict=True)
    background_image: Optional[ImageField] = None


class MediaContent(ContentModel):
    image: ImageField
    caption: Optional[str] = Field(None, max_length=200)


class EndContent(ContentModel):
    headline: str = Field(..., min_length=1, max_length=200)
    body: Optional[str] = Field(None, max_length=500)
    share_prompt: Optional[str] = Field(None, max_length=100)


CONTENT_MODELS: dict[str, type[ContentModel]] = {
    "hero": HeroContent,
    "choice": ChoiceContent,
    "text-input": TextInputContent,
    "reveal": RevealContent,
    "media": MediaContent,
    "end": EndContent,
}


class _NodeBase(ContentModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    order_index: Optional[int] = Field(None, ge=0, strict=True)


class HeroNode(_NodeBase):
    type: Literal["hero"]
    content: HeroContent


class ChoiceNode(_NodeBase):
    type: Literal["choice"]
    content: ChoiceContent


class TextInputNode(_NodeBase):
    type: Literal["text-input"]
    content: TextInputContent


class RevealNode(_NodeBase):
    type: Literal["reveal"]
    content: RevealContent


class MediaNode(_NodeBase):
    type: Literal["media"]
    content: MediaContent


class EndNode(_NodeBase):
    type: Literal["end"]
    content: EndContent


FlowNode = Annotated[
    Union[HeroNode, ChoiceNode, TextInputNode, RevealNode, MediaNode, EndNode],
    Field(discriminator="type"),
]


class FlowSpec(ContentModel):
    title: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    theme: Theme
    nodes: list[FlowNode] = Field(..., min_length=MIN_FLOW_NODES, max_length=MAX_FLOW_NODES)

    @model_validator(mode="after")
    def _dense_order(self) -> "FlowSpec":
        for position, node in enumerate(self.nodes):
            if node.order_index is None:
                node.order_index = position
            elif node.order_index != position:
                raise ValueError(
                    f"nodes[{position}].orderIndex must be {position}, got {node.order_index}"
                )
        return self


def format_validation_errors(exc: ValidationError) -> list[str]:
    errors: list[str] = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc") or ()) or "content"
        errors.append(f"{loc}: {err.get('msg')}")
    return errors


def dump_content(content: ContentModel) -> dict[str, Any]:
    return content.model_dump(mode="json", by_alias=True, exclude_none=True)


def dump_flow(flow: FlowSpec) -> dict[str, Any]:
    return flow.model_dump(mode="json", by_alias=True, exclude_none=True)


def parse_content(node_type: str, content: Any) -> ContentModel:
    model = CONTENT_MODELS.get(node_type)
    if model is None:
        raise ContentValidationError([f"type: unknown node type '{node_type}'"])
    if not isinstance(content, dict):
        raise ContentValidationError(["content: must be an object"])
    try:
        return model.model_validate(content)
    except ValidationError as exc:
        raise ContentValidationError(format_validation_errors(exc)) from exc


def validate_content(node_type: str, content: Any) -> dict[str, Any]:
    """Validate ``content`` against ``node_type`` and return its canonical JSON form."""
    return dump_content(parse_content(node_type, content))


def validate_flow(payload: Any) -> FlowSpec:
    if not isinstance(payload, dict):
        raise ContentValidationError(["flow: must be an object"])
    try:
        return FlowSpec.model_validate(payload)
    except ValidationError as exc:
        raise ContentValidationError(format_validation_errors(exc)) from exc
