"""OpenRouter request/response shapes and the conversation serializer.

Outgoing messages carry either a plain string or a list of content parts
(text first, then one ``image_url`` part per image). The assistant content in
a completion response has the same two shapes and is resolved once, by
:func:`resolve_content`, into :class:`PlainText` or :class:`Parts`.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import BaseModel

from .repository import Image, Message


MAX_TOKENS = 2048
TEMPERATURE = 0.7
IMAGE_DETAIL = "auto"


class ImageUrl(BaseModel):
    url: str
    detail: str = IMAGE_DETAIL


class ContentPart(BaseModel):
    type: str  # 'text' | 'image_url'
    text: Optional[str] = None
    image_url: Optional[ImageUrl] = None


class WireMessage(BaseModel):
    role: str
    content: Union[str, List[ContentPart], None] = None


class CompletionRequest(BaseModel):
    model: str
    messages: List[WireMessage]
    stream: bool = False
    max_tokens: int = MAX_TOKENS
    temperature: float = TEMPERATURE

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class Choice(BaseModel):
    index: int = 0
    message: Optional[WireMessage] = None
    finish_reason: Optional[str] = None


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class CompletionResponse(BaseModel):
    id: Optional[str] = None
    model: Optional[str] = None
    choices: Optional[List[Choice]] = None
    usage: Optional[Usage] = None


@dataclass(frozen=True)
class PlainText:
    text: str


@dataclass(frozen=True)
class Parts:
    parts: List[ContentPart]

    @property
    def text(self) -> str:
        return "".join(p.text or "" for p in self.parts if p.type == "text")


def resolve_content(content: Union[str, List[ContentPart], None]) -> Union[PlainText, Parts]:
    if isinstance(content, list):
        return Parts(parts=content)
    return PlainText(text=content or "")


def image_part(image: Image) -> ContentPart:
    return ContentPart(type="image_url", image_url=ImageUrl(url=image.data_uri()))


def multimodal_message(role: str, text: Optional[str], images: Sequence[Image]) -> WireMessage:
    parts: List[ContentPart] = []
    if text is not None and text.strip():
        parts.append(ContentPart(type="text", text=text))
    parts.extend(image_part(i) for i in images)
    return WireMessage(role=role, content=parts)


def build_messages(
    history: Sequence[Message], text: str, images: Optional[Sequence[Image]] = None
) -> List[WireMessage]:
    """Serialize prior turns plus the new user turn, oldest first."""
    messages: List[WireMessage] = []
    for m in history:
        if m.is_multimodal:
            messages.append(multimodal_message(m.role, m.content, m.images))
        else:
            messages.append(WireMessage(role=m.role, content=m.content))

    if images:
        messages.append(multimodal_message("user", text, images))
    else:
        messages.append(WireMessage(role="user", content=text))
    return messages


def build_request(
    model: str,
    history: Sequence[Message],
    text: str,
    images: Optional[Sequence[Image]] = None,
    stream: bool = False,
) -> CompletionRequest:
    return CompletionRequest(
        model=model,
        messages=build_messages(history, text, images),
        stream=stream,
    )
