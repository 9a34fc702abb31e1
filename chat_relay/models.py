from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .catalog import ModelInfo
from .repository import Image, Message, Session


def _require(value: Optional[str], message: str) -> str:
    if value is None or not value.strip():
        raise ValueError(message)
    return value


class ImageDTO(BaseModel):
    type: str  # 'base64' | 'url'
    data: str
    media_type: Optional[str] = None

    def to_domain(self) -> Image:
        return Image(type=self.type, data=self.data, media_type=self.media_type)

    @classmethod
    def from_domain(cls, image: Image) -> "ImageDTO":
        return cls(type=image.type, data=image.data, media_type=image.media_type)


class ChatRequest(BaseModel):
    session_id: str = Field("", validate_default=True)
    message: str = Field("", validate_default=True)
    model: Optional[str] = None  # falls back to the session's model
    images: Optional[List[ImageDTO]] = None

    @field_validator("session_id")
    @classmethod
    def _session_id_required(cls, v: str) -> str:
        return _require(v, "Session ID is required")

    @field_validator("message")
    @classmethod
    def _message_required(cls, v: str) -> str:
        return _require(v, "Message content is required")

    def domain_images(self) -> Tuple[Image, ...]:
        return tuple(i.to_domain() for i in self.images or [])


class CreateSessionRequest(BaseModel):
    user_id: str = Field("", validate_default=True)
    model: str = Field("", validate_default=True)
    title: Optional[str] = None  # generated from the first message when omitted

    @field_validator("user_id")
    @classmethod
    def _user_id_required(cls, v: str) -> str:
        return _require(v, "User ID is required")

    @field_validator("model")
    @classmethod
    def _model_required(cls, v: str) -> str:
        return _require(v, "Model selection is required")


class UpdateModelRequest(BaseModel):
    model: str = Field("", validate_default=True)

    @field_validator("model")
    @classmethod
    def _model_required(cls, v: str) -> str:
        return _require(v, "Model selection is required")


class UpdateTitleRequest(BaseModel):
    title: str = Field("", validate_default=True)

    @field_validator("title")
    @classmethod
    def _title_required(cls, v: str) -> str:
        return _require(v, "Title is required")


class MessageDTO(BaseModel):
    role: str
    content: str
    images: List[ImageDTO] = []
    model: Optional[str] = None
    created_at: str

    @classmethod
    def from_domain(cls, m: Message) -> "MessageDTO":
        return cls(
            role=m.role,
            content=m.content,
            images=[ImageDTO.from_domain(i) for i in m.images],
            model=m.model,
            created_at=m.created_at.isoformat(),
        )


class ChatResponse(BaseModel):
    session_id: str
    assistant_message: MessageDTO
    model: str
    total_messages: int


class SessionResponse(BaseModel):
    id: str
    user_id: str
    title: Optional[str] = None
    selected_model: str
    messages: List[MessageDTO]
    message_count: int
    created_at: str
    updated_at: str

    @classmethod
    def from_domain(cls, s: Session) -> "SessionResponse":
        return cls(
            id=s.id,
            user_id=s.user_id,
            title=s.title,
            selected_model=s.selected_model,
            messages=[MessageDTO.from_domain(m) for m in s.messages],
            message_count=len(s.messages),
            created_at=s.created_at.isoformat(),
            updated_at=s.updated_at.isoformat(),
        )


class ModelDTO(BaseModel):
    id: str
    name: str
    description: str
    available: bool
    supports_vision: bool

    @classmethod
    def from_domain(cls, m: ModelInfo) -> "ModelDTO":
        return cls(
            id=m.id,
            name=m.name,
            description=m.description,
            available=m.available,
            supports_vision=m.supports_vision,
        )


class VisionSupportDTO(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_id: str
    supports_vision: bool


class ErrorResponse(BaseModel):
    timestamp: str
    status: int
    error: str
    message: str
    details: Optional[Dict[str, str]] = None


# Explicit exports
__all__ = [
    "ImageDTO",
    "ChatRequest",
    "CreateSessionRequest",
    "UpdateModelRequest",
    "UpdateTitleRequest",
    "MessageDTO",
    "ChatResponse",
    "SessionResponse",
    "ModelDTO",
    "VisionSupportDTO",
    "ErrorResponse",
]
