from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional, Sequence, Tuple

from .catalog import ModelCatalog, ModelInfo
from .config import Settings, get_settings
from .errors import (
    ChatError,
    ImageTooLarge,
    InvalidImage,
    InvalidModel,
    MessageLimitExceeded,
    SessionLimitExceeded,
    SessionNotFound,
    VisionNotSupported,
)
from .openrouter import OpenRouterClient
from .repository import Image, Message, Session, SessionStore, SQLiteSessionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChatTurn:
    session_id: str
    assistant_message: Message
    model: str
    total_messages: int


class ChatService:
    """Singleton-style chat orchestrator over the session store and OpenRouter."""

    _instance: Optional["ChatService"] = None

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[SessionStore] = None,
        client: Optional[OpenRouterClient] = None,
    ) -> None:
        settings = settings or get_settings()
        self._settings = settings
        self._catalog = ModelCatalog(settings.models)
        self._store: SessionStore = store or SQLiteSessionStore(settings.chat_db_path)
        self._client = client or OpenRouterClient(settings)

    @classmethod
    def instance(cls) -> "ChatService":
        if cls._instance is None:
            cls._instance = ChatService()
        return cls._instance

    def repository(self) -> SessionStore:
        return self._store

    def catalog(self) -> ModelCatalog:
        return self._catalog

    # Models

    def list_models(self) -> List[ModelInfo]:
        return self._catalog.list()

    def list_vision_models(self) -> List[ModelInfo]:
        return self._catalog.vision_models()

    def model_supports_vision(self, model_id: str) -> bool:
        return self._catalog.supports_vision(model_id)

    # Sessions

    def create_session(
        self, user_id: str, model: str, title: Optional[str] = None
    ) -> Session:
        logger.info("Creating new session for user: %s", user_id)
        if not self._catalog.is_valid(model):
            raise InvalidModel(model)

        limit = self._settings.max_sessions_per_user
        if self._store.count_by_user(user_id) >= limit:
            raise SessionLimitExceeded(limit)

        session = self._store.save(
            Session(user_id=user_id, selected_model=model, title=title)
        )
        logger.info("Created session: %s for user: %s", session.id, user_id)
        return session

    def list_sessions(self, user_id: str) -> List[Session]:
        return self._store.list_by_user(user_id)

    def get_session(self, session_id: str) -> Session:
        session = self._store.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def delete_session(self, session_id: str, user_id: str) -> None:
        session = self.get_session(session_id)
        # Other users' sessions are reported as missing
        if session.user_id != user_id:
            raise SessionNotFound(session_id)
        self._store.delete(session)
        logger.info("Deleted session: %s for user: %s", session_id, user_id)

    def update_session_model(self, session_id: str, model: str) -> Session:
        if not self._catalog.is_valid(model):
            raise InvalidModel(model)
        session = self.get_session(session_id)
        session.selected_model = model
        session = self._store.save(session)
        logger.info("Updated model for session: %s to: %s", session_id, model)
        return session

    def rename_session(self, session_id: str, title: str) -> Session:
        session = self.get_session(session_id)
        session.title = title
        return self._store.save(session)

    # Chat

    def validate_images(self, images: Sequence[Image]) -> None:
        max_size = self._settings.max_image_size_bytes
        for image in images:
            if not image.is_valid():
                raise InvalidImage("Invalid image format or missing data")
            if image.type == "base64" and image.estimated_size() > max_size:
                raise ImageTooLarge(max_size)

    def _prepare_turn(
        self,
        session_id: str,
        model: Optional[str],
        images: Sequence[Image],
    ) -> Tuple[Session, str]:
        session = self.get_session(session_id)

        limit = self._settings.max_messages_per_session
        if len(session.messages) >= limit:
            raise MessageLimitExceeded(limit)

        effective_model = model if model is not None else session.selected_model
        if not self._catalog.is_valid(effective_model):
            raise InvalidModel(effective_model)

        if images:
            if not self._catalog.supports_vision(effective_model):
                raise VisionNotSupported(effective_model)
            self.validate_images(images)
        return session, effective_model

    async def send_message(
        self,
        session_id: str,
        message: str,
        model: Optional[str] = None,
        images: Optional[Sequence[Image]] = None,
    ) -> ChatTurn:
        images = tuple(images or ())
        logger.info(
            "Processing message for session: %s, has images: %s", session_id, bool(images)
        )
        session, effective_model = self._prepare_turn(session_id, model, images)

        session.add_message(Message(role="user", content=message, images=images))
        history = session.messages[:-1]

        reply = await self._client.complete(effective_model, history, message, images)
        assistant = Message(role="assistant", content=reply.content, model=effective_model)
        session.add_message(assistant)

        if model is not None:
            session.selected_model = effective_model
        session = self._store.save(session)

        logger.info(
            "Message processed for session: %s, total messages: %s",
            session.id,
            len(session.messages),
        )
        return ChatTurn(
            session_id=session.id,
            assistant_message=assistant,
            model=effective_model,
            total_messages=len(session.messages),
        )

    async def send_message_stream(
        self,
        session_id: str,
        message: str,
        model: Optional[str] = None,
        images: Optional[Sequence[Image]] = None,
    ) -> AsyncIterator[str]:
        """Stream the assistant reply as text fragments.

        Validation runs when iteration starts, so every failure (including a
        missing session) surfaces as the stream's single terminal exception.
        The assistant message is persisted only after the upstream stream
        finishes; an error or an early ``aclose()`` leaves just the user
        message in the session.
        """
        images = tuple(images or ())
        logger.info(
            "Processing streaming message for session: %s, has images: %s",
            session_id,
            bool(images),
        )
        session, effective_model = self._prepare_turn(session_id, model, images)

        session.add_message(Message(role="user", content=message, images=images))
        session = self._store.save(session)
        history = session.messages[:-1]

        buffer: List[str] = []
        deltas = self._client.stream(effective_model, history, message, images)
        try:
            async for delta in deltas:
                yield delta
                buffer.append(delta)
        except ChatError as e:
            logger.error("Streaming failed for session: %s: %s", session_id, e)
            raise
        except (GeneratorExit, asyncio.CancelledError):
            logger.info("Streaming cancelled for session: %s", session_id)
            raise
        finally:
            await deltas.aclose()

        # The session may have changed while streaming
        current = self._store.get(session_id)
        if current is None:
            logger.warning(
                "Session %s disappeared before the streamed reply was saved", session_id
            )
            return
        current.add_message(
            Message(role="assistant", content="".join(buffer), model=effective_model)
        )
        self._store.save(current)
        logger.info(
            "Streaming complete for session: %s, saved %s chars",
            session_id,
            sum(len(d) for d in buffer),
        )
