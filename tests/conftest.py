import asyncio
from typing import List, Optional

import pytest

from chat_relay.catalog import ModelInfo
from chat_relay.config import Settings
from chat_relay.repository import Message, SQLiteSessionStore
from chat_relay.service import ChatService


TEXT_MODEL = "m1"
VISION_MODEL = "v1"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        openrouter_api_key="test-key",
        openrouter_base_url="https://openrouter.test/api/v1",
        models=[
            ModelInfo(id=TEXT_MODEL, name="Text model"),
            ModelInfo(id=VISION_MODEL, name="Vision model", supports_vision=True),
        ],
        chat_db_path=str(tmp_path / "chat.db"),
        max_sessions_per_user=3,
        max_messages_per_session=4,
    )


@pytest.fixture
def store(settings):
    return SQLiteSessionStore(settings.chat_db_path)


class FakeClient:
    """Stands in for OpenRouterClient and records what it was asked."""

    def __init__(self, reply: str = "ok", deltas: Optional[List[str]] = None, error=None):
        self.reply = reply
        self.deltas = deltas or []
        self.error = error
        self.calls = []
        self.closed = False

    async def complete(self, model, history, text, images=None):
        self.calls.append((model, list(history), text, images))
        if self.error is not None:
            raise self.error
        return Message(role="assistant", content=self.reply, model=model)

    async def stream(self, model, history, text, images=None):
        self.calls.append((model, list(history), text, images))
        try:
            for d in self.deltas:
                yield d
            if self.error is not None:
                raise self.error
        finally:
            self.closed = True


@pytest.fixture
def fake_client():
    return FakeClient()


@pytest.fixture
def service(settings, store, fake_client):
    return ChatService(settings=settings, store=store, client=fake_client)


def collect(stream):
    async def _run():
        return [chunk async for chunk in stream]

    return asyncio.run(_run())
