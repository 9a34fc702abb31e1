from __future__ import annotations

import json
import os
import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple


ALLOWED_MEDIA_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")
TITLE_MAX_LENGTH = 50
DEFAULT_TITLE = "New Chat"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Image:
    type: str  # 'base64' | 'url'
    data: str
    media_type: Optional[str] = None

    @classmethod
    def from_base64(cls, data: str, media_type: str) -> "Image":
        return cls(type="base64", data=data, media_type=media_type)

    @classmethod
    def from_url(cls, url: str) -> "Image":
        return cls(type="url", data=url)

    def is_valid(self) -> bool:
        if not self.type or not self.data or not self.data.strip():
            return False
        if self.type == "base64":
            return bool(self.media_type) and self.media_type in ALLOWED_MEDIA_TYPES
        return self.type == "url"

    def estimated_size(self) -> int:
        # base64 encodes 3 bytes in 4 characters
        return int(len(self.data) * 0.75)

    def data_uri(self) -> str:
        if self.type == "base64":
            return f"data:{self.media_type};base64,{self.data}"
        return self.data


@dataclass(frozen=True)
class Message:
    role: str  # 'user' | 'assistant'
    content: str
    images: Tuple[Image, ...] = ()
    model: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)

    @property
    def is_multimodal(self) -> bool:
        return self.role == "user" and len(self.images) > 0


def generate_title(content: Optional[str]) -> str:
    if content is None or not content.strip():
        return DEFAULT_TITLE
    title = content.split("\n")[0]
    if len(title) > TITLE_MAX_LENGTH:
        title = title[: TITLE_MAX_LENGTH - 3] + "..."
    return title


@dataclass
class Session:
    user_id: str
    selected_model: str
    title: Optional[str] = None
    messages: List[Message] = field(default_factory=list)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def touch(self) -> None:
        now = utc_now()
        if now <= self.updated_at:
            now = self.updated_at + timedelta(microseconds=1)
        self.updated_at = now

    def add_message(self, message: Message) -> None:
        self.messages.append(message)
        self.touch()
        # First user message names an untitled session
        if (not self.title or not self.title.strip()) and message.role == "user":
            self.title = generate_title(message.content)


class SessionStore:
    def get(self, session_id: str) -> Optional[Session]:
        raise NotImplementedError

    def save(self, session: Session) -> Session:
        raise NotImplementedError

    def delete(self, session: Session) -> None:
        raise NotImplementedError

    def count_by_user(self, user_id: str) -> int:
        raise NotImplementedError

    def list_by_user(self, user_id: str) -> List[Session]:
        raise NotImplementedError


def _image_to_dict(image: Image) -> Dict[str, Any]:
    return {"type": image.type, "data": image.data, "media_type": image.media_type}


def _message_to_dict(message: Message) -> Dict[str, Any]:
    return {
        "role": message.role,
        "content": message.content,
        "images": [_image_to_dict(i) for i in message.images],
        "model": message.model,
        "created_at": message.created_at.isoformat(timespec="microseconds"),
    }


def _message_from_dict(raw: Dict[str, Any]) -> Message:
    return Message(
        role=raw["role"],
        content=raw.get("content") or "",
        images=tuple(
            Image(type=i["type"], data=i["data"], media_type=i.get("media_type"))
            for i in raw.get("images") or []
        ),
        model=raw.get("model"),
        created_at=datetime.fromisoformat(raw["created_at"]),
    )


class SQLiteSessionStore(SessionStore):
    """Stores each session as one row with its messages serialized to JSON."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS sessions (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    title TEXT,
                    selected_model TEXT NOT NULL,
                    messages TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_sessions_user_updated ON sessions(user_id, updated_at)"
            )
            conn.commit()

    def _row_to_session(self, row: sqlite3.Row) -> Session:
        return Session(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            selected_model=row["selected_model"],
            messages=[_message_from_dict(m) for m in json.loads(row["messages"])],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def get(self, session_id: str) -> Optional[Session]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM sessions WHERE id=?", (session_id,)
            ).fetchone()
        return self._row_to_session(row) if row is not None else None

    def save(self, session: Session) -> Session:
        session.touch()
        messages = json.dumps([_message_to_dict(m) for m in session.messages])
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO sessions (id, user_id, title, selected_model, messages, created_at, updated_at) VALUES (?,?,?,?,?,?,?)",
                (
                    session.id,
                    session.user_id,
                    session.title,
                    session.selected_model,
                    messages,
                    session.created_at.isoformat(timespec="microseconds"),
                    session.updated_at.isoformat(timespec="microseconds"),
                ),
            )
            conn.commit()
        return session

    def delete(self, session: Session) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM sessions WHERE id=?", (session.id,))
            conn.commit()

    def count_by_user(self, user_id: str) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM sessions WHERE user_id=?", (user_id,)
            ).fetchone()
        return int(row["n"])

    def list_by_user(self, user_id: str) -> List[Session]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM sessions WHERE user_id=? ORDER BY updated_at DESC",
                (user_id,),
            ).fetchall()
        return [self._row_to_session(row) for row in rows]
