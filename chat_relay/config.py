from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

from .catalog import ModelInfo


# Load environment variables from a local .env if present (harmless in containers)
load_dotenv()


DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MAX_IMAGE_SIZE = 5 * 1024 * 1024

DEFAULT_MODELS: List[ModelInfo] = [
    ModelInfo(
        id="meta-llama/llama-3.3-70b-instruct:free",
        name="Llama 3.3 70B Instruct",
        description="Meta's multilingual instruction-tuned 70B model.",
    ),
    ModelInfo(
        id="mistralai/mistral-7b-instruct:free",
        name="Mistral 7B Instruct",
        description="Fast general purpose 7B model.",
    ),
    ModelInfo(
        id="google/gemini-2.0-flash-exp:free",
        name="Gemini 2.0 Flash",
        description="Multimodal model with image understanding.",
        supports_vision=True,
    ),
    ModelInfo(
        id="qwen/qwen2.5-vl-72b-instruct:free",
        name="Qwen2.5 VL 72B Instruct",
        description="Vision-language model for image and document questions.",
        supports_vision=True,
    ),
]


@dataclass(frozen=True)
class Settings:
    openrouter_api_key: Optional[str] = None
    openrouter_base_url: str = DEFAULT_BASE_URL
    # Attribution headers sent to OpenRouter
    http_referer: str = "http://localhost:8000"
    app_title: str = "Chat Relay"
    models: List[ModelInfo] = field(default_factory=lambda: list(DEFAULT_MODELS))
    chat_db_path: str = "./data/chat.db"
    max_sessions_per_user: int = 10
    max_messages_per_session: int = 100
    max_image_size_bytes: int = DEFAULT_MAX_IMAGE_SIZE
    log_level: str = "INFO"


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def load_models(path: str) -> List[ModelInfo]:
    """Read a model catalog from a JSON file holding a list of model objects."""
    with open(path, "r", encoding="utf-8") as fh:
        raw = json.load(fh)
    if not isinstance(raw, list):
        raise RuntimeError(f"Model catalog {path} must contain a JSON list")
    return [
        ModelInfo(
            id=item["id"],
            name=item.get("name", item["id"]),
            description=item.get("description", ""),
            available=bool(item.get("available", True)),
            supports_vision=bool(item.get("supports_vision", False)),
        )
        for item in raw
    ]


def get_settings() -> Settings:
    api_key = os.getenv("OPENROUTER_API_KEY") or None
    base_url = os.getenv("OPENROUTER_BASE_URL", DEFAULT_BASE_URL)

    models_file = os.getenv("OPENROUTER_MODELS_FILE")
    models = load_models(models_file) if models_file else list(DEFAULT_MODELS)

    return Settings(
        openrouter_api_key=api_key,
        openrouter_base_url=base_url.rstrip("/"),
        http_referer=os.getenv("OPENROUTER_HTTP_REFERER", "http://localhost:8000"),
        app_title=os.getenv("OPENROUTER_APP_TITLE", "Chat Relay"),
        models=models,
        chat_db_path=os.getenv("CHAT_DB_PATH", "./data/chat.db"),
        max_sessions_per_user=_int_env("CHAT_MAX_SESSIONS_PER_USER", 10),
        max_messages_per_session=_int_env("CHAT_MAX_MESSAGES_PER_SESSION", 100),
        max_image_size_bytes=_int_env(
            "CHAT_MAX_IMAGE_SIZE_BYTES", DEFAULT_MAX_IMAGE_SIZE
        ),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
