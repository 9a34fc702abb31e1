from __future__ import annotations


class ChatError(Exception):
    """Base class for failures that end the current chat request."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def kind(self) -> str:
        return type(self).__name__


class SessionNotFound(ChatError):
    status_code = 404

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Chat session not found: {session_id}")
        self.session_id = session_id


class SessionLimitExceeded(ChatError):
    status_code = 400

    def __init__(self, limit: int) -> None:
        super().__init__(
            f"Maximum session limit reached: {limit}. "
            "Please delete old sessions to create new ones."
        )
        self.limit = limit


class MessageLimitExceeded(ChatError):
    status_code = 400

    def __init__(self, limit: int) -> None:
        super().__init__(
            f"Maximum message limit reached for this session: {limit}. "
            "Please start a new session."
        )
        self.limit = limit


class InvalidModel(ChatError):
    status_code = 400

    def __init__(self, model: object) -> None:
        super().__init__(f"Invalid or unavailable model: {model}")
        self.model = model


class VisionNotSupported(ChatError):
    status_code = 400

    def __init__(self, model: str) -> None:
        super().__init__(
            f"The selected model '{model}' does not support image/vision inputs. "
            "Please select a vision-capable model."
        )
        self.model = model


class InvalidImage(ChatError):
    status_code = 400

    def __init__(self, reason: str) -> None:
        super().__init__(f"Invalid image: {reason}")


class ImageTooLarge(ChatError):
    status_code = 413

    def __init__(self, max_size_bytes: int) -> None:
        super().__init__(
            "Image size exceeds maximum allowed size of "
            f"{max_size_bytes // 1024 // 1024} MB"
        )
        self.max_size_bytes = max_size_bytes


class ApiKeyNotConfigured(ChatError):
    status_code = 500

    def __init__(self) -> None:
        super().__init__(
            "OpenRouter API key is not configured. "
            "Please set OPENROUTER_API_KEY environment variable."
        )


class UpstreamServiceError(ChatError):
    status_code = 503

    def __init__(self, detail: str) -> None:
        super().__init__(f"AI service error: {detail}")
        self.detail = detail
