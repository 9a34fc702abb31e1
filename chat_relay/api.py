from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse

from .config import get_settings
from .errors import ChatError
from .logging_setup import configure_logging
from .models import (
    ChatRequest,
    ChatResponse,
    CreateSessionRequest,
    ErrorResponse,
    MessageDTO,
    ModelDTO,
    SessionResponse,
    UpdateModelRequest,
    UpdateTitleRequest,
    VisionSupportDTO,
)
from .service import ChatService

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "An unexpected error occurred. Please try again later."

app = FastAPI(title="OpenRouter Chat Relay", version="1.0.0")

router = APIRouter(prefix="/api")


def get_chat_service() -> ChatService:
    return ChatService.instance()


@app.on_event("startup")
async def on_startup() -> None:
    configure_logging(get_settings().log_level)
    ChatService.instance()


def _error_body(
    status: int, error: str, message: str, details: Optional[Dict[str, str]] = None
) -> dict:
    return ErrorResponse(
        timestamp=datetime.now(timezone.utc).isoformat(),
        status=status,
        error=error,
        message=message,
        details=details,
    ).model_dump(exclude_none=True)


@app.exception_handler(ChatError)
async def handle_chat_error(request: Request, exc: ChatError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s: %s", exc.kind, exc.message)
    else:
        logger.warning("%s: %s", exc.kind, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.status_code, exc.kind, exc.message),
    )


@app.exception_handler(RequestValidationError)
async def handle_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details: Dict[str, str] = {}
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        msg = str(err.get("msg", "invalid value"))
        details[field or "body"] = msg.removeprefix("Value error, ")
    logger.warning("Validation failed: %s", details)
    return JSONResponse(
        status_code=400,
        content=_error_body(400, "ValidationError", "Validation failed", details),
    )


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unexpected error occurred")
    return JSONResponse(
        status_code=500,
        content=_error_body(500, "InternalError", GENERIC_ERROR_MESSAGE),
    )


def format_sse(data: str, event: Optional[str] = None) -> str:
    """Render one server-sent event; multi-line data becomes several data lines."""
    lines = [f"event: {event}"] if event else []
    lines.extend(f"data: {line}" for line in data.split("\n"))
    return "\n".join(lines) + "\n\n"


async def sse_events(fragments: AsyncIterator[str]) -> AsyncIterator[str]:
    try:
        async for fragment in fragments:
            yield format_sse(fragment)
    except ChatError as e:
        yield format_sse(json.dumps({"error": e.kind, "message": e.message}), event="error")
    except Exception:
        logger.exception("Unexpected error while streaming")
        yield format_sse(
            json.dumps({"error": "InternalError", "message": GENERIC_ERROR_MESSAGE}),
            event="error",
        )
    finally:
        await fragments.aclose()


@app.get("/healthz")
async def healthz() -> dict:
    return {"status": "ok"}


# Models


@router.get("/models", response_model=List[ModelDTO])
async def list_models(service: ChatService = Depends(get_chat_service)) -> List[ModelDTO]:
    return [ModelDTO.from_domain(m) for m in service.list_models()]


@router.get("/models/vision", response_model=List[ModelDTO])
async def list_vision_models(
    service: ChatService = Depends(get_chat_service),
) -> List[ModelDTO]:
    return [ModelDTO.from_domain(m) for m in service.list_vision_models()]


@router.get("/models/{model_id:path}/supports-vision", response_model=VisionSupportDTO)
async def check_vision_support(
    model_id: str, service: ChatService = Depends(get_chat_service)
) -> VisionSupportDTO:
    return VisionSupportDTO(
        model_id=model_id, supports_vision=service.model_supports_vision(model_id)
    )


# Sessions


@router.post("/sessions", response_model=SessionResponse, status_code=201)
async def create_session(
    req: CreateSessionRequest, service: ChatService = Depends(get_chat_service)
) -> SessionResponse:
    session = service.create_session(req.user_id, req.model, req.title)
    return SessionResponse.from_domain(session)


@router.get("/sessions", response_model=List[SessionResponse])
async def list_sessions(
    user_id: str, service: ChatService = Depends(get_chat_service)
) -> List[SessionResponse]:
    return [SessionResponse.from_domain(s) for s in service.list_sessions(user_id)]


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str, service: ChatService = Depends(get_chat_service)
) -> SessionResponse:
    return SessionResponse.from_domain(service.get_session(session_id))


@router.delete("/sessions/{session_id}", status_code=204)
async def delete_session(
    session_id: str, user_id: str, service: ChatService = Depends(get_chat_service)
) -> Response:
    service.delete_session(session_id, user_id)
    return Response(status_code=204)


@router.patch("/sessions/{session_id}/model", response_model=SessionResponse)
async def update_session_model(
    session_id: str,
    req: UpdateModelRequest,
    service: ChatService = Depends(get_chat_service),
) -> SessionResponse:
    return SessionResponse.from_domain(service.update_session_model(session_id, req.model))


@router.patch("/sessions/{session_id}/title", response_model=SessionResponse)
async def rename_session(
    session_id: str,
    req: UpdateTitleRequest,
    service: ChatService = Depends(get_chat_service),
) -> SessionResponse:
    return SessionResponse.from_domain(service.rename_session(session_id, req.title))


@router.get("/history/{session_id}", response_model=SessionResponse)
async def get_history(
    session_id: str, service: ChatService = Depends(get_chat_service)
) -> SessionResponse:
    return SessionResponse.from_domain(service.get_session(session_id))


# Chat


@router.post("/chat", response_model=ChatResponse)
async def chat(
    req: ChatRequest, service: ChatService = Depends(get_chat_service)
) -> ChatResponse:
    turn = await service.send_message(
        req.session_id, req.message, req.model, req.domain_images()
    )
    return ChatResponse(
        session_id=turn.session_id,
        assistant_message=MessageDTO.from_domain(turn.assistant_message),
        model=turn.model,
        total_messages=turn.total_messages,
    )


@router.post("/chat/stream")
async def chat_stream(
    req: ChatRequest, service: ChatService = Depends(get_chat_service)
) -> StreamingResponse:
    fragments = service.send_message_stream(
        req.session_id, req.message, req.model, req.domain_images()
    )
    return StreamingResponse(
        sse_events(fragments),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


app.include_router(router)
