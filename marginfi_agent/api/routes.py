from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from ..errors import MarginfiAgentError, ValidationError
from ..services.chat import DEFAULT_SESSION, ChatService
from .schemas import (
    ChatRequest,
    ChatResponse,
    ErrorResponse,
    HealthResponse,
    MessageResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

MESSAGE_REQUIRED = "Message is required."
GENERIC_ERROR = "An error occurred while processing your request."


def get_chat_service(request: Request) -> ChatService:
    return request.app.state.chat_service


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code, content=ErrorResponse(error=message).model_dump()
    )


@router.get("/health", response_model=HealthResponse)
def health(svc: ChatService = Depends(get_chat_service)) -> HealthResponse:
    snapshot = svc.cache.peek()
    return HealthResponse(
        status="ok",
        cache=svc.cache.state.value,
        banks=len(snapshot) if snapshot is not None else 0,
    )


@router.post(
    "/api/chat",
    response_model=ChatResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def chat(
    body: ChatRequest,
    session_id: Annotated[str, Query(alias="sessionId")] = DEFAULT_SESSION,
    svc: ChatService = Depends(get_chat_service),
):
    if not body.message:
        return error_response(400, MESSAGE_REQUIRED)
    try:
        reply = await svc.handle(session_id or DEFAULT_SESSION, body.message)
    except ValidationError as exc:
        logger.info("[%s] Rejected chat request: %s", session_id, exc)
        return error_response(400, MESSAGE_REQUIRED)
    except MarginfiAgentError as exc:
        logger.error("[%s] Chat request failed: %s", session_id, exc)
        return error_response(500, GENERIC_ERROR)
    return ChatResponse(reply=reply)


@router.post("/api/chat/clear", response_model=MessageResponse)
def clear(
    session_id: Annotated[str, Query(alias="sessionId")] = DEFAULT_SESSION,
    svc: ChatService = Depends(get_chat_service),
) -> MessageResponse:
    session_id = session_id or DEFAULT_SESSION
    svc.clear(session_id)
    return MessageResponse(message=f"Conversation cleared for session: {session_id}")


@router.post("/api/chat/reset", response_model=MessageResponse)
def reset(svc: ChatService = Depends(get_chat_service)) -> MessageResponse:
    svc.reset_cache()
    return MessageResponse(
        message="Cache reset successfully. Fresh data will be fetched on the next query."
    )
