"""
HTTP endpoints for the reply relay and the follow-up / cleanup triggers.
"""

import logging
from datetime import timedelta

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from app.config.settings import get_settings
from app.domain.follow_up import ReplyRequest
from app.infrastructure.chat_gateway import get_chat_gateway
from app.infrastructure.database import async_session_factory
from app.usecases.follow_up_service import build_follow_up_orchestrator
from app.usecases.reply_service import ReplyMismatchError, ReplyService
from app.usecases.sent_registry import SentRegistry

logger = logging.getLogger(__name__)
router = APIRouter()
settings = get_settings()

MISMATCH_MESSAGE = "Failed to read messages or specific message did not match."


@router.post("/reply-message")
async def reply_message(payload: ReplyRequest):
    """
    Reply to a participant whose latest message equals ``specificMessage``.
    """
    service = ReplyService(get_chat_gateway(), settings)
    
    try:
        result = await service.handle(payload)
    except ReplyMismatchError:
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": MISMATCH_MESSAGE},
        )
    
    return JSONResponse(
        status_code=200 if result.success else 400,
        content=result.model_dump(exclude_none=True),
    )


@router.post("/send-follow-up-message")
async def send_follow_up_message():
    """Run one follow-up pass."""
    report = await build_follow_up_orchestrator().run_once()
    return JSONResponse(
        status_code=200 if report.success else 400,
        content=report.model_dump(),
    )


@router.post("/cleanup-sent-numbers")
async def cleanup_sent_numbers():
    """Evict sent numbers older than the suppression window."""
    registry = SentRegistry(async_session_factory)
    removed = await registry.evict_older_than(
        timedelta(minutes=settings.suppression_window_minutes)
    )
    return {"success": True, "removed": removed}


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "whatsapp-followup"}
