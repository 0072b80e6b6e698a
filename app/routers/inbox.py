from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.database import get_db
from app.logging_config import get_logger
from app.schemas.inbox import InboundEvent, InboundResponse, LoggedMessage, MessagesResponse
from app.services.identity import normalize_recipient
from app.services.message_service import (
    ROLE_SYSTEM,
    ROLE_USER,
    clear_messages,
    latest_parsed_resume,
    list_messages,
    save_message,
    save_parsed_resume,
)
from app.services.relay_service import RelayService, get_relay_service
from app.services.resume_parser import parse_resume

logger = get_logger("inbox")

router = APIRouter()

ERR_NO_BODY = "No message body found"
ERR_INVALID_BODY = "Invalid JSON body"


@router.post("/webhook")
async def inbound_webhook(
    request: Request,
    db: Session = Depends(get_db),
    relay: RelayService = Depends(get_relay_service),
):
    """Log an inbound chat event, forward it to the workflow and parse it."""
    try:
        event = InboundEvent.model_validate(await request.json())
    except (ValueError, ValidationError):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": ERR_INVALID_BODY})

    data = event.data or {}
    body = data.get("body")
    if not isinstance(body, str) or not body.strip():
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": ERR_NO_BODY})

    raw_sender = data.get("from")
    sender = normalize_recipient(raw_sender) if raw_sender else None
    logger.info("Inbound message received", extra={"context": {"sender": sender, "length": len(body)}})

    save_message(db, ROLE_USER, body, sender=sender)
    db.commit()

    reply = await relay.client.call(sender or "", body, relay.immediate_timeout_seconds)
    save_message(
        db,
        ROLE_SYSTEM,
        reply.message,
        sender=sender,
        message_metadata={"ok": reply.ok, "error": reply.error} if not reply.ok else None,
    )

    resume = parse_resume(body, sender)
    save_parsed_resume(db, resume, sender=sender)
    db.commit()

    return InboundResponse(
        success=True,
        messageReceived=body,
        externalApiResponse=reply.message,
        resume=resume,
    )


@router.get("/messages", response_model=MessagesResponse)
def get_messages(db: Session = Depends(get_db)):
    messages = [
        LoggedMessage(id=row.id, type=row.role, content=row.content, timestamp=row.created_at)
        for row in list_messages(db)
    ]
    return MessagesResponse(messages=messages, parsedResume=latest_parsed_resume(db))


@router.post("/clear-cache")
def clear_cache(db: Session = Depends(get_db)):
    deleted = clear_messages(db)
    db.commit()
    logger.info("Message log cleared", extra={"context": {"deleted": deleted}})
    return {"success": True}
