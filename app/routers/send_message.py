from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.config import settings
from app.logging_config import get_logger
from app.schemas.send_message import PollResponse, SendMessageRequest, SendMessageResponse
from app.services.classifier import DeferralPredicate, KeywordClassifier, resolve_deferral
from app.services.identity import is_blank_recipient, normalize_recipient
from app.services.relay_service import (
    MSG_IN_PROGRESS,
    MSG_PENDING,
    Deferred,
    PollStatus,
    Rejected,
    RelayService,
    get_relay_service,
)

logger = get_logger("send_message")

router = APIRouter()

ERR_PHONE_REQUIRED = "toPhone (WhatsApp number) is required"
ERR_MESSAGE_REQUIRED = "Message is required"
ERR_INVALID_BODY = "Invalid JSON body"
ERR_UNSUPPORTED_ACTION = "Unsupported action"
ERR_INVALID_HINT = "isSoftSkillsQuestion must be a boolean"
MSG_POLL_ERROR = "Sorry, we couldn't check on your message right now. Please try again."

FIELD_ERRORS = {
    "action": ERR_UNSUPPORTED_ACTION,
    "toPhone": ERR_PHONE_REQUIRED,
    "message": ERR_MESSAGE_REQUIRED,
    "isSoftSkillsQuestion": ERR_INVALID_HINT,
}


def get_deferral_predicate() -> DeferralPredicate | None:
    """Server-side classifier used when the caller sends no hint."""
    if not settings.server_side_classification:
        return None
    return KeywordClassifier()


def field_error(exc: ValidationError) -> str:
    """Error text for the first invalid field of a send-message payload."""
    for error in exc.errors():
        loc = error.get("loc") or ()
        if loc and loc[0] in FIELD_ERRORS:
            return FIELD_ERRORS[loc[0]]
    return ERR_INVALID_BODY


def _bad_request(error: str) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": error})


def _respond(model, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=model.model_dump(exclude_none=True))


@router.post("/send-message")
@router.post("/api/send-message")
async def send_message(
    request: Request,
    relay: RelayService = Depends(get_relay_service),
    predicate: DeferralPredicate | None = Depends(get_deferral_predicate),
):
    """Send a chat message to the workflow, or poll for a deferred reply."""
    try:
        raw = await request.json()
    except ValueError:
        return _bad_request(ERR_INVALID_BODY)
    if not isinstance(raw, dict):
        return _bad_request(ERR_INVALID_BODY)

    try:
        payload = SendMessageRequest.model_validate(raw)
    except ValidationError as exc:
        logger.warning("Send-message payload validation failed", extra={"context": {"error": str(exc)}})
        return _bad_request(field_error(exc))

    action = (payload.action or "send").strip().lower()
    if action not in {"send", "poll"}:
        return _bad_request(ERR_UNSUPPORTED_ACTION)

    if is_blank_recipient(payload.toPhone):
        return _bad_request(ERR_PHONE_REQUIRED)
    recipient = normalize_recipient(payload.toPhone)

    if action == "poll":
        return await _poll(relay, recipient)

    if not payload.message or not payload.message.strip():
        return _bad_request(ERR_MESSAGE_REQUIRED)

    defer = resolve_deferral(payload.isSoftSkillsQuestion, payload.message, predicate)
    logger.info(
        "Message received",
        extra={"context": {"recipient": recipient, "deferred": defer, "length": len(payload.message)}},
    )

    try:
        result = await relay.dispatch(recipient, payload.message, defer)
    except Exception as exc:
        logger.error(
            "Send-message failed",
            extra={"context": {"recipient": recipient, "error": str(exc)}},
            exc_info=True,
        )
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": "Server error"})

    if isinstance(result, Deferred):
        return _respond(
            SendMessageResponse(
                ok=True, status="pending", pending=True, requestId=result.conversation_id, message=MSG_PENDING
            )
        )
    if isinstance(result, Rejected):
        return _respond(
            SendMessageResponse(
                ok=False, status=result.reason, pending=True, requestId=result.conversation_id, message=MSG_IN_PROGRESS
            ),
            status_code=status.HTTP_409_CONFLICT,
        )
    return _respond(SendMessageResponse(ok=result.ok, message=result.message))


async def _poll(relay: RelayService, recipient: str) -> JSONResponse:
    try:
        result = await relay.poll(recipient)
    except Exception as exc:
        logger.error(
            "Poll crashed",
            extra={"context": {"recipient": recipient, "error": str(exc)}},
            exc_info=True,
        )
        return _respond(PollResponse(status=PollStatus.ERROR.value, message=MSG_POLL_ERROR))
    return _respond(PollResponse(**result.to_payload()))
