from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from app.models import Message
from app.schemas.resume import ResumeRecord

ROLE_USER = "user"
ROLE_SYSTEM = "system"
KIND_PARSED = "parsed"


def save_message(
    db: Session,
    role: str,
    content: str,
    sender: Optional[str] = None,
    message_metadata: Optional[dict] = None,
) -> Message:
    """Save message to the log."""
    message = Message(
        role=role,
        content=content,
        sender=sender,
        message_metadata=message_metadata or {},
        created_at=datetime.now(timezone.utc),
    )
    db.add(message)
    db.flush()
    return message


def save_parsed_resume(db: Session, resume: ResumeRecord, sender: Optional[str] = None) -> Message:
    return save_message(
        db,
        ROLE_SYSTEM,
        "Resume parsed",
        sender=sender,
        message_metadata={"kind": KIND_PARSED, "resume": resume.model_dump()},
    )


def list_messages(db: Session) -> list[Message]:
    return db.query(Message).order_by(Message.created_at.asc(), Message.id.asc()).all()


def latest_parsed_resume(db: Session) -> Optional[ResumeRecord]:
    """Most recent resume record logged by the inbound webhook, if any."""
    rows = db.query(Message).filter(Message.role == ROLE_SYSTEM).order_by(Message.id.desc()).all()
    for row in rows:
        metadata = row.message_metadata or {}
        if metadata.get("kind") == KIND_PARSED and metadata.get("resume"):
            return ResumeRecord.model_validate(metadata["resume"])
    return None


def clear_messages(db: Session) -> int:
    deleted = db.query(Message).delete()
    db.flush()
    return deleted
