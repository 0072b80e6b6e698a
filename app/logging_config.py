"""JSON logging configuration for the relay API."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any


class JSONFormatter(logging.Formatter):
    """Format log records as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "context") and record.context:
            log_data["context"] = record.context

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO") -> None:
    """Configure JSON logging for the application."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name."""
    return logging.getLogger(f"relay.{name}")


class ConversationLogger(logging.LoggerAdapter):
    """Logger bound to one deferred conversation.

    Every record carries ``recipient`` and ``conversation_id`` in its context.
    A per-call ``context=`` adds fields but cannot rebind those two.
    """

    def __init__(self, logger: logging.Logger, recipient: str, conversation_id: str):
        if not recipient or not conversation_id:
            raise ValueError("ConversationLogger needs both recipient and conversation_id")
        super().__init__(logger, {"recipient": recipient, "conversation_id": conversation_id})

    @classmethod
    def for_record(cls, logger: logging.Logger, record: Any) -> "ConversationLogger":
        """Bind to anything exposing ``recipient`` and ``conversation_id``."""
        return cls(logger, record.recipient, record.conversation_id)

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        context = dict(kwargs.pop("context", None) or {})
        extra = dict(kwargs.get("extra") or {})
        extra["context"] = {**context, **self.extra}
        kwargs["extra"] = extra
        return msg, kwargs
