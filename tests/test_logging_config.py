import json
import logging

import pytest

from app.logging_config import ConversationLogger, JSONFormatter, get_logger
from app.models.conversation import ConversationRecord


class TestConversationLogger:
    def test_requires_identity(self):
        with pytest.raises(ValueError):
            ConversationLogger(get_logger("test"), "", "abc")
        with pytest.raises(ValueError):
            ConversationLogger(get_logger("test"), "whatsapp:+1", "")

    def test_stamps_identity_and_merges_context(self, caplog):
        record = ConversationRecord.start("whatsapp:+15550100", "hi", 0.0)
        log = ConversationLogger.for_record(get_logger("test"), record)

        with caplog.at_level(logging.INFO, logger="relay.test"):
            log.info("Deferred webhook call started", context={"elapsed_seconds": 72})

        context = caplog.records[-1].context
        assert context == {
            "recipient": "whatsapp:+15550100",
            "conversation_id": record.conversation_id,
            "elapsed_seconds": 72,
        }

    def test_context_cannot_rebind_identity(self, caplog):
        log = ConversationLogger(get_logger("test"), "whatsapp:+1", "conv-1")

        with caplog.at_level(logging.INFO, logger="relay.test"):
            log.info("hello", context={"conversation_id": "other", "recipient": "whatsapp:+2"})

        context = caplog.records[-1].context
        assert context["conversation_id"] == "conv-1"
        assert context["recipient"] == "whatsapp:+1"


def test_json_formatter_serializes_context():
    record = logging.LogRecord("relay.test", logging.INFO, __file__, 1, "hello", None, None)
    record.context = {"recipient": "whatsapp:+1", "started": 1.5}

    data = json.loads(JSONFormatter().format(record))

    assert data["logger"] == "relay.test"
    assert data["message"] == "hello"
    assert data["context"] == {"recipient": "whatsapp:+1", "started": 1.5}
