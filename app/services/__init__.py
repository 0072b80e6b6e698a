from app.services.conversation_store import (
    BaseConversationStore,
    InMemoryConversationStore,
    StoreError,
    create_store,
)
from app.services.identity import normalize_recipient
from app.services.relay_service import (
    Deferred,
    Immediate,
    PollResult,
    PollStatus,
    Rejected,
    RelayService,
    get_relay_service,
)
from app.services.webhook_client import WebhookClient, WebhookReply
