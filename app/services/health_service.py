from app.logging_config import get_logger
from app.services.relay_service import RelayService

logger = get_logger("health_service")


async def get_relay_health(relay: RelayService) -> dict:
    """Conversation store counts plus in-flight completion tasks."""
    counts = await relay.store.count_records()
    return {
        "status": "ok",
        "conversations": counts["conversations"],
        "pending_responses": counts["pending_responses"],
        "background_tasks": relay.background_tasks,
    }


async def sweep_expired(relay: RelayService, max_age_seconds: float, now: float) -> int:
    removed = await relay.store.sweep(max_age_seconds, now)
    if removed:
        logger.info("Sweep removed expired conversation state", extra={"context": {"removed": removed}})
    return removed
