import asyncio
import os
import time

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.database import init_db
from app.logging_config import get_logger, setup_logging
from app.routers import inbox, resume, send_message, users
from app.services.health_service import get_relay_health, sweep_expired
from app.services.relay_service import RelayService, get_relay_service, shutdown_relay_service

setup_logging(settings.log_level)

app = FastAPI(
    title="Chat Relay API",
    description="Relays chat messages to an external workflow and serves deferred replies by polling",
    version="0.1.0",
)

cors_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(send_message.router)
app.include_router(inbox.router)
app.include_router(resume.router)
app.include_router(users.router)

sweep_logger = get_logger("sweep_worker")
_sweep_worker_task: asyncio.Task | None = None


def _is_env_enabled(value: str | None, default: bool = True) -> bool:
    if value is None:
        return default
    return value.strip().lower() not in {"0", "false", "no", "off"}


def _is_sweep_worker_enabled() -> bool:
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return False
    return settings.sweep_worker_enabled


async def _sweep_worker_loop() -> None:
    while True:
        try:
            await asyncio.sleep(max(settings.sweep_interval_seconds, 0.1))
            await sweep_expired(get_relay_service(), settings.max_conversation_age_seconds, time.time())
        except asyncio.CancelledError:
            break
        except Exception as exc:
            sweep_logger.error(
                "Sweep worker loop failed",
                extra={"context": {"error": str(exc)}},
            )


@app.on_event("startup")
async def startup() -> None:
    global _sweep_worker_task
    if _is_env_enabled(os.environ.get("INIT_DB_ON_STARTUP"), default=True):
        init_db()
    if not _is_sweep_worker_enabled():
        return
    if _sweep_worker_task is None or _sweep_worker_task.done():
        _sweep_worker_task = asyncio.create_task(_sweep_worker_loop())
        sweep_logger.info("Sweep worker started")


@app.on_event("shutdown")
async def shutdown() -> None:
    global _sweep_worker_task
    if _sweep_worker_task is not None:
        _sweep_worker_task.cancel()
        try:
            await _sweep_worker_task
        except asyncio.CancelledError:
            pass
        _sweep_worker_task = None
    await shutdown_relay_service()


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/health/conversations")
async def health_conversations(relay: RelayService = Depends(get_relay_service)):
    return await get_relay_health(relay)
