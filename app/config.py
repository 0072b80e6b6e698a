from pydantic_settings import BaseSettings

DEFAULT_WEBHOOK_ENDPOINTS = [
    "https://workflow.example.com:5678/webhook/chat-relay",
    "https://workflow.example.com/webhook/chat-relay",
]

DEFAULT_DEFERRAL_KEYWORDS = [
    "soft skill",
    "communication",
    "teamwork",
    "leadership",
    "problem solving",
    "time management",
    "adaptability",
    "critical thinking",
    "emotional intelligence",
    "interpersonal",
    "collaboration",
    "creativity",
    "work ethic",
]


class Settings(BaseSettings):
    database_url: str = "sqlite:///./relay.db"
    debug: bool = False
    log_level: str = "INFO"
    cors_allow_origins: str = "*"

    # External workflow
    webhook_endpoints: list[str] = DEFAULT_WEBHOOK_ENDPOINTS
    webhook_attempts_per_endpoint: int = 2
    webhook_retry_backoff_seconds: float = 1.0
    immediate_timeout_seconds: float = 45.0
    webhook_timeout_seconds: float = 100.0
    max_display_length: int = 2000

    # Envelope identity
    envelope_source: str = "/some-path"
    envelope_account_sid: str = "ACxxxx"
    envelope_messaging_service_sid: str = "MGxxxx"
    envelope_to: str = "whatsapp:+16098034599"

    # Conversation timing
    api_call_delay_seconds: float = 72.0
    hard_deadline_seconds: float = 300.0
    empty_message_interval_seconds: float = 8.0
    sweep_interval_seconds: float = 60.0
    max_conversation_age_seconds: float = 600.0
    sweep_worker_enabled: bool = True

    # Conversation store
    store_backend: str = "memory"  # memory, redis
    redis_url: str = "redis://localhost:6379/0"
    redis_lock_timeout_seconds: float = 10.0

    # Deferral classification when the caller sends no hint
    server_side_classification: bool = False
    deferral_keywords: list[str] = DEFAULT_DEFERRAL_KEYWORDS

    # Ops alerts (Telegram)
    alert_bot_token: str | None = None
    alert_chat_id: str | None = None

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
