from pydantic import BaseModel
import os

class Settings(BaseModel):
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./powerhub.db")
    cors_origins: list[str] = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
    logs_dir: str = os.getenv("LOGS_DIR", "./logs")

    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "3000"))

    alert_cooldown_seconds: float = float(os.getenv("ALERT_COOLDOWN_SECONDS", "60"))
    threshold_interval_seconds: float = float(os.getenv("THRESHOLD_INTERVAL_SECONDS", "1"))
    schedule_interval_seconds: float = float(os.getenv("SCHEDULE_INTERVAL_SECONDS", "60"))
    log_interval_seconds: float = float(os.getenv("LOG_INTERVAL_SECONDS", "1"))
    observer_queue_size: int = int(os.getenv("OBSERVER_QUEUE_SIZE", "100"))

    telegram_bot_token: str | None = os.getenv("TELEGRAM_BOT_TOKEN") or None
    telegram_chat_id: str | None = os.getenv("TELEGRAM_CHAT_ID") or None
    telegram_api_url: str = os.getenv("TELEGRAM_API_URL", "https://api.telegram.org")

    mqtt_host: str | None = os.getenv("MQTT_HOST") or None
    mqtt_port: int = int(os.getenv("MQTT_PORT", "1883"))
    mqtt_username: str | None = os.getenv("MQTT_USERNAME") or None
    mqtt_password: str | None = os.getenv("MQTT_PASSWORD") or None
    mqtt_topic_base: str = os.getenv("MQTT_TOPIC_BASE", "powerhub")

    log_level: str = os.getenv("POWERHUB_LOG_LEVEL", "INFO")
    log_format: str = os.getenv("POWERHUB_LOG_FORMAT", "text")

settings = Settings()
