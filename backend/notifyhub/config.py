import logging
import logging.handlers
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "postgresql://notifyhub:notifyhub@db:5432/notifyhub"
    store_backend: str = "sql"  # sql / memory
    secret_key: str = "change-me-in-production"

    # HTTP
    cors_origins: str = "*"
    cors_allow_credentials: bool = False
    trusted_hosts: str = "*"
    rate_limit_send: str = "120/minute"

    # Channel senders
    sender_timeout_seconds: float = 10.0
    sender_max_workers: int = 8
    email_backend: str = "console"  # console / smtp
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = ""
    sms_webhook_url: str = ""
    push_webhook_url: str = ""
    webhook_token: str = ""

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"
    log_max_bytes: int = 10_485_760  # 10 MB
    log_backup_count: int = 5

    model_config = {"env_file": ".env"}

    @property
    def effective_database_url(self) -> str:
        # Heroku-style URLs still use the deprecated "postgres" scheme
        if self.database_url.startswith("postgres://"):
            return "postgresql://" + self.database_url[len("postgres://"):]
        return self.database_url

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def trusted_hosts_list(self) -> list[str]:
        return [h.strip() for h in self.trusted_hosts.split(",") if h.strip()]


settings = Settings()


_DETAIL_FORMAT = logging.Formatter(
    "%(asctime)s %(levelname)-8s [%(name)s:%(funcName)s:%(lineno)d] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


def _rotating(log_dir: Path, filename: str, level: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        log_dir / filename,
        maxBytes=settings.log_max_bytes,
        backupCount=settings.log_backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(_DETAIL_FORMAT)
    return handler


def setup_logging() -> None:
    """Configure process-wide logging.

    - console: INFO+ for container logs
    - app.log: everything at log_level and above
    - error.log: ERROR+ only
    - delivery.log: INFO+ from notifyhub.notifications (dispatch decisions and outcomes)
    """
    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    console = logging.StreamHandler()
    console.setLevel(logging.INFO)
    console.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)-8s notifyhub %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    ))
    root.addHandler(console)
    root.addHandler(_rotating(log_dir, "app.log", logging.DEBUG))
    root.addHandler(_rotating(log_dir, "error.log", logging.ERROR))

    delivery = logging.getLogger("notifyhub.notifications")
    for handler in [h for h in delivery.handlers if getattr(h, "baseFilename", "").endswith("delivery.log")]:
        delivery.removeHandler(handler)
        handler.close()
    delivery.addHandler(_rotating(log_dir, "delivery.log", logging.INFO))

    for noisy in ("uvicorn.access", "sqlalchemy.engine", "httpcore", "httpx", "alembic", "email_validator"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging configured: level=%s, dir=%s, max=%s MB x %d backups",
        settings.log_level, log_dir, settings.log_max_bytes // 1_048_576, settings.log_backup_count,
    )
