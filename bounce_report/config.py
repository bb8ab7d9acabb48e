from dataclasses import dataclass
import logging
import os

from dotenv import load_dotenv


load_dotenv()


def _as_bool(raw: str) -> bool:
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _as_list(raw: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    app_name: str
    database_url: str
    log_level: str
    lookback_hours: float
    stream_batch_size: int
    trusted_hosts: tuple[str, ...]
    report_timezone: str
    alert_email: str
    mail_from: str
    smtp_host: str
    smtp_port: int
    smtp_username: str
    smtp_password: str
    smtp_starttls: bool
    smtp_timeout_seconds: float
    mail_preview: bool
    schedule_interval_hours: float


def get_settings() -> Settings:
    alert_email = os.getenv("ALERT_EMAIL", "support@example.com")
    return Settings(
        app_name=os.getenv("APP_NAME", "bounce-report"),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./deliverability.db"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        lookback_hours=float(os.getenv("LOOKBACK_HOURS", "4")),
        stream_batch_size=int(os.getenv("STREAM_BATCH_SIZE", "500")),
        trusted_hosts=_as_list(os.getenv("TRUSTED_HOSTS", "")),
        report_timezone=os.getenv("REPORT_TIMEZONE", "America/Chicago"),
        alert_email=alert_email,
        mail_from=os.getenv("MAIL_FROM") or alert_email,
        smtp_host=os.getenv("SMTP_HOST", "localhost"),
        smtp_port=int(os.getenv("SMTP_PORT", "25")),
        smtp_username=os.getenv("SMTP_USERNAME", ""),
        smtp_password=os.getenv("SMTP_PASSWORD", ""),
        smtp_starttls=_as_bool(os.getenv("SMTP_STARTTLS", "false")),
        smtp_timeout_seconds=float(os.getenv("SMTP_TIMEOUT_SECONDS", "30")),
        mail_preview=_as_bool(os.getenv("MAIL_PREVIEW", "false")),
        schedule_interval_hours=float(os.getenv("SCHEDULE_INTERVAL_HOURS", "4")),
    )


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
