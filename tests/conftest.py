from collections.abc import Callable, Generator
from datetime import UTC, datetime
from pathlib import Path

import pytest
from sqlalchemy.orm import Session

from bounce_report.config import Settings
from bounce_report.database import build_engine, build_session_factory
from bounce_report.db_models import Base, DeliveryLog
from bounce_report.schemas import OutboundEmail


class RecordingMailer:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[tuple[str, OutboundEmail, dict[str, str]]] = []

    def send_templated_email(self, template: str, message: OutboundEmail, locals: dict[str, str]) -> None:
        self.calls.append((template, message, locals))
        if self.error is not None:
            raise self.error

    @property
    def subjects(self) -> list[str]:
        return [message.subject for _, message, _ in self.calls]


@pytest.fixture()
def test_settings(tmp_path: Path) -> Settings:
    return Settings(
        app_name="bounce-report",
        database_url=f"sqlite:///{tmp_path / 'logs.db'}",
        log_level="INFO",
        lookback_hours=4,
        stream_batch_size=2,
        trusted_hosts=("relay.trusted.example", "mx.partner.example"),
        report_timezone="UTC",
        alert_email="ops@example.com",
        mail_from="reports@example.com",
        smtp_host="localhost",
        smtp_port=25,
        smtp_username="",
        smtp_password="",
        smtp_starttls=False,
        smtp_timeout_seconds=5,
        mail_preview=True,
        schedule_interval_hours=4,
    )


@pytest.fixture()
def db(test_settings: Settings) -> Generator[Session, None, None]:
    engine = build_engine(test_settings.database_url)
    Base.metadata.create_all(engine)
    with build_session_factory(engine)() as session:
        yield session
    engine.dispose()


@pytest.fixture()
def add_log(db: Session) -> Callable[..., DeliveryLog]:
    def _add(
        created_at: datetime,
        status: str = "rejected",
        source_host: str | None = "relay.trusted.example",
        recipient_domain: str | None = "example.org",
        message: str | None = "550 5.7.1 rejected",
        meta: dict[str, object] | None = None,
    ) -> DeliveryLog:
        log = DeliveryLog(
            created_at=created_at.astimezone(UTC).replace(tzinfo=None),
            status=status,
            source_host=source_host,
            recipient_domain=recipient_domain,
            message=message,
            meta=meta,
        )
        db.add(log)
        db.commit()
        return log

    return _add


@pytest.fixture()
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture()
def failing_mailer() -> RecordingMailer:
    return RecordingMailer(error=ConnectionRefusedError("smtp transport unavailable"))
