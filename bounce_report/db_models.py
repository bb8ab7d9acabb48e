from datetime import UTC, datetime

from sqlalchemy import JSON, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


def utc_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class DeliveryLog(Base):
    """One delivery attempt outcome written by the forwarding service."""

    __tablename__ = "delivery_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Stored as naive UTC.
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, index=True)
    status: Mapped[str] = mapped_column(String(32), index=True)
    source_host: Mapped[str | None] = mapped_column(String(255), nullable=True)
    recipient_domain: Mapped[str | None] = mapped_column(String(255), nullable=True)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    meta: Mapped[dict[str, object] | None] = mapped_column(JSON, nullable=True)
