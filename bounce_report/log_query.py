from collections.abc import Iterator
from datetime import UTC, datetime, timedelta

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from bounce_report.db_models import DeliveryLog
from bounce_report.schemas import RunWindow


DELIVERABILITY_STATUSES: tuple[str, ...] = ("bounced", "rejected", "blocked")


def compute_window(now: datetime, lookback: timedelta) -> RunWindow:
    if now.tzinfo is None:
        raise ValueError("now must be timezone-aware")
    if lookback <= timedelta(0):
        raise ValueError("lookback must be positive")
    end = now.astimezone(UTC)
    return RunWindow(start=end - lookback, end=end)


def _naive_utc(value: datetime) -> datetime:
    return value.astimezone(UTC).replace(tzinfo=None)


def build_log_query(window: RunWindow, statuses: tuple[str, ...] = DELIVERABILITY_STATUSES) -> Select:
    return (
        select(DeliveryLog)
        .where(
            DeliveryLog.created_at >= _naive_utc(window.start),
            DeliveryLog.created_at <= _naive_utc(window.end),
            DeliveryLog.status.in_(statuses),
        )
        .order_by(DeliveryLog.created_at, DeliveryLog.id)
    )


def stream_logs(db: Session, window: RunWindow, *, batch_size: int = 500) -> Iterator[DeliveryLog]:
    # yield_per fetches in batches instead of buffering the whole result.
    stmt = build_log_query(window).execution_options(yield_per=batch_size)
    yield from db.scalars(stmt)
