import csv
from collections.abc import Iterable
from datetime import UTC, datetime
import html
import io
import json
import logging
from typing import Protocol

from bounce_report.schemas import LogSummary


logger = logging.getLogger(__name__)

CSV_HEADER: tuple[str, ...] = ("Date", "Status", "Recipient Domain", "Source Host", "Message", "Metadata")
BLOCKED_STATUSES = frozenset({"rejected", "blocked"})


class LogRecord(Protocol):
    created_at: datetime
    status: str
    source_host: str | None
    recipient_domain: str | None
    message: str | None
    meta: dict[str, object] | None


def normalize_host(host: str | None) -> str:
    if not host:
        return ""
    return host.strip().rstrip(".").lower()


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


def record_to_row(record: LogRecord) -> list[str]:
    return [
        format_timestamp(record.created_at),
        record.status or "",
        record.recipient_domain or "",
        record.source_host or "",
        record.message or "",
        json.dumps(record.meta, sort_keys=True, default=str) if record.meta else "",
    ]


def is_trusted_host_blocked(record: LogRecord, trusted_hosts: frozenset[str]) -> bool:
    if record.status not in BLOCKED_STATUSES:
        return False
    host = normalize_host(record.source_host)
    return bool(host) and host in trusted_hosts


def build_summary_message(count: int, blocked_hosts: frozenset[str]) -> str:
    parts = [f"<p>{count} deliverability log{'' if count == 1 else 's'} in this window.</p>"]
    if blocked_hosts:
        parts.append(f"<p>Trusted hosts blocked ({len(blocked_hosts)}):</p>")
        items = "".join(f"<li>{html.escape(host)}</li>" for host in sorted(blocked_hosts))
        parts.append(f"<ul>{items}</ul>")
    return "\n".join(parts)


def aggregate_logs(records: Iterable[LogRecord], *, trusted_hosts: Iterable[str] = ()) -> LogSummary:
    """Consume ``records`` once, writing each into the CSV as it arrives.

    Errors raised by the iterable propagate to the caller; nothing is retried.
    """
    allowlist = frozenset(normalize_host(host) for host in trusted_hosts if normalize_host(host))

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_HEADER)

    count = 0
    blocked: set[str] = set()
    for record in records:
        writer.writerow(record_to_row(record))
        count += 1
        if is_trusted_host_blocked(record, allowlist):
            blocked.add(normalize_host(record.source_host))

    blocked_hosts = frozenset(blocked)
    logger.info("aggregated deliverability logs", extra={"count": count, "trusted_hosts_blocked": len(blocked_hosts)})
    return LogSummary(
        count=count,
        csv=buffer.getvalue(),
        trusted_hosts_blocked=blocked_hosts,
        message=build_summary_message(count, blocked_hosts),
    )
