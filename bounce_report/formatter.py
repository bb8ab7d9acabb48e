from datetime import datetime
import gzip
from zoneinfo import ZoneInfo

from bounce_report.schemas import LogSummary, ReportArtifact


FILENAME_PREFIX = "email-deliverability-logs"


def _localize(run_at: datetime, timezone: str) -> datetime:
    if run_at.tzinfo is None:
        raise ValueError("run_at must be timezone-aware")
    return run_at.astimezone(ZoneInfo(timezone))


def _clock(value: datetime) -> tuple[int, str, str]:
    hour = value.hour % 12 or 12
    meridiem = "AM" if value.hour < 12 else "PM"
    return hour, f"{value.minute:02d}", meridiem


def format_filename_stamp(value: datetime) -> str:
    """YYYY-MM-DD-h-mm-A-z"""
    hour, minute, meridiem = _clock(value)
    return f"{value:%Y-%m-%d}-{hour}-{minute}-{meridiem}-{value:%Z}"


def format_display_time(value: datetime) -> str:
    """M/D/YY h:mm A z"""
    hour, minute, meridiem = _clock(value)
    return f"{value.month}/{value.day}/{value:%y} {hour}:{minute} {meridiem} {value:%Z}"


def build_filename(run_at: datetime, timezone: str = "UTC") -> str:
    local = _localize(run_at, timezone)
    return f"{FILENAME_PREFIX}-{format_filename_stamp(local)}.csv.gz".lower()


def build_subject(count: int, blocked_hosts: int, run_at: datetime, timezone: str = "UTC") -> str:
    local = _localize(run_at, timezone)
    return (
        f"({count}) Email Deliverability Logs for {format_display_time(local)} "
        f"({blocked_hosts} trusted hosts blocked)"
    )


def compress_csv(csv_text: str, *, mtime: float | None = None) -> bytes:
    return gzip.compress(csv_text.encode("utf-8"), compresslevel=9, mtime=mtime)


def build_report(summary: LogSummary, run_at: datetime, *, timezone: str = "UTC") -> ReportArtifact:
    local = _localize(run_at, timezone)
    return ReportArtifact(
        filename=build_filename(local, timezone),
        csv=summary.csv,
        content=compress_csv(summary.csv, mtime=int(local.timestamp())),
        subject=build_subject(summary.count, len(summary.trusted_hosts_blocked), local, timezone),
        message=summary.message,
        run_at=local,
    )
