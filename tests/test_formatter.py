from datetime import UTC, datetime
import gzip

import pytest

from bounce_report.formatter import build_filename, build_report, build_subject, compress_csv
from bounce_report.schemas import LogSummary


RUN_AT = datetime(2026, 10, 18, 19, 5, tzinfo=UTC)


def make_summary(count: int = 3, hosts: frozenset[str] = frozenset({"relay.trusted.example"})) -> LogSummary:
    csv_text = "Date,Status\r\n" + "".join(f"2026-10-18T12:0{i}:00+00:00,rejected\r\n" for i in range(count))
    return LogSummary(count=count, csv=csv_text, trusted_hosts_blocked=hosts, message="<p>summary</p>")


def test_filename_is_lowercase_and_localized() -> None:
    assert build_filename(RUN_AT, "America/Chicago") == "email-deliverability-logs-2026-10-18-2-05-pm-cdt.csv.gz"
    assert build_filename(RUN_AT) == "email-deliverability-logs-2026-10-18-7-05-pm-utc.csv.gz"


def test_filename_uses_twelve_for_midnight_and_noon() -> None:
    midnight = datetime(2026, 1, 2, 0, 30, tzinfo=UTC)
    noon = datetime(2026, 1, 2, 12, 0, tzinfo=UTC)

    assert build_filename(midnight) == "email-deliverability-logs-2026-01-02-12-30-am-utc.csv.gz"
    assert build_filename(noon) == "email-deliverability-logs-2026-01-02-12-00-pm-utc.csv.gz"


def test_subject_embeds_count_time_and_blocked_hosts() -> None:
    subject = build_subject(3, 2, RUN_AT, "America/Chicago")

    assert subject == "(3) Email Deliverability Logs for 10/18/26 2:05 PM CDT (2 trusted hosts blocked)"


def test_build_report_compresses_csv_losslessly() -> None:
    summary = make_summary()

    artifact = build_report(summary, RUN_AT, timezone="UTC")

    assert artifact.filename == "email-deliverability-logs-2026-10-18-7-05-pm-utc.csv.gz"
    assert artifact.content_type == "text/csv"
    assert artifact.content_encoding == "gzip"
    assert artifact.content[:2] == b"\x1f\x8b"
    assert gzip.decompress(artifact.content) == summary.csv.encode("utf-8")
    assert artifact.subject.startswith("(3) Email Deliverability Logs for 10/18/26 7:05 PM UTC")
    assert artifact.subject.endswith("(1 trusted hosts blocked)")
    assert artifact.message == "<p>summary</p>"


def test_empty_report_is_still_compressed() -> None:
    summary = LogSummary(count=0, csv="Date,Status\r\n", trusted_hosts_blocked=frozenset(), message="")

    artifact = build_report(summary, RUN_AT)

    assert gzip.decompress(artifact.content) == b"Date,Status\r\n"
    assert artifact.subject.startswith("(0) ")


def test_same_run_produces_identical_bytes() -> None:
    summary = make_summary()

    assert build_report(summary, RUN_AT).content == build_report(summary, RUN_AT).content


def test_compress_csv_round_trips_unicode() -> None:
    text = "host,message\r\nmx.example,\"réfusé, “quoted”\"\r\n"

    assert gzip.decompress(compress_csv(text)).decode("utf-8") == text


def test_naive_run_time_is_rejected() -> None:
    with pytest.raises(ValueError, match="timezone-aware"):
        build_report(make_summary(), datetime(2026, 10, 18, 19, 5))
