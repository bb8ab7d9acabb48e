from datetime import UTC, datetime, timedelta
import signal

import pytest

from bounce_report.db_models import DeliveryLog
from bounce_report.dispatcher import FAILURE_SUBJECT
from bounce_report.graceful import InterruptRun, ShutdownRequested, shutdown_signals
from bounce_report.runner import ReportJob
from bounce_report.schemas import RunState


T = datetime(2026, 10, 18, 14, 5, tzinfo=UTC)


def test_shutdown_signals_restores_previous_handlers() -> None:
    before = {sig: signal.getsignal(sig) for sig in (signal.SIGTERM, signal.SIGINT)}
    handler = InterruptRun()

    with shutdown_signals(handler):
        assert signal.getsignal(signal.SIGTERM) is handler
        assert signal.getsignal(signal.SIGINT) is handler

    assert {sig: signal.getsignal(sig) for sig in before} == before


def test_first_signal_interrupts_and_later_signals_are_ignored() -> None:
    handler = InterruptRun()

    with shutdown_signals(handler):
        with pytest.raises(ShutdownRequested, match="SIGTERM"):
            signal.raise_signal(signal.SIGTERM)
        signal.raise_signal(signal.SIGINT)

    assert handler.received == signal.SIGTERM


def test_sigterm_mid_run_alerts_drains_and_completes(test_settings, mailer, db) -> None:
    def interrupted(session, window):
        yield DeliveryLog(created_at=(T - timedelta(minutes=5)).replace(tzinfo=None), status="rejected")
        signal.raise_signal(signal.SIGTERM)
        yield DeliveryLog(created_at=(T - timedelta(minutes=1)).replace(tzinfo=None), status="rejected")

    completed = []
    job = ReportJob(test_settings, mailer, log_source=interrupted, clock=lambda: T)

    with shutdown_signals(InterruptRun()):
        result = job.run(on_complete=completed.append)

    assert result.status == "alerted"
    assert "SIGTERM" in result.error
    assert mailer.subjects == [FAILURE_SUBJECT]
    assert result.states[-3:] == (RunState.DISPATCHING, RunState.DRAINING, RunState.DONE)
    assert completed == [result]
