from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta
import logging

from sqlalchemy import Engine
from sqlalchemy.orm import Session

from bounce_report.aggregator import aggregate_logs
from bounce_report.completion import CompletionCallback, log_completion
from bounce_report.config import Settings
from bounce_report.database import build_engine, build_session_factory, ensure_store_ready
from bounce_report.db_models import DeliveryLog
from bounce_report.dispatcher import send_failure_alert, send_report
from bounce_report.formatter import build_report
from bounce_report.log_query import compute_window, stream_logs
from bounce_report.mailer import Mailer
from bounce_report.schemas import JobResult, ReportArtifact, RunState, RunWindow


logger = logging.getLogger(__name__)

LogSource = Callable[[Session, RunWindow], Iterable[DeliveryLog]]


class ReportJob:
    """One run of the deliverability report.

    Stages run strictly in order. Any error while connecting, aggregating or
    formatting switches the run to the failure alert; mail errors on either
    path are logged and the run still drains and signals completion.

    The engine is disposed before ``on_complete`` runs, so a completion
    callback that exits the process cannot skip cleanup. Only a failure while
    disposing the engine escapes ``run``, and then ``on_complete`` is not
    called.
    """

    def __init__(
        self,
        settings: Settings,
        mailer: Mailer,
        *,
        engine_factory: Callable[[str], Engine] = build_engine,
        log_source: LogSource | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.settings = settings
        self.mailer = mailer
        self.engine_factory = engine_factory
        self.log_source = log_source or self._stream_from_store
        self.clock = clock or (lambda: datetime.now(UTC))

    def run(self, on_complete: CompletionCallback = log_completion) -> JobResult:
        states: list[RunState] = [RunState.IDLE]

        def enter(state: RunState) -> None:
            states.append(state)
            logger.debug("report job state changed", extra={"state": state.value})

        now = self.clock()
        engine: Engine | None = None
        artifact: ReportArtifact | None = None
        count: int | None = None
        error: Exception | None = None

        try:
            enter(RunState.CONNECTING_STORE)
            engine = self.engine_factory(self.settings.database_url)
            ensure_store_ready(engine)

            enter(RunState.AGGREGATING)
            window = compute_window(now, timedelta(hours=self.settings.lookback_hours))
            with build_session_factory(engine)() as db:
                summary = aggregate_logs(self.log_source(db, window), trusted_hosts=self.settings.trusted_hosts)
            count = summary.count

            enter(RunState.FORMATTING)
            artifact = build_report(summary, now, timezone=self.settings.report_timezone)
        except Exception as exc:
            error = exc
            enter(RunState.FAILED)
            logger.exception("deliverability report failed", extra={"run_at": now.isoformat()})

        enter(RunState.DISPATCHING)
        status, dispatch_error = self._dispatch(artifact, error)

        enter(RunState.DRAINING)
        if engine is not None:
            engine.dispose()

        enter(RunState.DONE)
        result = JobResult(
            state=RunState.DONE,
            status=status,
            count=count if error is None else None,
            filename=artifact.filename if artifact is not None else None,
            error=str(error) if error is not None else None,
            dispatch_error=dispatch_error,
            states=tuple(states),
        )
        on_complete(result)
        return result

    def _dispatch(self, artifact: ReportArtifact | None, error: Exception | None) -> tuple[str, str | None]:
        to = self.settings.alert_email
        try:
            if artifact is not None:
                send_report(self.mailer, artifact, to=to)
                return "sent", None
            if error is None:
                raise RuntimeError("report was neither built nor failed")
            send_failure_alert(self.mailer, error, to=to)
            return "alerted", None
        except Exception as exc:
            # No further fallback exists once mail delivery fails.
            logger.exception("deliverability email could not be delivered", extra={"to": to})
            return "undelivered", str(exc)

    def _stream_from_store(self, db: Session, window: RunWindow) -> Iterable[DeliveryLog]:
        return stream_logs(db, window, batch_size=self.settings.stream_batch_size)
