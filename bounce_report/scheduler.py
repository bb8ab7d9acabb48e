import logging
import multiprocessing
from multiprocessing.connection import Connection
from multiprocessing.process import BaseProcess
import threading

from apscheduler.schedulers.blocking import BlockingScheduler

from bounce_report.completion import DONE_MESSAGE, notify_parent
from bounce_report.config import Settings, configure_logging
from bounce_report.graceful import InterruptRun, shutdown_signals
from bounce_report.mailer import SmtpMailer
from bounce_report.runner import ReportJob


logger = logging.getLogger(__name__)

WORKER_STOP_TIMEOUT_SECONDS = 60


def run_worker(settings: Settings, conn: Connection) -> None:
    configure_logging(settings)
    try:
        with shutdown_signals(InterruptRun()):
            ReportJob(settings, SmtpMailer(settings)).run(on_complete=notify_parent(conn))
    finally:
        conn.close()


class ReportSupervisor:
    """Runs reports in child processes and tracks the live ones for shutdown."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.stopping = False
        self._workers: set[BaseProcess] = set()
        self._lock = threading.RLock()

    def run_once(self) -> bool:
        """Run one report in a child process and wait for its completion message."""
        if self.stopping:
            logger.info("supervisor is stopping, skipping report run")
            return False

        receiver, sender = multiprocessing.Pipe(duplex=False)
        worker = multiprocessing.Process(target=run_worker, args=(self.settings, sender), name="bounce-report")
        with self._lock:
            worker.start()
            self._workers.add(worker)
        sender.close()

        try:
            message = receiver.recv()
        except EOFError:
            message = None
        finally:
            worker.join()
            receiver.close()
            with self._lock:
                self._workers.discard(worker)

        if message != DONE_MESSAGE:
            logger.error("report worker exited without signaling completion", extra={"exitcode": worker.exitcode})
            return False

        logger.info("report worker completed", extra={"exitcode": worker.exitcode})
        return True

    def stop_workers(self, timeout: float = WORKER_STOP_TIMEOUT_SECONDS) -> None:
        # SIGTERM lets each worker alert, drain and signal before it exits.
        self.stopping = True
        with self._lock:
            workers = list(self._workers)
        for worker in workers:
            if worker.is_alive():
                worker.terminate()
        for worker in workers:
            worker.join(timeout)
            if worker.is_alive():
                logger.error("report worker did not stop in time", extra={"pid": worker.pid})


def run_supervised(settings: Settings) -> bool:
    return ReportSupervisor(settings).run_once()


def start_scheduler(settings: Settings, *, run_now: bool = False) -> None:
    scheduler = BlockingScheduler(timezone="UTC")
    supervisor = ReportSupervisor(settings)
    scheduler.add_job(
        supervisor.run_once,
        "interval",
        hours=settings.schedule_interval_hours,
        id="bounce_report",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    def _shutdown(signum, frame) -> None:
        logger.info("received signal, stopping scheduler", extra={"signum": signum})
        supervisor.stop_workers()
        if scheduler.running:
            scheduler.shutdown(wait=False)

    with shutdown_signals(_shutdown):
        logger.info("scheduler started", extra={"interval_hours": settings.schedule_interval_hours})

        if run_now:
            supervisor.run_once()

        if supervisor.stopping:
            logger.info("scheduler stopped before start")
            return

        scheduler.start()

    logger.info("scheduler stopped")
