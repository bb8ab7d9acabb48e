from collections.abc import Callable
import logging
from multiprocessing.connection import Connection

from bounce_report.schemas import JobResult


logger = logging.getLogger(__name__)

CompletionCallback = Callable[[JobResult], None]

DONE_MESSAGE = "done"


def exit_code_for(result: JobResult, *, strict: bool = False) -> int:
    # Failures are already reported by email, so the default is always 0.
    if strict and not result.report_sent:
        return 1
    return 0


def log_completion(result: JobResult) -> None:
    log = logger.info if result.report_sent else logger.warning
    log(
        "deliverability report run finished",
        extra={"status": result.status, "count": result.count, "report_filename": result.filename},
    )


def exit_process(*, strict: bool = False) -> CompletionCallback:
    def _exit(result: JobResult) -> None:
        log_completion(result)
        print(
            "status={status} count={count} filename={filename}".format(
                status=result.status,
                count=result.count,
                filename=result.filename,
            ),
            flush=True,
        )
        raise SystemExit(exit_code_for(result, strict=strict))

    return _exit


def notify_parent(conn: Connection) -> CompletionCallback:
    def _notify(result: JobResult) -> None:
        log_completion(result)
        conn.send(DONE_MESSAGE)

    return _notify
