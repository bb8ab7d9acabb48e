import html
import json
import logging
import traceback

from bounce_report.mailer import Mailer
from bounce_report.schemas import Attachment, OutboundEmail, ReportArtifact


logger = logging.getLogger(__name__)

ALERT_TEMPLATE = "alert"
FAILURE_SUBJECT = "Email Deliverability Report Issue"

_SCALAR_TYPES = (str, int, float, bool, type(None))

# (artifact content type, content encoding) -> attachment MIME type
ATTACHMENT_TYPES: dict[tuple[str, str], str] = {
    ("text/csv", "gzip"): "application/gzip",
}


class DispatchError(RuntimeError):
    pass


def serialize_error(exc: BaseException) -> dict[str, object]:
    """Flatten an exception into JSON-friendly fields for the alert body."""
    payload: dict[str, object] = {
        "name": type(exc).__name__,
        "message": str(exc),
        "stack": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
    }
    for key, value in vars(exc).items():
        if key.startswith("_") or key in payload:
            continue
        payload[key] = value if isinstance(value, _SCALAR_TYPES) else repr(value)

    cause = exc.__cause__
    if cause is None and not exc.__suppress_context__:
        cause = exc.__context__
    if cause is not None:
        payload["cause"] = serialize_error(cause)
    return payload


def attachment_type(artifact: ReportArtifact) -> str:
    return ATTACHMENT_TYPES.get((artifact.content_type, artifact.content_encoding), artifact.content_type)


def _send(mailer: Mailer, message: OutboundEmail, locals: dict[str, str]) -> None:
    try:
        mailer.send_templated_email(ALERT_TEMPLATE, message, locals)
    except Exception as exc:
        raise DispatchError(f"failed to send '{message.subject}': {exc}") from exc


def send_report(mailer: Mailer, artifact: ReportArtifact, *, to: str) -> None:
    message = OutboundEmail(
        to=to,
        subject=artifact.subject,
        attachments=(
            Attachment(
                filename=artifact.filename,
                content=artifact.content,
                content_type=attachment_type(artifact),
            ),
        ),
    )
    _send(mailer, message, {"message": artifact.message})
    logger.info("deliverability report dispatched", extra={"report_filename": artifact.filename, "to": to})


def send_failure_alert(mailer: Mailer, error: BaseException, *, to: str) -> None:
    details = json.dumps(serialize_error(error), indent=2, default=str)
    message = OutboundEmail(to=to, subject=FAILURE_SUBJECT)
    _send(mailer, message, {"message": f"<pre><code>{html.escape(details)}</code></pre>"})
    logger.info("deliverability failure alert dispatched", extra={"to": to, "error_type": type(error).__name__})
