from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class RunState(str, Enum):
    IDLE = "idle"
    CONNECTING_STORE = "connecting_store"
    AGGREGATING = "aggregating"
    FORMATTING = "formatting"
    FAILED = "failed"
    DISPATCHING = "dispatching"
    DRAINING = "draining"
    DONE = "done"


@dataclass(frozen=True)
class RunWindow:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class LogSummary:
    count: int
    csv: str
    trusted_hosts_blocked: frozenset[str]
    message: str


@dataclass(frozen=True)
class ReportArtifact:
    filename: str
    csv: str
    content: bytes
    subject: str
    message: str
    run_at: datetime
    content_type: str = "text/csv"
    content_encoding: str = "gzip"


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes
    content_type: str


@dataclass(frozen=True)
class OutboundEmail:
    to: str
    subject: str
    attachments: tuple[Attachment, ...] = ()


@dataclass(frozen=True)
class JobResult:
    state: RunState
    status: str
    count: int | None
    filename: str | None
    error: str | None
    dispatch_error: str | None
    states: tuple[RunState, ...] = field(default_factory=tuple)

    @property
    def report_sent(self) -> bool:
        return self.status == "sent"
