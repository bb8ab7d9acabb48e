from collections.abc import Callable, Iterator
from contextlib import contextmanager
import logging
import signal
from types import FrameType


logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS: tuple[signal.Signals, ...] = (signal.SIGTERM, signal.SIGINT)

SignalHandler = Callable[[int, FrameType | None], None]


class ShutdownRequested(Exception):
    def __init__(self, signum: int) -> None:
        super().__init__(f"received {signal.Signals(signum).name}, run interrupted")
        self.signum = signum


class InterruptRun:
    """Turn the first shutdown signal into ``ShutdownRequested``.

    Raised inside a run, the error takes the normal failure path, so the run
    still alerts, drains and signals completion. Later signals are ignored
    while that happens.
    """

    def __init__(self) -> None:
        self.received: int | None = None

    def __call__(self, signum: int, frame: FrameType | None) -> None:
        if self.received is not None:
            logger.warning("already shutting down, ignoring signal", extra={"signum": signum})
            return
        self.received = signum
        logger.info("received signal, shutting down gracefully", extra={"signum": signum})
        raise ShutdownRequested(signum)


@contextmanager
def shutdown_signals(handler: SignalHandler) -> Iterator[None]:
    previous = {sig: signal.signal(sig, handler) for sig in SHUTDOWN_SIGNALS}
    try:
        yield
    finally:
        for sig, old_handler in previous.items():
            signal.signal(sig, old_handler)
