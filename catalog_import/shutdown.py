"""Graceful stop for import runs.

The first SIGINT/SIGTERM asks the pipeline to stop issuing new records; the
records already in flight finish, and every write is idempotent, so a later
run picks up where this one stopped. A second signal exits immediately.
"""

import signal
import sys
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from catalog_import.logging_config import get_logger

__all__ = [
    "ShutdownHandler",
    "get_shutdown_handler",
    "shutdown_requested",
]

logger = get_logger("shutdown")

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ShutdownHandler:
    """Process-wide stop flag fed by signal handlers or ``request()``.

    Usage:
        with get_shutdown_handler().installed():
            summary = importer.run(load)
    """

    def __init__(self) -> None:
        self._stop = threading.Event()
        self._previous: Dict[int, Any] = {}
        self.reason: Optional[str] = None

    @property
    def is_installed(self) -> bool:
        return bool(self._previous)

    def install(self) -> "ShutdownHandler":
        """Route SIGINT/SIGTERM here (main thread only). Returns self."""
        if self.is_installed:
            return self
        for signum in HANDLED_SIGNALS:
            self._previous[signum] = signal.getsignal(signum)
            signal.signal(signum, self._on_signal)
        return self

    def uninstall(self) -> None:
        """Put back whatever handlers were active before ``install``."""
        for signum, previous in self._previous.items():
            if previous is not None:
                signal.signal(signum, previous)
        self._previous.clear()

    @contextmanager
    def installed(self) -> Iterator["ShutdownHandler"]:
        """Clear any old stop request and handle signals for the block."""
        self.reset()
        self.install()
        try:
            yield self
        finally:
            self.uninstall()

    def _on_signal(self, signum: int, frame) -> None:
        name = signal.Signals(signum).name
        if self._stop.is_set():
            print(f"\nReceived {name} again, quitting without waiting.")
            sys.exit(1)

        self.request(name)
        print(f"\n\nReceived {name} - no new records will start; finishing the ones in flight.")
        print("    (Press Ctrl+C again to force quit)\n")

    @property
    def shutdown_requested(self) -> bool:
        return self._stop.is_set()

    def request(self, reason: str = "requested") -> None:
        """Ask the running import to stop (signals, tests, embedding callers)."""
        if not self._stop.is_set():
            self.reason = reason
            logger.warning(f"Stop requested ({reason})")
        self._stop.set()

    def reset(self) -> None:
        """Clear the stop flag before a new run."""
        self._stop.clear()
        self.reason = None


_handler: Optional[ShutdownHandler] = None
_handler_lock = threading.Lock()


def get_shutdown_handler() -> ShutdownHandler:
    """The process-wide handler, created on first use."""
    global _handler
    with _handler_lock:
        if _handler is None:
            _handler = ShutdownHandler()
        return _handler


def shutdown_requested() -> bool:
    return get_shutdown_handler().shutdown_requested
