"""Transient build workspace removed on every exit path."""

from __future__ import annotations

import atexit
import shutil
import signal
import tempfile
from pathlib import Path
from types import FrameType, TracebackType
from typing import Any

# SIGINT already unwinds as KeyboardInterrupt.
_TERMINATING_SIGNALS = tuple(
    getattr(signal, name) for name in ("SIGTERM", "SIGHUP") if hasattr(signal, name)
)


def _raise_system_exit(signum: int, frame: FrameType | None) -> None:
    raise SystemExit(128 + signum)


class TransientWorkspace:
    """Scratch directory owned by one invocation.

    The directory is created lazily by :meth:`ensure` and removed by
    :meth:`cleanup`, both idempotent. Used as a context manager it also turns
    termination signals into ``SystemExit`` so the ``with`` block unwinds and
    cleanup runs; an ``atexit`` hook covers interpreter shutdown.
    """

    def __init__(self, prefix: str = "libmem-build-") -> None:
        self.prefix = prefix
        self._path: Path | None = None
        self._previous_handlers: dict[int, Any] = {}

    @property
    def path(self) -> Path | None:
        return self._path

    def ensure(self) -> Path:
        if self._path is None:
            self._path = Path(tempfile.mkdtemp(prefix=self.prefix)).resolve()
            atexit.register(self.cleanup)
        return self._path

    def cleanup(self) -> None:
        if self._path is None:
            return
        path, self._path = self._path, None
        shutil.rmtree(path, ignore_errors=True)
        atexit.unregister(self.cleanup)

    def __enter__(self) -> TransientWorkspace:
        self._install_signal_handlers()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            self.cleanup()
        finally:
            self._restore_signal_handlers()

    def _install_signal_handlers(self) -> None:
        for signum in _TERMINATING_SIGNALS:
            try:
                self._previous_handlers[signum] = signal.signal(signum, _raise_system_exit)
            except ValueError:
                # Not the main thread; rely on the with-block and atexit.
                return

    def _restore_signal_handlers(self) -> None:
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        self._previous_handlers.clear()
