"""Cooperative cancellation for the repository clone."""
from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator
import shutil
import signal
import threading

from .errors import BuildCancelled, FilesystemError, FilesystemErrorKind


class CancellationToken:
    """Shared cancel flag plus the directory to discard if a clone is cut short.

    The directory handle is only set inside :meth:`guard`; once the guarded
    block exits the token can no longer delete anything, so an interrupt that
    arrives after a finished clone leaves the repository alone.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cancelled = False
        self._cleanup_dir: Path | None = None

    @property
    def cancelled(self) -> bool:
        with self._lock:
            return self._cancelled

    @property
    def armed_dir(self) -> Path | None:
        with self._lock:
            return self._cleanup_dir

    def cancel(self) -> None:
        with self._lock:
            self._cancelled = True

    def reset(self) -> None:
        with self._lock:
            self._cancelled = False

    @contextmanager
    def guard(self, path: Path) -> Iterator["CancellationToken"]:
        with self._lock:
            self._cleanup_dir = path
        try:
            yield self
        finally:
            with self._lock:
                self._cleanup_dir = None

    def raise_if_cancelled(self, stage: Any = None) -> None:
        if self.cancelled:
            raise BuildCancelled("the build was cancelled by the user", stage=stage)

    def discard_armed_dir(self) -> bool:
        """Remove the guarded directory; returns whether anything was removed."""

        target = self.armed_dir
        if target is None or not target.exists():
            return False
        try:
            shutil.rmtree(target)
        except OSError as exc:
            raise FilesystemError(
                f"failed to remove the dir at {target}",
                path=target,
                kind=FilesystemErrorKind.REMOVE,
                cause=exc,
            ) from exc
        return True


@contextmanager
def interrupt_handler(token: CancellationToken, signum: int = signal.SIGINT) -> Iterator[None]:
    """Route ``signum`` to ``token.cancel`` for the duration of the block.

    Signal handlers can only be installed from the main thread; elsewhere the
    host is expected to call :meth:`CancellationToken.cancel` itself.
    """

    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _handle(received: int, frame: Any) -> None:
        token.cancel()

    previous = signal.signal(signum, _handle)
    try:
        yield
    finally:
        signal.signal(signum, previous)


__all__ = ["CancellationToken", "interrupt_handler"]
