"""Repository cloning backed by pygit2."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional, Protocol

import pygit2

from .errors import NetworkError

CloneProgress = Callable[[int, int, int], None]
"""Called with (received objects, total objects, received bytes)."""


class _TransferCallbacks(pygit2.RemoteCallbacks):
    """Forward libgit2 transfer statistics to a plain callable.

    Exceptions raised by the callable abort the clone; pygit2 re-raises them
    from :func:`pygit2.clone_repository` once libgit2 unwinds.
    """

    def __init__(self, progress: Optional[CloneProgress]) -> None:
        super().__init__()
        self._progress = progress

    def transfer_progress(self, stats: pygit2.remote.TransferProgress) -> None:
        if self._progress is not None:
            self._progress(stats.received_objects, stats.total_objects, stats.received_bytes)


class VersionControl(Protocol):
    def clone(
        self,
        url: str,
        branch: str,
        dest: Path,
        progress: Optional[CloneProgress] = None,
    ) -> None:
        ...


class GitClient:
    """Clone repositories through libgit2."""

    def clone(
        self,
        url: str,
        branch: str,
        dest: Path,
        progress: Optional[CloneProgress] = None,
    ) -> None:
        try:
            pygit2.clone_repository(
                url,
                str(dest),
                checkout_branch=branch,
                callbacks=_TransferCallbacks(progress),
            )
        except (pygit2.GitError, ValueError) as exc:
            raise NetworkError(
                f"failed to clone the repository into {dest}",
                url=url,
                cause=exc,
            ) from exc


__all__ = ["CloneProgress", "GitClient", "VersionControl"]
