"""Archive extraction used to install texture and content packs."""
from __future__ import annotations

from pathlib import Path
import tarfile
import zipfile

import zstandard as zstd

_SUFFIX_FORMATS: list[tuple[str, str]] = [
    (".tar.zst", "zst"),
    (".tzst", "zst"),
    (".tar.gz", "gztar"),
    (".tgz", "gztar"),
    (".tar.bz2", "bztar"),
    (".tbz", "bztar"),
    (".tar.xz", "xztar"),
    (".txz", "xztar"),
    (".tar", "tar"),
    (".zip", "zip"),
]

_TAR_MODES: dict[str, str] = {
    "gztar": "r:gz",
    "bztar": "r:bz2",
    "xztar": "r:xz",
    "tar": "r:",
}


def archive_format(path: Path) -> str | None:
    """Return the archive format implied by ``path``'s suffix, if any."""

    filename = path.name.lower()
    for suffix, fmt in sorted(_SUFFIX_FORMATS, key=lambda item: len(item[0]), reverse=True):
        if filename.endswith(suffix):
            return fmt
    return None


def is_archive(path: Path) -> bool:
    return path.is_file() and archive_format(path) is not None


def _safe_tar_extract(tar: tarfile.TarFile, dest: Path) -> None:
    tar.extractall(path=dest, filter="data")


def extract_archive(archive_path: Path | str, destination_dir: Path | str) -> None:
    """Extract an archive to a destination directory.

    Parameters
    ----------
    archive_path:
        Path to the archive file.
    destination_dir:
        Directory where contents should be extracted; created if missing.
    """
    archive = Path(archive_path).expanduser()
    dest = Path(destination_dir).expanduser()

    if not archive.exists():
        raise FileNotFoundError(f"Archive '{archive}' does not exist")

    fmt = archive_format(archive)
    if fmt is None:
        raise ValueError(f"Unsupported archive format: {archive.name}")

    dest.mkdir(parents=True, exist_ok=True)

    if fmt == "zst":
        _extract_zst(archive, dest)
    elif fmt == "zip":
        with zipfile.ZipFile(archive, "r") as zip_ref:
            zip_ref.extractall(dest)
    else:
        with tarfile.open(archive, _TAR_MODES[fmt]) as tar:
            _safe_tar_extract(tar, dest)


def _extract_zst(archive: Path, dest: Path) -> None:
    dctx = zstd.ZstdDecompressor()
    try:
        with archive.open("rb") as ifh:
            with dctx.stream_reader(ifh) as reader:
                with tarfile.open(fileobj=reader, mode="r|") as tar:
                    _safe_tar_extract(tar, dest)
    except zstd.ZstdError as exc:
        raise ValueError(f"Corrupt zstd archive '{archive}': {exc}") from exc


__all__ = ["archive_format", "extract_archive", "is_archive"]
