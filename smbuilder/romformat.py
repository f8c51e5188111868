"""Detect and convert the byte order of N64 ROM images."""
from __future__ import annotations

from pathlib import Path
from typing import Dict, Protocol

from .spec import RomFormat

_MAGIC: Dict[bytes, RomFormat] = {
    bytes((0x80, 0x37, 0x12, 0x40)): RomFormat.BIG_ENDIAN,
    bytes((0x37, 0x80, 0x40, 0x12)): RomFormat.BYTE_SWAPPED,
    bytes((0x40, 0x12, 0x37, 0x80)): RomFormat.LITTLE_ENDIAN,
}

CHUNK_SIZE = 1 << 16


def detect_format(path: Path) -> RomFormat:
    """Identify the byte order of the ROM at ``path`` from its header word."""

    with Path(path).open("rb") as handle:
        header = handle.read(4)
    try:
        return _MAGIC[header]
    except KeyError:
        raise ValueError(f"{path} is not an N64 ROM (header {header.hex()})") from None


def _swap_halfwords(chunk: bytes) -> bytes:
    out = bytearray(len(chunk))
    out[0::2] = chunk[1::2]
    out[1::2] = chunk[0::2]
    return bytes(out)


def _swap_words(chunk: bytes) -> bytes:
    out = bytearray(len(chunk))
    out[0::4] = chunk[3::4]
    out[1::4] = chunk[2::4]
    out[2::4] = chunk[1::4]
    out[3::4] = chunk[0::4]
    return bytes(out)


def convert(src: Path, dst: Path, from_format: RomFormat) -> None:
    """Write a big-endian copy of ``src`` to ``dst``.

    The file is processed in fixed-size chunks so memory use does not depend
    on the ROM size.
    """

    if from_format is RomFormat.BYTE_SWAPPED:
        transform, width = _swap_halfwords, 2
    elif from_format is RomFormat.LITTLE_ENDIAN:
        transform, width = _swap_words, 4
    else:
        transform, width = bytes, 1

    with Path(src).open("rb") as reader, Path(dst).open("wb") as writer:
        while True:
            chunk = reader.read(CHUNK_SIZE)
            if not chunk:
                break
            if len(chunk) % width:
                raise ValueError(f"{src} has a size that is not a multiple of {width} bytes")
            writer.write(transform(chunk))


class RomTool(Protocol):
    def detect_format(self, path: Path) -> RomFormat:
        ...

    def convert(self, src: Path, dst: Path, from_format: RomFormat) -> None:
        ...


class N64RomTool:
    """Default :class:`RomTool` backed by this module's functions."""

    def detect_format(self, path: Path) -> RomFormat:
        return detect_format(path)

    def convert(self, src: Path, dst: Path, from_format: RomFormat) -> None:
        convert(src, dst, from_format)


__all__ = ["CHUNK_SIZE", "N64RomTool", "RomTool", "convert", "detect_format"]
