"""
Capture Source — recorded messages stored as members of zip archives.

Each member is one message; its file name is the capture tag the classifier
works on. Members are yielded lazily, in archive index order.
"""

from __future__ import annotations

import logging
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from lucap.protocol.opcode_rules import FRAGMENT_MARKER

log = logging.getLogger(__name__)

ARCHIVE_SUFFIX = ".zip"


@dataclass
class CaptureEntry:
    """One recorded message."""
    tag: str
    payload: bytes
    size: int
    index: int = 0

    @property
    def hex_dump(self) -> str:
        return self.payload.hex()

    @property
    def pretty_hex(self) -> str:
        """16-byte wide hex dump with ASCII."""
        return pretty_hex(self.payload)

    def __repr__(self) -> str:
        return f"[#{self.index}] {self.tag} ({self.size} bytes)"


def pretty_hex(data: bytes) -> str:
    lines = []
    for i in range(0, len(data), 16):
        chunk = data[i:i+16]
        hex_part = " ".join(f"{b:02x}" for b in chunk)
        ascii_part = "".join(chr(b) if 32 <= b < 127 else "." for b in chunk)
        lines.append(f"  {i:04x}  {hex_part:<48s}  {ascii_part}")
    return "\n".join(lines)


def is_archive(path: Path) -> bool:
    return path.is_file() and path.suffix == ARCHIVE_SUFFIX


def iter_archive(path: str | Path, fragment_marker: str = FRAGMENT_MARKER) -> Iterator[CaptureEntry]:
    """Yield the entries of one archive in index order.

    Fragment members (name contains `fragment_marker`) are stepped over
    without being read; the index still advances past them.
    """
    path = Path(path)
    with zipfile.ZipFile(path) as zf:
        for index, info in enumerate(zf.infolist()):
            if info.is_dir():
                continue
            if fragment_marker in info.filename:
                log.debug("Skipping fragment %s in %s", info.filename, path.name)
                continue
            yield CaptureEntry(
                tag=info.filename,
                payload=zf.read(info),
                size=info.file_size,
                index=index,
            )
