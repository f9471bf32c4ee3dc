"""Compact storage for the raw lines of an event.

Most events are a handful of short lines and are kept as a plain tuple.
Large events (long stack dumps, pasted payloads) are joined and zstd-compressed
once they cross a byte threshold. Decoding never raises: a corrupted buffer
decodes to None and the event simply reports no raw lines.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

import zstandard as zstd

logger = logging.getLogger(__name__)

_SEP = "\n"
ZSTD_LEVEL = 3


def encode_lines(lines: Sequence[str], level: int = ZSTD_LEVEL) -> bytes:
    """Join lines and zstd-compress them."""
    return zstd.ZstdCompressor(level=level).compress(_SEP.join(lines).encode("utf-8"))


def decode_lines(blob: bytes) -> Optional[List[str]]:
    """Inverse of encode_lines. Returns None for a corrupted buffer."""
    if not blob:
        return []
    try:
        text = zstd.ZstdDecompressor().decompress(blob).decode("utf-8")
    except (zstd.ZstdError, UnicodeDecodeError) as exc:
        logger.warning("could not decode stored lines (%d bytes): %s", len(blob), exc)
        return None
    return text.split(_SEP)


@dataclass(frozen=True)
class StoredLines:
    """Either a tuple of lines or a compressed blob of them."""
    payload: Union[Tuple[str, ...], bytes]
    count: int

    @classmethod
    def from_lines(cls, lines: Sequence[str], threshold: int = 2048) -> "StoredLines":
        size = sum(len(line) for line in lines) + max(len(lines) - 1, 0)
        if threshold > 0 and size >= threshold:
            return cls(payload=encode_lines(lines), count=len(lines))
        return cls(payload=tuple(lines), count=len(lines))

    @property
    def compressed(self) -> bool:
        return isinstance(self.payload, bytes)

    @property
    def nbytes(self) -> int:
        if isinstance(self.payload, bytes):
            return len(self.payload)
        return sum(len(line.encode("utf-8")) for line in self.payload)

    def lines(self) -> List[str]:
        if isinstance(self.payload, tuple):
            return list(self.payload)
        decoded = decode_lines(self.payload)
        return decoded if decoded is not None else []

    def __len__(self) -> int:
        return self.count
