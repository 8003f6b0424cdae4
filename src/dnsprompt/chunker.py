"""Split LLM answer text into TXT-sized, UTF-8-safe byte chunks.

Brief:
  A single TXT character-string carries at most 255 bytes, and a UDP answer
  should stay within a few kilobytes. This module truncates the answer to a
  total byte limit and slices it into chunks that never cut a multi-byte
  UTF-8 sequence in half.

Inputs:
  - Answer text (str) and two byte limits.

Outputs:
  - Ordered list of ``bytes`` chunks (or a ChunkSet with a truncation flag).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

DEFAULT_MAX_CHUNK_SIZE = 250
DEFAULT_MAX_TOTAL_SIZE = 4096


def _is_continuation(byte: int) -> bool:
    return (byte & 0xC0) == 0x80


def find_char_boundary(data: bytes, limit: int) -> int:
    """Brief: Return the largest character boundary at or before limit.

    Inputs:
      - data: UTF-8 encoded bytes.
      - limit: Candidate cut offset in bytes.

    Outputs:
      - int: Offset in [0, min(limit, len(data))] that does not fall inside a
        multi-byte sequence.

    Example:
      >>> find_char_boundary("aé".encode("utf-8"), 2)
      1
    """

    i = max(0, min(limit, len(data)))
    while 0 < i < len(data) and _is_continuation(data[i]):
        i -= 1
    return i


def truncate_to_char_boundary(data: bytes, limit: int) -> bytes:
    """Brief: Truncate data to at most limit bytes without splitting a character.

    Inputs:
      - data: UTF-8 encoded bytes.
      - limit: Maximum byte length.

    Outputs:
      - bytes: data unchanged when it fits, else the longest valid prefix.
    """

    if len(data) <= limit:
        return data
    return data[: find_char_boundary(data, limit)]


def _next_cut(data: bytes, max_chunk_size: int) -> int:
    cut = find_char_boundary(data, max_chunk_size)
    if cut > 0:
        return cut
    # A single character wider than max_chunk_size; emit it whole.
    cut = 1
    while cut < len(data) and _is_continuation(data[cut]):
        cut += 1
    return cut


def _chunk_bytes(data: bytes, max_chunk_size: int) -> List[bytes]:
    if not data:
        return []
    if len(data) <= max_chunk_size:
        return [data]

    chunks: List[bytes] = []
    remaining = data
    while remaining:
        cut = _next_cut(remaining, max_chunk_size)
        chunks.append(remaining[:cut])
        remaining = remaining[cut:]
    return chunks


def chunk_text(
    text: str,
    max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE,
    max_total_size: int = DEFAULT_MAX_TOTAL_SIZE,
) -> List[bytes]:
    """Brief: Split text into ordered, size-bounded, UTF-8-safe chunks.

    Inputs:
      - text: Answer text; may be empty.
      - max_chunk_size: Maximum bytes per chunk (default 250).
      - max_total_size: Maximum bytes across all chunks (default 4096).

    Outputs:
      - List[bytes]: Empty for empty input. Otherwise chunks whose
        concatenation equals text truncated to max_total_size on a
        character boundary.

    Example:
      >>> [len(c) for c in chunk_text("a" * 500)]
      [250, 250]
    """

    data = truncate_to_char_boundary(text.encode("utf-8"), max_total_size)
    return _chunk_bytes(data, max_chunk_size)


@dataclass(frozen=True)
class ChunkSet:
    """Brief: Result of chunking one answer.

    Inputs (fields):
      - chunks: Ordered chunk bytes.
      - truncated: True when the answer exceeded the total byte limit.
      - original_size: Encoded byte length of the answer before truncation.
    """

    chunks: Tuple[bytes, ...]
    truncated: bool = False
    original_size: int = 0

    def __len__(self) -> int:
        return len(self.chunks)

    def __iter__(self):
        return iter(self.chunks)

    @property
    def total_size(self) -> int:
        return sum(len(c) for c in self.chunks)


class Chunker:
    """Brief: Holds chunk limits and produces ChunkSet results.

    Inputs:
      - max_chunk_size: Maximum bytes per TXT string (> 0).
      - max_total_size: Maximum bytes per answer (> 0).

    Outputs:
      - Chunker instance; immutable and safe to share across tasks.

    Example:
      >>> Chunker(10, 15).chunk("x" * 20).truncated
      True
    """

    def __init__(
        self,
        max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE,
        max_total_size: int = DEFAULT_MAX_TOTAL_SIZE,
    ) -> None:
        if int(max_chunk_size) <= 0:
            raise ValueError("max_chunk_size must be positive")
        if int(max_total_size) <= 0:
            raise ValueError("max_total_size must be positive")
        self._max_chunk_size = int(max_chunk_size)
        self._max_total_size = int(max_total_size)

    @property
    def max_chunk_size(self) -> int:
        return self._max_chunk_size

    @property
    def max_total_size(self) -> int:
        return self._max_total_size

    def chunk_text(self, text: str) -> List[bytes]:
        return chunk_text(text, self._max_chunk_size, self._max_total_size)

    def chunk(self, text: str) -> ChunkSet:
        """Brief: Chunk text and report whether it was truncated.

        Inputs:
          - text: Answer text.

        Outputs:
          - ChunkSet with chunks, truncated flag and original byte size.
        """

        raw = text.encode("utf-8")
        data = truncate_to_char_boundary(raw, self._max_total_size)
        return ChunkSet(
            chunks=tuple(_chunk_bytes(data, self._max_chunk_size)),
            truncated=len(data) < len(raw),
            original_size=len(raw),
        )

    def __repr__(self) -> str:
        return (
            f"Chunker(max_chunk_size={self._max_chunk_size}, "
            f"max_total_size={self._max_total_size})"
        )
