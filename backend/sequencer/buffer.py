"""
Utterance buffer.

Holds chunks received for the active utterance until the cursor reaches them.

Rules:
- Keyed by (message_id, sequence).
- Immutable: every operation returns a new buffer.
- No policy: duplicate and stale handling is decided by the reducer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator


ChunkKey = tuple[str, int]


@dataclass(frozen=True)
class Chunk:
    """One received unit of an utterance."""
    message_id: str
    sequence: int
    audio_src: str | None = None
    final: bool = False

    @property
    def key(self) -> ChunkKey:
        return (self.message_id, self.sequence)

    @property
    def playable(self) -> bool:
        return bool(self.audio_src)


@dataclass(frozen=True)
class UtteranceBuffer:
    """
    Immutable chunk store.

    The mapping is never mutated after construction; with_chunk() and
    without() copy it.
    """

    chunks: dict[ChunkKey, Chunk] = field(default_factory=dict)

    # -------------------------
    # Queries
    # -------------------------

    def get(self, message_id: str, sequence: int) -> Chunk | None:
        return self.chunks.get((message_id, sequence))

    def contains(self, message_id: str, sequence: int) -> bool:
        return (message_id, sequence) in self.chunks

    def has_pending_after(self, message_id: str, sequence: int) -> bool:
        """
        True if any chunk of message_id with a sequence greater than
        `sequence` is buffered (i.e. a gap is open at `sequence`).
        """
        return any(
            mid == message_id and seq > sequence
            for (mid, seq) in self.chunks
        )

    def sequences(self, message_id: str) -> tuple[int, ...]:
        """Buffered sequence numbers of message_id, ascending."""
        return tuple(sorted(seq for (mid, seq) in self.chunks if mid == message_id))

    # -------------------------
    # Transformations
    # -------------------------

    def with_chunk(self, chunk: Chunk) -> UtteranceBuffer:
        """Return a buffer that also holds `chunk` (replacing nothing)."""
        if chunk.key in self.chunks:
            return self
        new_chunks = dict(self.chunks)
        new_chunks[chunk.key] = chunk
        return UtteranceBuffer(chunks=new_chunks)

    def without(self, message_id: str, sequence: int) -> UtteranceBuffer:
        """Return a buffer without the chunk at (message_id, sequence)."""
        if (message_id, sequence) not in self.chunks:
            return self
        new_chunks = dict(self.chunks)
        del new_chunks[(message_id, sequence)]
        return UtteranceBuffer(chunks=new_chunks)

    # -------------------------
    # Introspection helpers
    # -------------------------

    def __len__(self) -> int:
        return len(self.chunks)

    def __iter__(self) -> Iterator[Chunk]:
        return iter(self.chunks.values())

    def is_empty(self) -> bool:
        return not self.chunks
