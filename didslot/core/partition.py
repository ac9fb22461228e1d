"""Document partitioning into slot segments and call-sized chunks.

Both levels obey the same contract: pieces are contiguous, non-overlapping,
cover the input exactly once, and keep input order.
"""

from __future__ import annotations

from collections.abc import Iterable

from didslot.core.cost import slot_layout
from didslot.core.errors import PreconditionFailure
from didslot.models.limits import DEFAULT_LIMITS, ContractLimits
from didslot.models.upload import Chunk, SlotSegment


def partition_document(
    document: bytes, limits: ContractLimits = DEFAULT_LIMITS
) -> list[SlotSegment]:
    """Split a document into slot-sized segments, in document order."""
    slot_count, _ = slot_layout(len(document), limits)
    view = memoryview(document)
    segments: list[SlotSegment] = []
    for position in range(slot_count):
        start = position * limits.max_slot_size
        end = min(start + limits.max_slot_size, len(document))
        segments.append(
            SlotSegment(position=position, start=start, data=bytes(view[start:end]))
        )
    return segments


def split_into_chunks(
    data: bytes, limits: ContractLimits = DEFAULT_LIMITS
) -> list[Chunk]:
    """Split one slot's bytes into chunks of at most ``bytes_per_call``."""
    step = limits.bytes_per_call
    return [
        Chunk(index=i, offset=offset, data=data[offset:offset + step])
        for i, offset in enumerate(range(0, len(data), step))
    ]


def reassemble(segments: Iterable[SlotSegment], limits: ContractLimits = DEFAULT_LIMITS) -> bytes:
    """Concatenate every chunk of every segment, in order."""
    return b"".join(
        chunk.data
        for segment in segments
        for chunk in split_into_chunks(segment.data, limits)
    )


def verify_partition(
    document: bytes,
    segments: list[SlotSegment],
    limits: ContractLimits = DEFAULT_LIMITS,
) -> None:
    """Raise ``PreconditionFailure`` unless the chunks rebuild ``document``.

    A mismatch is an internal planning bug, never a network condition.
    """
    rebuilt = reassemble(segments, limits)
    if rebuilt != document:
        raise PreconditionFailure(
            f"Reassembled slot data does not match the document "
            f"({len(rebuilt)} bytes rebuilt, {len(document)} expected)"
        )
