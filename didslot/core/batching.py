"""Grouping of a slot's chunks into atomically committed batches.

Batch ``k`` holds chunks ``[k * max_ops, (k + 1) * max_ops)``.  Every
operation in a slot's batches touches the same data slot plus the
identity slot, so the slot-reference cap only bounds how many copies of
the data slot reference each operation carries.
"""

from __future__ import annotations

import struct

from didslot.core.errors import PreconditionFailure
from didslot.core.partition import split_into_chunks
from didslot.models.limits import DEFAULT_LIMITS, ContractLimits
from didslot.models.upload import Batch, Chunk, SlotRef, SlotSegment


def encode_slot_key(slot_index: int) -> bytes:
    """Big-endian uint64 key of a data slot."""
    return struct.pack(">Q", slot_index)


def slot_references(
    app_id: int,
    slot_index: int,
    identity_key: bytes,
    limits: ContractLimits = DEFAULT_LIMITS,
) -> tuple[SlotRef, ...]:
    """Reference set for writes into ``slot_index``.

    The data slot is repeated to fill the cap (each reference widens the
    operation's I/O budget); the identity slot takes the last position.
    """
    data_ref = SlotRef(app_id=app_id, name=encode_slot_key(slot_index))
    identity_ref = SlotRef(app_id=app_id, name=identity_key)
    return (data_ref,) * (limits.max_slot_refs_per_batch - 1) + (identity_ref,)


def group_batches(
    chunks: list[Chunk],
    *,
    slot_index: int,
    slot_refs: tuple[SlotRef, ...],
    limits: ContractLimits = DEFAULT_LIMITS,
) -> list[Batch]:
    """Group an ordered chunk sequence for one slot into batches."""
    if len(slot_refs) > limits.max_slot_refs_per_batch:
        raise PreconditionFailure(
            f"Batch references {len(slot_refs)} slots, "
            f"limit is {limits.max_slot_refs_per_batch}"
        )
    size = limits.max_ops_per_batch
    batches: list[Batch] = []
    for batch_index, first in enumerate(range(0, len(chunks), size)):
        group = tuple(chunks[first:first + size])
        batches.append(
            Batch(
                slot_index=slot_index,
                batch_index=batch_index,
                offset=group[0].offset,
                chunks=group,
                slot_refs=slot_refs,
            )
        )
    return batches


def plan_slot_batches(
    segment: SlotSegment,
    *,
    app_id: int,
    slot_index: int,
    identity_key: bytes,
    limits: ContractLimits = DEFAULT_LIMITS,
) -> list[Batch]:
    """Chunk one slot segment and group its chunks into batches."""
    return group_batches(
        split_into_chunks(segment.data, limits),
        slot_index=slot_index,
        slot_refs=slot_references(app_id, slot_index, identity_key, limits),
        limits=limits,
    )
