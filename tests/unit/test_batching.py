"""Tests for batch grouping and slot references."""

from __future__ import annotations

import pytest

from didslot.core.batching import (
    encode_slot_key,
    group_batches,
    plan_slot_batches,
    slot_references,
)
from didslot.core.errors import PreconditionFailure
from didslot.core.partition import partition_document, split_into_chunks
from didslot.models.limits import DEFAULT_LIMITS, ContractLimits
from didslot.models.upload import SlotRef

IDENTITY_KEY = bytes(range(32))
SCENARIO_LIMITS = ContractLimits(max_slot_size=4096, bytes_per_call=2048)


class TestSlotKeys:
    def test_big_endian_uint64(self):
        assert encode_slot_key(1) == b"\x00" * 7 + b"\x01"
        assert len(encode_slot_key(2**40)) == DEFAULT_LIMITS.slot_key_width

    def test_references_fill_cap(self):
        refs = slot_references(1001, 5, IDENTITY_KEY)
        assert len(refs) == DEFAULT_LIMITS.max_slot_refs_per_batch
        assert refs[-1] == SlotRef(app_id=1001, name=IDENTITY_KEY)
        assert set(refs[:-1]) == {SlotRef(app_id=1001, name=encode_slot_key(5))}


class TestGroupBatches:
    @pytest.mark.parametrize("slot_size", [1, 1994, 15_952, 15_953, 32_768])
    def test_batches_respect_op_cap(self, make_document, slot_size: int):
        chunks = split_into_chunks(make_document(slot_size))
        batches = group_batches(
            chunks, slot_index=0, slot_refs=slot_references(1001, 0, IDENTITY_KEY)
        )
        assert all(b.op_count <= DEFAULT_LIMITS.max_ops_per_batch for b in batches)
        assert sum(b.op_count for b in batches) == len(chunks)

    def test_batch_offsets_follow_op_cap(self, make_document):
        chunks = split_into_chunks(make_document(32_768))
        batches = group_batches(
            chunks, slot_index=0, slot_refs=slot_references(1001, 0, IDENTITY_KEY)
        )
        step = DEFAULT_LIMITS.max_ops_per_batch * DEFAULT_LIMITS.bytes_per_call
        assert [b.offset for b in batches] == [k * step for k in range(len(batches))]
        assert [b.batch_index for b in batches] == list(range(len(batches)))

    def test_last_batch_ends_at_slot_size(self, make_document):
        chunks = split_into_chunks(make_document(32_768))
        batches = group_batches(
            chunks, slot_index=0, slot_refs=slot_references(1001, 0, IDENTITY_KEY)
        )
        assert batches[-1].end == 32_768

    def test_too_many_references_rejected(self):
        refs = slot_references(1001, 0, IDENTITY_KEY) + (SlotRef(app_id=1001, name=b"x"),)
        with pytest.raises(PreconditionFailure, match="references"):
            group_batches([], slot_index=0, slot_refs=refs)

    def test_no_chunks_no_batches(self):
        assert group_batches([], slot_index=0, slot_refs=()) == []


class TestPlanSlotBatches:
    def test_scenario_5000_bytes(self, make_document):
        segments = partition_document(make_document(5000), SCENARIO_LIMITS)
        plans = [
            plan_slot_batches(
                segment,
                app_id=1001,
                slot_index=10 + segment.position,
                identity_key=IDENTITY_KEY,
                limits=SCENARIO_LIMITS,
            )
            for segment in segments
        ]
        assert [len(p) for p in plans] == [1, 1]
        assert [p[0].op_count for p in plans] == [2, 1]
        assert [p[0].slot_index for p in plans] == [10, 11]
        assert plans[1][0].size == 904

    def test_every_op_references_its_slot(self, make_document):
        segment = partition_document(make_document(3000), SCENARIO_LIMITS)[0]
        (batch,) = plan_slot_batches(
            segment, app_id=1001, slot_index=3, identity_key=IDENTITY_KEY, limits=SCENARIO_LIMITS
        )
        names = {ref.name for ref in batch.slot_refs}
        assert names == {encode_slot_key(3), IDENTITY_KEY}
