"""Exact storage rent estimate for a document upload.

The result funds the payment co-submitted with ``start``; the contract
rejects underpayment, so the estimate has to match the rent of the slots
the contract will actually create.
"""

from __future__ import annotations

from didslot.models.limits import DEFAULT_LIMITS, ContractLimits
from didslot.models.upload import CostEstimate


def slot_layout(length: int, limits: ContractLimits = DEFAULT_LIMITS) -> tuple[int, int]:
    """Return ``(slot_count, last_slot_size)`` for a document length.

    A length that is an exact multiple of the slot size fills its last
    slot completely; there is never a trailing empty slot.
    """
    if length < 0:
        raise ValueError(f"Document length must be >= 0, got {length}")
    if length == 0:
        return 0, 0
    slot_count = -(-length // limits.max_slot_size)
    last_slot_size = length - (slot_count - 1) * limits.max_slot_size
    return slot_count, last_slot_size


def metadata_cost(limits: ContractLimits = DEFAULT_LIMITS) -> int:
    """Rent of the per-identity metadata slot."""
    return limits.cost_per_slot + limits.metadata_record_width * limits.cost_per_byte


def estimate_upload_cost(
    length: int, limits: ContractLimits = DEFAULT_LIMITS
) -> CostEstimate:
    """Compute the rent needed to store ``length`` bytes.

    Cost = data slot rent + full-slot byte rent + slot key byte rent
    + trailing slot byte rent + metadata slot rent + metadata byte rent.
    """
    slot_count, last_slot_size = slot_layout(length, limits)

    data_cost = 0
    if slot_count:
        data_cost = (
            slot_count * limits.cost_per_slot
            + (slot_count - 1) * limits.max_slot_size * limits.cost_per_byte
            + slot_count * limits.slot_key_width * limits.cost_per_byte
            + last_slot_size * limits.cost_per_byte
        )

    return CostEstimate(
        total_cost=data_cost + metadata_cost(limits),
        slot_count=slot_count,
        last_slot_size=last_slot_size,
        document_length=length,
    )
