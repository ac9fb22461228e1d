"""Contract limits: size and rent constants shared with the deployed contract.

Every pure planning function (cost, partition, batching) takes a
``ContractLimits`` instance so alternative deployments can be modeled
without touching module globals.  ``DEFAULT_LIMITS`` must match the
deployed contract exactly; the cost estimate funds an up-front payment
that the contract checks for sufficiency.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Application call budget: 2048 bytes of args minus the method selector (4),
# the identity key (34), the slot index (8) and the byte offset (8).
_CALL_ARG_BUDGET = 2048
_CALL_OVERHEAD = 4 + 34 + 8 + 8


class ContractLimits(BaseModel):
    """Fixed capacities and rent rates of the slot storage contract."""

    model_config = ConfigDict(frozen=True)

    max_slot_size: int = Field(default=32768, gt=0)
    bytes_per_call: int = Field(default=_CALL_ARG_BUDGET - _CALL_OVERHEAD, gt=0)
    cost_per_slot: int = Field(default=2500, ge=0)
    cost_per_byte: int = Field(default=400, ge=0)
    slot_key_width: int = Field(default=8, gt=0)
    # identity key (32) + start (8) + end (8) + status (1) + last size (8) + uploaded (8)
    metadata_record_width: int = Field(default=8 + 8 + 1 + 8 + 32 + 8, gt=0)
    max_ops_per_batch: int = Field(default=8, gt=0)
    max_slot_refs_per_batch: int = Field(default=8, ge=2)

    @model_validator(mode="after")
    def _call_fits_in_slot(self) -> ContractLimits:
        if self.bytes_per_call > self.max_slot_size:
            raise ValueError(
                f"bytes_per_call ({self.bytes_per_call}) cannot exceed "
                f"max_slot_size ({self.max_slot_size})"
            )
        return self

    @property
    def max_batch_bytes(self) -> int:
        """Largest payload a single atomic batch can carry."""
        return self.max_ops_per_batch * self.bytes_per_call


DEFAULT_LIMITS = ContractLimits()
