from __future__ import annotations
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

from concierge.models.types import BigNumber, HexString, Leaf, RecipientId
from concierge.utils import pad_token_id, to_hex


class ClaimRecord(BaseModel):
    """
    One eligibility entry for one recipient in one distribution week, as returned by the proof service.
    The engine never recomputes the leaf, it is only compared against chain state and previous snapshots.

    :param `recipient`: NFT token id the claim belongs to, zero padded
    :param `leaf`: hash of (recipient, group, data) computed by the proof service
    :param `proof`: sibling hashes, ordered from the leaf up to the root
    :param `group`: tree group tag, passed through to the contract as is
    :param `data`: encoded leaf payload carrying amount and timestamps
    :param `decodedAmount`: claimable amount as decoded by the distributor contract,
    only filled in during reconciliation
    """

    recipient: RecipientId
    leaf: Leaf
    proof: list[HexString]
    group: HexString
    data: HexString
    amount: Optional[BigNumber] = None
    unlockingAt: Optional[int] = None
    # the service has shipped both spellings
    expiryTimestamp: int = Field(
        0, validation_alias=AliasChoices("expiryTimestamp", "expiryTimetamp")
    )
    decodedAmount: Optional[int] = None

    @field_validator("recipient", mode="before")
    @classmethod
    def pad_recipient(cls, recipient: Any) -> str:
        return pad_token_id(recipient)

    @field_validator("leaf", "group", "data")
    @classmethod
    def normalize_hex(cls, value: str) -> str:
        return to_hex(value)

    @field_validator("proof")
    @classmethod
    def normalize_proof(cls, proof: list[str]) -> list[str]:
        return [to_hex(p) for p in proof]

    @field_validator("amount", mode="before")
    @classmethod
    def amount_to_str(cls, amount: Any) -> Optional[str]:
        return None if amount is None else str(amount)


class LeafData(BaseModel):
    """Decoded leaf payload, as returned by the distributor's leaf decoder"""

    index: int
    claimable_timestamp: int
    claimable_amount: int
    expiry_timestamp: int
    nft_token_id: int

    @staticmethod
    def from_call(decoded: Any) -> LeafData:
        # ((index, claimableTimestamp, claimableAmount), expiryTimestamp, nftTokenId)
        base, expiry, token_id = decoded
        return LeafData(
            index=base[0],
            claimable_timestamp=base[1],
            claimable_amount=base[2],
            expiry_timestamp=expiry,
            nft_token_id=token_id,
        )


class DistributionWindow(BaseModel):
    start_time: int
    end_time: int

    def is_open(self, now: int) -> bool:
        return self.start_time <= now <= self.end_time
