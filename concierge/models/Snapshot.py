from typing import Any, Optional

from pydantic import BaseModel, field_validator

from concierge.models.types import Leaf, RecipientId
from concierge.utils import pad_token_id, to_hex


class LeafSnapshotEntry(BaseModel):
    """
    One leaf observed in a given week. Field names follow the snapshot csv header
    so older files can be read back as is.
    :param `isClaimed`: whether the leaf was already used on chain when the snapshot was taken
    :param `amount`: decoded claimable amount in base units, absent for imported snapshots
    """

    nftId: RecipientId
    leaf: Leaf
    isClaimed: bool
    amount: Optional[int] = None

    @field_validator("nftId", mode="before")
    @classmethod
    def pad_nft_id(cls, nft_id: Any) -> str:
        return pad_token_id(nft_id)

    @field_validator("leaf")
    @classmethod
    def normalize_leaf(cls, leaf: str) -> str:
        return to_hex(leaf)

    @field_validator("isClaimed", mode="before")
    @classmethod
    def parse_is_claimed(cls, value: Any) -> Any:
        # csv exports write the js style "true" / "false"
        if isinstance(value, str):
            return value.strip().lower() == "true"
        return value

    @field_validator("amount", mode="before")
    @classmethod
    def parse_amount(cls, value: Any) -> Any:
        return None if value in (None, "") else int(value)
