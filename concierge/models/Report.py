from enum import Enum
from typing import Optional

from pydantic import BaseModel

from concierge.models.types import Leaf, RecipientId


class ReconciliationState(str, Enum):
    """
    Progress of a single reconciliation run. `failed` and `aborted` are terminal,
    and a snapshot is only written on the way to `persisted`.
    """

    INITIALIZING = "initializing"
    FETCHING_CHUNK = "fetching_chunk"
    VALIDATING = "validating"
    NEXT_CHUNK = "next_chunk"
    FINALIZING = "finalizing"
    PERSISTED = "persisted"
    FAILED = "failed"
    ABORTED = "aborted"


class EntryStatus(str, Enum):
    # amount agrees with the allocation table
    MATCHED = "matched"

    # not in this week's allocation table, but already a leaf last week
    CARRIED_OVER = "carried_over"


class ReconciliationEntry(BaseModel):
    recipient: RecipientId
    leaf: Leaf
    status: EntryStatus
    amount: int
    expected: Optional[int] = None


class ReconciliationReport(BaseModel):
    """
    Summary of an accepted week
    :param `mismatched`: kept for reporting symmetry, an accepted week always has zero
    :param `diff_from_previous`: change in leaf count since the previous week
    :param `new_recipients`: recipients with a leaf this week that had none last week
    :param `top_up_required`: increase in total claimable, to be funded into the distributor.
    None if the previous snapshot has no amounts recorded.
    """

    week: int
    matched: int
    mismatched: int = 0
    carried_over: int
    new_leaf_count: int
    diff_from_previous: int
    new_recipients: list[RecipientId] = []
    total_claimable: int
    previous_total_claimable: Optional[int] = None
    top_up_required: Optional[int] = None
