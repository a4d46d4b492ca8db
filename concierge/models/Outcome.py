from __future__ import annotations
import time
from typing import Optional

from pydantic import BaseModel, Field

from concierge.models.types import HexString, Leaf, RecipientId


class ClaimOutcome(BaseModel):
    """
    Result of one claim submission. Written once to the run ledger, never rewritten.
    A failed outcome for a leaf that was already consumed is expected after a crash and re-run.
    """

    recipient: RecipientId
    leaf: Leaf
    success: bool
    txHash: Optional[HexString] = None
    error: Optional[str] = None
    timestamp: int = Field(default_factory=lambda: int(time.time()))


class RunStats(BaseModel):
    """
    Aggregated counts for a claim run
    :param `skipped_already_claimed`: records filtered out because their leaf is used on chain
    :param `failed_chunks`: chunks that could not be fetched or read, even after retries
    :param `elapsed`: wall clock seconds
    """

    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped_already_claimed: int = 0
    failed_chunks: int = 0
    elapsed: float = 0

    def record(self, outcome: ClaimOutcome) -> None:
        self.attempted += 1
        if outcome.success:
            self.succeeded += 1
        else:
            self.failed += 1
