import threading
from typing import Optional

from concierge.errors import (
    AmountMismatchError,
    CoverageRegressionError,
    DuplicateRecipientError,
    ErrorPolicy,
    LeafCountDecreasedError,
    PopulationCapExceededError,
    RunCancelledError,
    SnapshotExistsError,
    UnexpectedRecipientError,
    UnknownRecipientError,
)
from concierge.fetcher import ChunkResult, fetch_chunks, with_retries
from concierge.models import (
    ClaimRecord,
    EntryStatus,
    LeafSnapshotEntry,
    RecipientId,
    ReconciliationEntry,
    ReconciliationReport,
    ReconciliationState,
    SnapshotStore,
    Writer,
)
from concierge.queries import ChainStateReader, ProofServiceClient
from concierge.utils import chunk, pad_token_id


class WeeklyReconciler:
    """
    Validates a week's regenerated merkle tree against the tree accepted the week before.

    For every chunk of the population:
    - a recipient may only appear once in the whole tree
    - the decoded amount must equal the allocation table; a recipient missing from the
      table is only accepted if it already had a leaf last week (carried over)
    - the claimed status of each leaf is read in one multicall

    Then, over the whole tree:
    - every leaf of last week must still be present
    - the tree cannot shrink, nor grow beyond the population cap

    Any violation aborts the run. The new snapshot is only written once every chunk
    has passed every check, so a failed or cancelled run leaves no snapshot behind.
    """

    error_policy = ErrorPolicy.FAIL_FAST

    def __init__(
        self,
        proofs: ProofServiceClient,
        chain: ChainStateReader,
        store: SnapshotStore,
        writer: Optional[Writer] = None,
        workers: int = 4,
        max_retries: int = 3,
        retry_backoff: float = 1.0,
        cancel: Optional[threading.Event] = None,
    ):
        self.proofs = proofs
        self.chain = chain
        self.store = store
        self.writer = writer
        self.workers = workers
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.cancel = cancel or threading.Event()
        self.state = ReconciliationState.INITIALIZING
        self.failure: Optional[str] = None

    def _transition(self, state: ReconciliationState) -> None:
        self.state = state

    def _log(self, line: str) -> None:
        if self.writer:
            self.writer.log_validation(line)

    def reconcile(
        self,
        week: int,
        current_population: list[RecipientId],
        previous_snapshot: list[LeafSnapshotEntry],
        expected_amounts: dict[RecipientId, int],
        population_cap: int,
        chunk_size: int = 50,
    ) -> ReconciliationReport:
        """
        :param `week`: week being validated, `previous_snapshot` is the accepted tree of `week - 1`
        :param `current_population`: recipient ids to request proofs for
        :param `expected_amounts`: authoritative allocation for this week, in base units
        :param `population_cap`: maximum number of leaves the tree may hold
        """
        self._transition(ReconciliationState.INITIALIZING)
        self.failure = None

        try:
            if self.store.has(week):
                raise SnapshotExistsError(f"Week {week} has already been reconciled")

            report = self._reconcile(
                week,
                [pad_token_id(r) for r in current_population],
                previous_snapshot,
                {pad_token_id(k): v for k, v in expected_amounts.items()},
                population_cap,
                chunk_size,
            )
        except RunCancelledError:
            self._transition(ReconciliationState.ABORTED)
            print(f"🛑 Reconciliation of week {week} cancelled, no snapshot written")
            raise
        except Exception as e:
            self.failure = type(e).__name__
            self._transition(ReconciliationState.FAILED)
            print(f"❌ Week {week} rejected, {self.failure}: {e}")
            raise

        self._transition(ReconciliationState.PERSISTED)
        return report

    def _reconcile(
        self,
        week: int,
        population: list[RecipientId],
        previous_snapshot: list[LeafSnapshotEntry],
        expected_amounts: dict[RecipientId, int],
        population_cap: int,
        chunk_size: int,
    ) -> ReconciliationReport:
        previous_by_recipient = {p.nftId: p for p in previous_snapshot}
        seen: set[RecipientId] = set()
        records: list[ClaimRecord] = []
        entries: list[LeafSnapshotEntry] = []
        validated: list[ReconciliationEntry] = []

        chunks = chunk(population, chunk_size)
        self._transition(ReconciliationState.FETCHING_CHUNK)

        for result in fetch_chunks(
            self.proofs,
            chunks,
            self.workers,
            self.max_retries,
            self.retry_backoff,
            self.cancel,
        ):
            if not result.ok:
                self.error_policy.handle(result.error)  # type: ignore

            self._transition(ReconciliationState.VALIDATING)
            start = result.index * chunk_size
            print(
                f"Validating by nft id, from {start} to {start + len(result.recipients)} of {len(population)}"
            )

            chunk_entries, chunk_validated = self.validate_chunk(
                week, result, seen, previous_by_recipient, expected_amounts
            )

            # only accumulate once the whole chunk has passed
            records += result.records
            entries += chunk_entries
            validated += chunk_validated
            self._transition(ReconciliationState.NEXT_CHUNK)

        self._transition(ReconciliationState.FINALIZING)
        self.check_leafs(week, previous_snapshot, entries, population_cap)

        report = self.build_report(week, previous_snapshot, entries, validated)

        path = self.store.write(week, entries)
        print(f"💾 Snapshot for week {week} written to {path}")

        if self.writer:
            self.writer.write_proofs(week, records)
            self.writer.write_leafs(week, entries)
            self.writer.to_json(report.model_dump(), f"report_{week}")

        return report

    def validate_chunk(
        self,
        week: int,
        result: ChunkResult,
        seen: set[RecipientId],
        previous_by_recipient: dict[RecipientId, LeafSnapshotEntry],
        expected_amounts: dict[RecipientId, int],
    ) -> tuple[list[LeafSnapshotEntry], list[ReconciliationEntry]]:
        records = result.records
        requested = set(result.recipients)

        for record in records:
            if record.recipient in seen:
                raise DuplicateRecipientError(
                    f"Duplicate NFT ID {record.recipient} in the week {week} tree"
                )
            seen.add(record.recipient)

            if record.recipient not in requested:
                raise UnexpectedRecipientError(
                    f"Token ID {record.recipient} in claim data not found in the requested chunk"
                )

        decoded = with_retries(
            lambda: [self.chain.decode_leaf_data(r.data) for r in records],
            result.index,
            self.max_retries,
            self.retry_backoff,
            self.cancel,
        )

        validated = [
            self.check_amount(week, record, leaf_data.claimable_amount, expected_amounts, previous_by_recipient)
            for record, leaf_data in zip(records, decoded)
        ]

        for record, leaf_data in zip(records, decoded):
            record.decodedAmount = leaf_data.claimable_amount

        used = with_retries(
            lambda: self.chain.is_used([r.leaf for r in records]),
            result.index,
            self.max_retries,
            self.retry_backoff,
            self.cancel,
        )

        entries = [
            LeafSnapshotEntry(
                nftId=record.recipient,
                leaf=record.leaf,
                isClaimed=is_used,
                amount=record.decodedAmount,
            )
            for record, is_used in zip(records, used)
        ]
        return entries, validated

    def check_amount(
        self,
        week: int,
        record: ClaimRecord,
        amount: int,
        expected_amounts: dict[RecipientId, int],
        previous_by_recipient: dict[RecipientId, LeafSnapshotEntry],
    ) -> ReconciliationEntry:
        """
        The allocation table always wins. The previous snapshot is only consulted
        when the recipient is absent from the table.
        """
        expected = expected_amounts.get(record.recipient)

        if expected is not None:
            if amount != expected:
                raise AmountMismatchError(
                    f"{record.recipient} Amount mismatch: {amount} != {expected}"
                )
            self._log(f"{record.recipient} data matched")
            return ReconciliationEntry(
                recipient=record.recipient,
                leaf=record.leaf,
                status=EntryStatus.MATCHED,
                amount=amount,
                expected=expected,
            )

        if record.recipient in previous_by_recipient:
            self._log(f"{record.recipient} carried over from week {week - 1}")
            return ReconciliationEntry(
                recipient=record.recipient,
                leaf=record.leaf,
                status=EntryStatus.CARRIED_OVER,
                amount=amount,
            )

        raise UnknownRecipientError(
            f"{record.recipient} is neither in the week {week} allocation nor in the week {week - 1} tree"
        )

    @staticmethod
    def check_leafs(
        week: int,
        previous_snapshot: list[LeafSnapshotEntry],
        current: list[LeafSnapshotEntry],
        population_cap: int,
    ) -> None:
        current_leaf_set = {e.leaf for e in current}

        missing = [p for p in previous_snapshot if p.leaf not in current_leaf_set]
        if missing:
            raise CoverageRegressionError(
                f"Leaf {missing[0].leaf} from week {week - 1} is missing in week {week} ({len(missing)} missing in total)"
            )
        print(f"All leafs from week {week - 1} are present in week {week}")

        if len(current) < len(previous_snapshot):
            raise LeafCountDecreasedError(
                f"Number of leafs in week {week} ({len(current)}) is less than week {week - 1} ({len(previous_snapshot)})"
            )

        if len(current) > population_cap:
            raise PopulationCapExceededError(
                f"Number of leafs in week {week} ({len(current)}) exceeds the maximum of {population_cap}"
            )
        print(f"Leaf count validation passed for week {week}")

    @staticmethod
    def build_report(
        week: int,
        previous_snapshot: list[LeafSnapshotEntry],
        current: list[LeafSnapshotEntry],
        validated: list[ReconciliationEntry],
    ) -> ReconciliationReport:
        previous_leafs = {p.leaf for p in previous_snapshot}
        previous_recipients = {p.nftId for p in previous_snapshot}

        total = sum(e.amount or 0 for e in current)
        previous_total = (
            sum(p.amount for p in previous_snapshot)  # type: ignore
            if all(p.amount is not None for p in previous_snapshot)
            else None
        )

        return ReconciliationReport(
            week=week,
            matched=len([v for v in validated if v.status == EntryStatus.MATCHED]),
            carried_over=len([v for v in validated if v.status == EntryStatus.CARRIED_OVER]),
            new_leaf_count=len([e for e in current if e.leaf not in previous_leafs]),
            diff_from_previous=len(current) - len(previous_snapshot),
            new_recipients=[e.nftId for e in current if e.nftId not in previous_recipients],
            total_claimable=total,
            previous_total_claimable=previous_total,
            top_up_required=None if previous_total is None else total - previous_total,
        )
