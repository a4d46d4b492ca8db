import threading
import time
from typing import Optional

from eth_utils import from_wei, to_wei

from concierge.errors import ChunkFailedError, ErrorPolicy, PausedError
from concierge.fetcher import ChunkResult, fetch_chunks, with_retries
from concierge.gas import GasAdmissionGate
from concierge.models import RecipientId, RunStats, Wei
from concierge.queries import ChainStateReader, ProofServiceClient
from concierge.submitter import ClaimSubmitter
from concierge.utils import chunk

DEFAULT_GAS_CEILING = to_wei(7, "gwei")


class ClaimOrchestrator:
    """
    Claims on behalf of a population of NFT holders.

    Proofs for every chunk are fetched concurrently, then each chunk is handled in order:
    one multicall to drop leaves that are already used, then one gated submission per
    remaining record. A failed claim is recorded and the run moves on.
    What happens to a chunk that cannot be fetched or read is decided by `error_policy`.

    `stats` holds the running totals, so they are still available if the run is
    cancelled or aborted part way through.
    """

    def __init__(
        self,
        proofs: ProofServiceClient,
        chain: ChainStateReader,
        gate: GasAdmissionGate,
        submitter: ClaimSubmitter,
        workers: int = 4,
        max_retries: int = 3,
        retry_backoff: float = 1.0,
        cancel: Optional[threading.Event] = None,
        error_policy: ErrorPolicy = ErrorPolicy.CONTINUE,
    ):
        self.proofs = proofs
        self.chain = chain
        self.gate = gate
        self.submitter = submitter
        self.workers = workers
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.cancel = cancel or threading.Event()
        self.error_policy = error_policy
        self.stats = RunStats()

    def _chunk_failed(self, error: ChunkFailedError) -> None:
        self.stats.failed_chunks += 1
        self.error_policy.handle(error)

    def run(
        self,
        population: list[RecipientId],
        chunk_size: int = 50,
        gas_ceiling: Wei = DEFAULT_GAS_CEILING,
    ) -> RunStats:
        """
        :param `population`: recipient ids, already deduplicated by the caller
        :param `chunk_size`: recipients per proof request and per multicall
        :param `gas_ceiling`: in wei, claims are only sent while gas is at or below it
        """
        started = time.monotonic()
        self.stats = RunStats()

        if self.chain.paused():
            raise PausedError(f"Distributor {self.chain.address} is paused, not claiming")

        chunks = chunk(population, chunk_size)
        print(
            f"🚀 Claiming for {len(population)} recipients in {len(chunks)} chunks, gas ceiling {from_wei(gas_ceiling, 'gwei')} gwei"
        )

        try:
            for result in fetch_chunks(
                self.proofs,
                chunks,
                self.workers,
                self.max_retries,
                self.retry_backoff,
                self.cancel,
            ):
                if not result.ok:
                    self._chunk_failed(result.error)  # type: ignore
                    continue
                self.process_chunk(result, len(chunks), gas_ceiling)
        finally:
            self.stats.elapsed = time.monotonic() - started

        print(
            f"✅ Done in {self.stats.elapsed:.1f}s: {self.stats.attempted} attempted, {self.stats.succeeded} claimed, "
            f"{self.stats.failed} failed, {self.stats.skipped_already_claimed} already claimed, "
            f"{self.stats.failed_chunks} chunks failed"
        )
        return self.stats

    def process_chunk(self, result: ChunkResult, n_chunks: int, gas_ceiling: Wei) -> None:
        records = result.records
        try:
            used = with_retries(
                lambda: self.chain.is_used([r.leaf for r in records]),
                result.index,
                self.max_retries,
                self.retry_backoff,
                self.cancel,
            )
        except ChunkFailedError as e:
            self._chunk_failed(e)
            return

        unclaimed = [r for r, is_used in zip(records, used) if not is_used]
        skipped = len(records) - len(unclaimed)
        self.stats.skipped_already_claimed += skipped

        print(
            f"📦 Chunk {result.index + 1}/{n_chunks}: {len(records)} proofs, {skipped} already claimed, {len(unclaimed)} to claim"
        )

        for record in unclaimed:
            self.gate.admit(gas_ceiling)
            outcome = self.submitter.submit(record)
            self.stats.record(outcome)
            if outcome.success:
                print(f"   claimed for nft {outcome.recipient} {outcome.txHash}")
            else:
                print(f"   ❌ claim failed for nft {outcome.recipient}: {outcome.error}")
