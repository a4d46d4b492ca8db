import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional, TypeVar

from concierge.errors import (
    ChunkFailedError,
    MalformedResponseError,
    RunCancelledError,
    TransientError,
)
from concierge.models import ClaimRecord, RecipientId
from concierge.queries import ProofServiceClient

T = TypeVar("T")

# how often a blocked consumer checks for cancellation
CANCEL_POLL_SECONDS = 0.5


@dataclass
class ChunkResult:
    """Proofs for one chunk of recipients, or the reason the chunk could not be fetched"""

    index: int
    recipients: list[RecipientId]
    records: list[ClaimRecord] = field(default_factory=list)
    error: Optional[ChunkFailedError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def with_retries(
    fn: Callable[[], T],
    chunk_index: int,
    max_retries: int,
    backoff: float,
    cancel: threading.Event,
) -> T:
    """
    Call `fn` until it succeeds, retrying transient faults up to `max_retries` times.
    Backoff grows linearly and the wait is interrupted by `cancel`.
    Raises ChunkFailedError once retries are exhausted or the fault is not retryable.
    """
    attempt = 0
    while True:
        try:
            return fn()
        except MalformedResponseError as e:
            raise ChunkFailedError(chunk_index, str(e)) from e
        except TransientError as e:
            if attempt >= max_retries:
                raise ChunkFailedError(
                    chunk_index, f"gave up after {attempt + 1} attempts: {e}"
                ) from e
            attempt += 1
            print(f"🔁 chunk {chunk_index} attempt {attempt}/{max_retries} after: {e}")
            if cancel.wait(backoff * attempt):
                raise RunCancelledError(f"cancelled while retrying chunk {chunk_index}")


def _wait_for(future: Future, cancel: threading.Event) -> T:
    while True:
        if cancel.is_set():
            raise RunCancelledError("cancelled while waiting for proofs")
        try:
            return future.result(timeout=CANCEL_POLL_SECONDS)
        except FutureTimeoutError:
            continue


def fetch_chunks(
    client: ProofServiceClient,
    chunks: list[list[RecipientId]],
    workers: int,
    max_retries: int,
    backoff: float,
    cancel: threading.Event,
) -> Iterator[ChunkResult]:
    """
    Fan the proof requests for every chunk out over a thread pool,
    then yield the results back in chunk order.

    Fetches are independent reads so they can run in any order; the consumer
    sees one chunk at a time, which keeps everything downstream single writer.
    Pending fetches are dropped if the consumer stops early or the run is cancelled.
    """

    def fetch(index: int, recipients: list[RecipientId]) -> ChunkResult:
        try:
            records = with_retries(
                lambda: client.request_proofs(recipients),
                index,
                max_retries,
                backoff,
                cancel,
            )
        except ChunkFailedError as e:
            return ChunkResult(index, recipients, error=e)
        return ChunkResult(index, recipients, records)

    executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="proofs")
    try:
        futures = [executor.submit(fetch, idx, c) for idx, c in enumerate(chunks)]
        for future in futures:
            yield _wait_for(future, cancel)
    finally:
        executor.shutdown(wait=False, cancel_futures=True)
