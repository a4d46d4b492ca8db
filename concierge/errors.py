from enum import Enum


class BadConfigException(Exception):
    pass


class MissingEnvironmentVariableException(Exception):
    pass


# transient


class TransientError(Exception):
    """Raise on a network or RPC fault that is worth retrying for the whole chunk"""

    pass


class ProofServiceError(TransientError):
    """Raise if the proof service request fails at the transport level"""

    pass


class ChainReadError(TransientError):
    """Raise if an aggregated chain read fails. The whole batch is considered failed"""

    pass


class MalformedResponseError(Exception):
    """Raise if the proof service returns a body without `data.claims`"""

    pass


class ChunkFailedError(Exception):
    """Raise once a chunk has exhausted its retries or hit a non-retriable fault"""

    def __init__(self, chunk_index: int, message: str):
        self.chunk_index = chunk_index
        super().__init__(f"chunk {chunk_index}: {message}")


# policy gate


class AdmissionTimeoutError(Exception):
    """Raise if the gas price stayed above the ceiling for longer than the max wait"""

    pass


class RunCancelledError(Exception):
    """Raise when a shutdown was requested while a run was in progress"""

    pass


# on chain


class PausedError(Exception):
    """Raise if the distributor contract is paused"""

    pass


# data integrity


class DataIntegrityError(Exception):
    """
    Base class for violations of the week-over-week tree invariants.
    These are never retried: fixing them requires a corrected allocation or tree.
    """

    pass


class DuplicateRecipientError(DataIntegrityError):
    pass


class AmountMismatchError(DataIntegrityError):
    pass


class UnknownRecipientError(DataIntegrityError):
    pass


class UnexpectedRecipientError(DataIntegrityError):
    """Raise if the proof service returns a claim for a recipient we did not ask for"""

    pass


class CoverageRegressionError(DataIntegrityError):
    pass


class LeafCountDecreasedError(DataIntegrityError):
    pass


class PopulationCapExceededError(DataIntegrityError):
    pass


# storage


class SnapshotExistsError(Exception):
    """Snapshots are write-once, raise if one is already present for the week"""

    pass


class MissingSnapshotException(Exception):
    pass


class ErrorPolicy(str, Enum):
    """
    How a component reacts to a chunk-level failure
    :state CONTINUE: report the failure and move on to the next chunk
    :state FAIL_FAST: abort the run
    """

    CONTINUE = "continue"
    FAIL_FAST = "fail_fast"

    def handle(self, error: Exception) -> None:
        if self == ErrorPolicy.FAIL_FAST:
            raise error
        print(f"⚠️  {error}, continuing")
