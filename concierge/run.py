import signal
import sys
import threading

import fire

from concierge.errors import (
    AdmissionTimeoutError,
    ChunkFailedError,
    DataIntegrityError,
    MissingEnvironmentVariableException,
    MissingSnapshotException,
    PausedError,
    RunCancelledError,
    SnapshotExistsError,
    TransientError,
)
from concierge.run_claim import run_claim
from concierge.run_reconcile import import_snapshot, run_reconcile


def cancel_on_signal() -> threading.Event:
    """SIGINT / SIGTERM stop the run at the next chunk boundary or gas poll"""
    cancel = threading.Event()

    def handler(signum, _frame):
        print(f"\n🛑 Received signal {signum}, stopping at the next safe point")
        cancel.set()

    signal.signal(signal.SIGINT, handler)
    signal.signal(signal.SIGTERM, handler)
    return cancel


def claim(config: str) -> None:
    try:
        run_claim(config, cancel=cancel_on_signal())
    except RunCancelledError as e:
        print(f"Stopped: {e}")
        sys.exit(130)
    except (
        PausedError,
        AdmissionTimeoutError,
        ChunkFailedError,
        TransientError,
        MissingEnvironmentVariableException,
    ) as e:
        print(f"❌ {e}")
        sys.exit(1)


def reconcile(config: str) -> None:
    try:
        run_reconcile(config, cancel=cancel_on_signal())
    except RunCancelledError:
        sys.exit(130)
    except (DataIntegrityError, ChunkFailedError, SnapshotExistsError):
        # the reconciler has already printed the violated invariant
        sys.exit(1)
    except (MissingSnapshotException, TransientError, MissingEnvironmentVariableException) as e:
        print(f"❌ {e}")
        sys.exit(1)


if __name__ == "__main__":
    fire.Fire(
        {
            "claim": claim,
            "reconcile": reconcile,
            "import_snapshot": import_snapshot,
        }
    )
