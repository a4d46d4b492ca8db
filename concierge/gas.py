import threading
import time
from typing import Callable, Optional

from eth_utils import from_wei

from concierge.errors import AdmissionTimeoutError, RunCancelledError, TransientError
from concierge.models import Wei


class GasAdmissionGate:
    """
    Holds a claim back until the network gas price is at or below the ceiling.

    The gas price is polled every `interval` seconds. The wait is a `threading.Event` wait,
    so setting `cancel` interrupts it straight away and nothing is held while waiting.

    With `max_wait` left as None the gate waits forever: a ceiling the network never
    comes down to means the run never proceeds. Set `max_wait` to turn that into an
    `AdmissionTimeoutError`.

    A fee source that fails with a `TransientError` (an RPC hiccup) is retried on the
    next poll, it never ends the run by itself.
    """

    def __init__(
        self,
        fee_source: Callable[[], Wei],
        interval: float = 15,
        max_wait: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.fee_source = fee_source
        self.interval = interval
        self.max_wait = max_wait
        self.cancel = cancel or threading.Event()
        self.clock = clock

    def admit(self, ceiling: Wei) -> Wei:
        """Block until the observed fee is <= ceiling, returns the fee that was admitted"""
        started = self.clock()
        while True:
            if self.cancel.is_set():
                raise RunCancelledError("cancelled while waiting for gas")

            # a failed read counts as a poll without a reading
            try:
                fee: Optional[Wei] = self.fee_source()
            except TransientError as e:
                fee = None
                print(f"⛽ gas price unavailable ({e}), retrying in {self.interval}s")

            if fee is not None and fee <= ceiling:
                return fee

            waited = self.clock() - started
            if self.max_wait is not None and waited >= self.max_wait:
                raise AdmissionTimeoutError(
                    f"gas stayed above {from_wei(ceiling, 'gwei')} gwei for {waited:.0f}s"
                )

            if fee is not None:
                print(
                    f"⛽ gas at {from_wei(fee, 'gwei')} gwei, above ceiling of {from_wei(ceiling, 'gwei')} gwei, waiting {self.interval}s"
                )
            if self.cancel.wait(self.interval):
                raise RunCancelledError("cancelled while waiting for gas")
