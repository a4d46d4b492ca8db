import threading

import pytest

from concierge.errors import ChainReadError, ChunkFailedError, ErrorPolicy, PausedError, RunCancelledError
from concierge.gas import GasAdmissionGate
from concierge.models import ClaimLedger
from concierge.orchestrator import ClaimOrchestrator
from concierge.test.fakes import FakeChain, FakeProofService, FakeSubmitter, OpenGate, make_claim

POPULATION = [f"{i:02d}" for i in range(1, 8)]


@pytest.fixture
def claims():
    return [make_claim(r, int(r) * 10) for r in POPULATION]


def make_orchestrator(service, chain, submitter, gate=None, **kwargs) -> ClaimOrchestrator:
    kwargs.setdefault("retry_backoff", 0)
    return ClaimOrchestrator(service, chain, gate or OpenGate(), submitter, **kwargs)


def test_claims_for_every_unclaimed_leaf(claims):
    chain = FakeChain()
    submitter = FakeSubmitter(chain)
    stats = make_orchestrator(FakeProofService(claims), chain, submitter).run(POPULATION, chunk_size=3)

    assert stats.attempted == 7
    assert stats.succeeded == 7
    assert stats.failed == 0
    assert chain.used == {c.leaf for c in claims}
    # submissions follow population order
    assert [o.recipient for o in submitter.outcomes] == POPULATION


def test_already_claimed_leaves_are_skipped(claims):
    chain = FakeChain(used=[claims[0].leaf, claims[4].leaf])
    submitter = FakeSubmitter(chain)
    stats = make_orchestrator(FakeProofService(claims), chain, submitter).run(POPULATION, chunk_size=3)

    assert stats.skipped_already_claimed == 2
    assert stats.attempted == 5
    assert "01" not in [o.recipient for o in submitter.outcomes]
    assert "05" not in [o.recipient for o in submitter.outcomes]


@pytest.mark.parametrize("chunk_size", [1, 2, 3, 7, 50])
def test_outcome_does_not_depend_on_chunk_size(claims, chunk_size):
    chain = FakeChain(used=[claims[2].leaf])
    submitter = FakeSubmitter(chain, failing=["06"])
    stats = make_orchestrator(FakeProofService(claims), chain, submitter).run(
        POPULATION, chunk_size=chunk_size
    )

    assert {o.recipient for o in submitter.outcomes if o.success} == {"01", "02", "04", "05", "07"}
    assert (stats.succeeded, stats.failed, stats.skipped_already_claimed) == (5, 1, 1)


@pytest.mark.parametrize("chunk_size, n_chunks", [[1, 7], [3, 3], [50, 1]])
def test_one_claimed_status_read_per_chunk(claims, chunk_size, n_chunks):
    chain = FakeChain()
    make_orchestrator(FakeProofService(claims), chain, FakeSubmitter(chain)).run(
        POPULATION, chunk_size=chunk_size
    )

    assert len(chain.is_used_calls) == n_chunks
    assert sum(len(c) for c in chain.is_used_calls) == 7


def test_rerun_is_idempotent(claims):
    chain = FakeChain()
    service = FakeProofService(claims)

    first = make_orchestrator(service, chain, FakeSubmitter(chain)).run(POPULATION, chunk_size=2)
    second_submitter = FakeSubmitter(chain)
    second = make_orchestrator(service, chain, second_submitter).run(POPULATION, chunk_size=2)

    assert first.succeeded == 7
    assert second.succeeded == 0
    assert second.attempted == 0
    assert second.skipped_already_claimed == 7
    assert second_submitter.outcomes == []


def test_failed_claims_do_not_stop_the_run(claims, tmp_path):
    chain = FakeChain()
    ledger = ClaimLedger(str(tmp_path), "AD_test")
    submitter = FakeSubmitter(chain, failing=["02", "03"], ledger=ledger)

    stats = make_orchestrator(FakeProofService(claims), chain, submitter).run(POPULATION, chunk_size=2)

    assert stats.failed == 2
    assert stats.succeeded == 5
    outcomes = ledger.read()
    assert len(outcomes) == 7
    assert [o.recipient for o in outcomes if not o.success] == ["02", "03"]


def test_recipients_without_proofs_are_ignored(claims):
    chain = FakeChain()
    submitter = FakeSubmitter(chain)
    stats = make_orchestrator(FakeProofService(claims[:3]), chain, submitter).run(POPULATION, chunk_size=2)

    assert stats.attempted == 3


def test_paused_distributor(claims):
    chain = FakeChain(paused=True)
    service = FakeProofService(claims)

    with pytest.raises(PausedError):
        make_orchestrator(service, chain, FakeSubmitter(chain)).run(POPULATION)

    assert service.requests == []


def test_failed_fetch_continues_with_next_chunk(claims):
    chain = FakeChain()
    submitter = FakeSubmitter(chain)
    service = FakeProofService(claims, failing=["03"])

    stats = make_orchestrator(service, chain, submitter, max_retries=1).run(POPULATION, chunk_size=2)

    assert stats.failed_chunks == 1
    assert stats.succeeded == 5
    assert {o.recipient for o in submitter.outcomes} == {"01", "02", "05", "06", "07"}


def test_failed_fetch_fail_fast(claims):
    chain = FakeChain()
    submitter = FakeSubmitter(chain)
    service = FakeProofService(claims, failing=["03"])
    orchestrator = make_orchestrator(
        service, chain, submitter, max_retries=0, error_policy=ErrorPolicy.FAIL_FAST
    )

    with pytest.raises(ChunkFailedError, match="chunk 1"):
        orchestrator.run(POPULATION, chunk_size=2)

    # chunk 0 was already claimed before chunk 1 failed
    assert orchestrator.stats.succeeded == 2


def test_failed_claimed_status_read_skips_the_chunk(claims):
    class FlakyChain(FakeChain):
        def is_used(self, leaves):
            if claims[0].leaf in leaves:
                raise ChainReadError("multicall failed")
            return super().is_used(leaves)

    chain = FlakyChain()
    submitter = FakeSubmitter(chain)
    stats = make_orchestrator(FakeProofService(claims), chain, submitter, max_retries=2).run(
        POPULATION, chunk_size=3
    )

    assert stats.failed_chunks == 1
    assert stats.attempted == 4


def test_cancel_stops_before_next_submission(claims):
    cancel = threading.Event()
    chain = FakeChain()

    class CancellingSubmitter(FakeSubmitter):
        def submit(self, record):
            cancel.set()
            return super().submit(record)

    submitter = CancellingSubmitter(chain)
    gate = GasAdmissionGate(chain.gas_price, cancel=cancel)
    orchestrator = make_orchestrator(FakeProofService(claims), chain, submitter, gate=gate, cancel=cancel)

    with pytest.raises(RunCancelledError):
        orchestrator.run(POPULATION, chunk_size=3)

    assert len(submitter.outcomes) == 1
    assert orchestrator.stats.succeeded == 1


def test_failed_gas_read_does_not_stop_the_run():
    claims = [make_claim(r, 10) for r in ["01", "02", "03"]]
    chain = FakeChain()
    submitter = FakeSubmitter(chain)
    reads = iter([ChainReadError("eth_gasPrice failed"), 1, 1, 1])

    def gas_price():
        read = next(reads)
        if isinstance(read, Exception):
            raise read
        return read

    gate = GasAdmissionGate(gas_price, interval=0)
    stats = make_orchestrator(FakeProofService(claims), chain, submitter, gate=gate).run(
        ["01", "02", "03"], chunk_size=3, gas_ceiling=1
    )

    assert stats.succeeded == 3
    assert stats.failed == 0
    assert [o.recipient for o in submitter.outcomes] == ["01", "02", "03"]
