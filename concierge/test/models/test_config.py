from decimal import Decimal

import eth_utils as eth
import pytest

from concierge.config import load_claim_conf, load_reconcile_conf
from concierge.errors import BadConfigException
from concierge.models import ClaimConfig, ReconcileConfig
from concierge.test.conftest import STUBS


@pytest.fixture
def claim_config() -> ClaimConfig:
    return load_claim_conf(str(STUBS / "config" / "claim-conf.json"))


@pytest.fixture
def reconcile_conf() -> ReconcileConfig:
    return load_reconcile_conf(str(STUBS / "config" / "reconcile-conf.json"))


def test_load_claim_conf(claim_config: ClaimConfig):
    assert claim_config.distribution_id == "AD_test"
    assert claim_config.chunk_size == 2
    assert claim_config.gas_ceiling_gwei == Decimal(7)
    assert claim_config.gas_ceiling == 7_000_000_000
    assert claim_config.max_gas_wait is None
    assert eth.is_checksum_address(claim_config.distributor_address)
    assert eth.is_checksum_address(claim_config.nft_contract)
    assert all(eth.is_checksum_address(o) for o in claim_config.owners)


def test_load_reconcile_conf(reconcile_conf: ReconcileConfig):
    assert reconcile_conf.week == 1
    assert reconcile_conf.population_cap is None
    assert reconcile_conf.start_at == 0 and reconcile_conf.end_at == 0
    assert reconcile_conf.block_snapshot is None


def test_defaults(reconcile_conf: ReconcileConfig):
    conf = ReconcileConfig(
        distribution_id="AD_test",
        distributor_address=reconcile_conf.distributor_address,
        week=2,
        nft_list_path="nfts.csv",
        allocation_path="alloc.csv",
    )
    assert conf.chunk_size == 50
    assert conf.fetch_workers == 4
    assert conf.max_retries == 3
    assert conf.proof_service_url.startswith("https://")


@pytest.mark.parametrize(
    "field, value, message",
    [
        ["chunk_size", 0, "Chunk size must be a positive integer"],
        ["fetch_workers", 0, "Need at least one fetch worker"],
        ["max_retries", -1, "Max retries cannot be negative"],
        ["gas_ceiling_gwei", 0, "Gas ceiling must be positive"],
        ["max_gas_wait", 0, "Max gas wait must be positive if set"],
    ],
)
def test_validate_claim_conf(claim_config: ClaimConfig, field, value, message):
    dct = claim_config.model_dump()

    with pytest.raises(BadConfigException, match=message):
        dct[field] = value
        ClaimConfig(**dct)


def test_claim_conf_defaults_to_delegations(claim_config: ClaimConfig):
    dct = claim_config.model_dump()
    dct["owners"] = []
    dct["delegate_registry"] = "0x00000000000000447e69651d841bd8d104bed493"

    conf = ClaimConfig(**dct)
    assert conf.owners == []
    assert conf.population_path is None
    assert eth.is_checksum_address(conf.delegate_registry)


@pytest.mark.parametrize("week", [0, -1])
def test_validate_week(reconcile_conf: ReconcileConfig, week):
    dct = reconcile_conf.model_dump()

    with pytest.raises(BadConfigException, match="Week must be 1 or greater"):
        dct["week"] = week
        ReconcileConfig(**dct)


@pytest.mark.parametrize("start_at, end_at", [[-1, 0], [5, 5], [5, 2]])
def test_validate_range(reconcile_conf: ReconcileConfig, start_at, end_at):
    dct = reconcile_conf.model_dump()

    with pytest.raises(BadConfigException, match="end_at must be 0"):
        dct["start_at"] = start_at
        dct["end_at"] = end_at
        ReconcileConfig(**dct)


@pytest.mark.parametrize("cap", [0, -3])
def test_validate_population_cap(reconcile_conf: ReconcileConfig, cap):
    dct = reconcile_conf.model_dump()

    with pytest.raises(BadConfigException, match="Population cap must be a positive integer"):
        dct["population_cap"] = cap
        ReconcileConfig(**dct)
