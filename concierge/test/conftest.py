import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest
import requests

from concierge.models import ReconcileConfig, SnapshotStore, Writer
from concierge.test.fakes import DISTRIBUTOR

STUBS = Path(__file__).parent / "stubs"
DISTRIBUTION_ID = "AD_test"


@dataclass
class MockResponse:
    res: Any
    status_code: int = 200

    def json(self):
        if isinstance(self.res, Exception):
            raise self.res
        return self.res

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")


def load_stub(name: str) -> Any:
    with open(STUBS / name) as j:
        return json.load(j)


@pytest.fixture
def reconcile_config(tmp_path) -> ReconcileConfig:
    return ReconcileConfig(
        distribution_id=DISTRIBUTION_ID,
        distributor_address=DISTRIBUTOR,
        week=1,
        nft_list_path=str(STUBS / "nft_list.csv"),
        allocation_path=str(STUBS / "allocation_week_1.csv"),
        output_dir=str(tmp_path / "output"),
        snapshot_dir=str(tmp_path / "snapshots"),
        max_retries=0,
        retry_backoff=0,
    )


@pytest.fixture
def store(reconcile_config: ReconcileConfig) -> SnapshotStore:
    return SnapshotStore(reconcile_config.snapshot_dir, DISTRIBUTION_ID)


@pytest.fixture
def writer(reconcile_config: ReconcileConfig) -> Writer:
    return Writer(reconcile_config)


def write_config(path: Path, stub: str, **overrides) -> str:
    """Copy a stub config, with overrides, somewhere the test can point a run at"""
    with open(STUBS / "config" / stub) as j:
        conf = json.load(j)
    conf.update(overrides)
    path.write_text(json.dumps(conf, indent=4))
    return str(path)
