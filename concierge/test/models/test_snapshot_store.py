import os

import pytest

from concierge.errors import MissingSnapshotException, SnapshotExistsError
from concierge.models import LeafSnapshotEntry, SnapshotStore
from concierge.test.conftest import STUBS
from concierge.test.fakes import make_claim, snapshot_of


@pytest.fixture
def entries() -> list[LeafSnapshotEntry]:
    return snapshot_of([make_claim(1, 10), make_claim(2, 20)], claimed=[make_claim(1, 10).leaf])


def test_path(store: SnapshotStore):
    assert store.path(3).endswith("AD_test/leafs-3.json")


def test_week_zero_is_the_empty_tree(store: SnapshotStore):
    assert store.has(0)
    assert store.load(0) == []


def test_write_then_load(store: SnapshotStore, entries):
    path = store.write(1, entries)

    assert os.path.exists(path)
    assert not os.path.exists(f"{path}.tmp")
    assert store.has(1)
    assert store.load(1) == entries


def test_snapshots_are_write_once(store: SnapshotStore, entries):
    store.write(1, entries)

    with pytest.raises(SnapshotExistsError):
        store.write(1, entries[:1])

    # untouched
    assert store.load(1) == entries


def test_cannot_write_week_zero(store: SnapshotStore, entries):
    with pytest.raises(SnapshotExistsError):
        store.write(0, entries)


def test_load_missing_week(store: SnapshotStore):
    assert not store.has(4)
    with pytest.raises(MissingSnapshotException, match="No snapshot for week 4"):
        store.load(4)


def test_stale_tmp_file_is_replaced(store: SnapshotStore, entries):
    os.makedirs(store.dir, exist_ok=True)
    with open(f"{store.path(1)}.tmp", "w") as f:
        f.write("{half written")

    store.write(1, entries)
    assert store.load(1) == entries


def test_import_csv(store: SnapshotStore):
    entries = store.import_csv(1, str(STUBS / "snapshots" / "leafs_week_1.csv"))

    assert [e.nftId for e in entries] == ["01", "02"]
    assert [e.isClaimed for e in entries] == [True, False]
    assert all(e.leaf.startswith("0x") for e in entries)
    assert all(e.amount is None for e in entries)
    assert store.load(1) == entries
