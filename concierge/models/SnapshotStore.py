import csv
import os
import time

from tinydb import TinyDB

from concierge.errors import MissingSnapshotException, SnapshotExistsError
from concierge.models.Snapshot import LeafSnapshotEntry


class SnapshotStore:
    """
    Week keyed store of leaf snapshots, one TinyDB file per week:
    `{root}/{distribution_id}/leafs-{week}.json`

    Snapshots are written once, after a week has passed every check, and are read only afterwards.
    Week 0 is the empty tree that precedes the first distribution.
    """

    def __init__(self, root: str, distribution_id: str):
        self.root = root
        self.distribution_id = distribution_id

    @property
    def dir(self) -> str:
        return f"{self.root}/{self.distribution_id}"

    def path(self, week: int) -> str:
        return f"{self.dir}/leafs-{week}.json"

    @staticmethod
    def exists(path: str) -> bool:
        return os.path.exists(path)

    def has(self, week: int) -> bool:
        return week == 0 or self.exists(self.path(week))

    def load(self, week: int) -> list[LeafSnapshotEntry]:
        if week == 0:
            return []

        path = self.path(week)
        if not self.exists(path):
            raise MissingSnapshotException(
                f"No snapshot for week {week} of {self.distribution_id} at {path}"
            )

        with TinyDB(path, access_mode="r") as db:
            return [LeafSnapshotEntry(**doc) for doc in db.table("leafs").all()]

    def write(self, week: int, entries: list[LeafSnapshotEntry]) -> str:
        """
        Persist the snapshot for `week`. Written to a temporary file first and moved into place,
        so a reader never sees a half written week.
        """
        path = self.path(week)
        if week == 0 or self.exists(path):
            raise SnapshotExistsError(f"Snapshot for week {week} already exists")

        tmp_path = f"{path}.tmp"
        if self.exists(tmp_path):
            os.remove(tmp_path)

        with TinyDB(tmp_path, indent=4, create_dirs=True) as db:
            db.table("meta").insert(
                {
                    "distribution_id": self.distribution_id,
                    "week": week,
                    "leaf_count": len(entries),
                    "created": int(time.time()),
                }
            )
            db.table("leafs").insert_multiple([e.model_dump() for e in entries])

        os.replace(tmp_path, path)
        return path

    def import_csv(self, week: int, csv_path: str) -> list[LeafSnapshotEntry]:
        """Seed the store from a snapshot csv with a `nftId,leaf,isClaimed` header"""
        with open(csv_path, newline="") as f:
            entries = [LeafSnapshotEntry(**row) for row in csv.DictReader(f)]
        self.write(week, entries)
        return entries
