import csv
import json
import time
from pathlib import Path
from dataclasses import dataclass, field
from typing import Any

from concierge.models.Claim import ClaimRecord
from concierge.models.Config import DistributionConfig
from concierge.models.Snapshot import LeafSnapshotEntry
from concierge.utils import append_line

PROOFS_HEADER = [
    "nft id",
    "claim",
    "proof (bytes32[])",
    "group (byte32)",
    "data (bytes)",
]
LEAFS_HEADER = ["nftId", "leaf", "isClaimed", "amount"]


@dataclass
class Writer:
    config: DistributionConfig
    run_timestamp: int = field(default_factory=lambda: int(time.time() * 1000))

    @property
    def path(self) -> str:
        return f"{self.config.output_dir}/{self.config.distribution_id}"

    @property
    def validation_log_path(self) -> str:
        return f"{self.path}/validate_merkle_{self.config.distribution_id}_{self.run_timestamp}.log"

    def proofs_path(self, week: int) -> str:
        return f"{self.path}/{self.config.distribution_id}_proofs_{week}.csv"

    def leafs_path(self, week: int) -> str:
        return f"{self.path}/{self.config.distribution_id}_leafs_{week}.csv"

    @staticmethod
    def write_csv(rows: list[list[Any]], path: str, fieldnames: list[str]) -> None:
        with open(path, "w+", newline="") as f:
            writer = csv.writer(f, delimiter=",", quoting=csv.QUOTE_NONNUMERIC)
            writer.writerow(fieldnames)
            writer.writerows(rows)

    # create the output directory if it doesn't exist
    def _create_dir(self) -> None:
        Path(self.path).mkdir(parents=True, exist_ok=True)

    def log_validation(self, line: str) -> None:
        self._create_dir()
        append_line(self.validation_log_path, line)

    def write_proofs(self, week: int, records: list[ClaimRecord]) -> str:
        """Proof export in the format the claim frontend imports"""
        self._create_dir()
        rows = [
            [r.recipient, 0, ",".join(r.proof), r.group, r.data] for r in records
        ]
        self.write_csv(rows, self.proofs_path(week), PROOFS_HEADER)
        return self.proofs_path(week)

    def write_leafs(self, week: int, entries: list[LeafSnapshotEntry]) -> str:
        """Human readable copy of a week's snapshot, can be fed back to `SnapshotStore.import_csv`"""
        self._create_dir()
        rows = [
            [e.nftId, e.leaf, str(e.isClaimed).lower(), "" if e.amount is None else str(e.amount)]
            for e in entries
        ]
        self.write_csv(rows, self.leafs_path(week), LEAFS_HEADER)
        return self.leafs_path(week)

    def to_json(self, data, name: str) -> None:
        self._create_dir()
        with open(f"{self.path}/{name}.json", "w") as f:
            json.dump(data, f, indent=4)
