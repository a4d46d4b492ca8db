import os
import time
from pathlib import Path
from dataclasses import dataclass, field

from concierge.models.Outcome import ClaimOutcome
from concierge.utils import append_line


@dataclass
class ClaimLedger:
    """
    Append only record of claim submissions, one json line per outcome,
    named by distribution id and run timestamp (ms).
    Re-running after a crash derives unclaimed state from the chain,
    so a duplicated line here is harmless.
    """

    output_dir: str
    distribution_id: str
    run_timestamp: int = field(default_factory=lambda: int(time.time() * 1000))

    @property
    def path(self) -> str:
        return f"{self.output_dir}/concierge_{self.distribution_id}_{self.run_timestamp}.log"

    def append(self, outcome: ClaimOutcome) -> None:
        Path(self.output_dir).mkdir(parents=True, exist_ok=True)
        append_line(self.path, outcome.model_dump_json())

    def read(self) -> list[ClaimOutcome]:
        if not os.path.exists(self.path):
            return []
        with open(self.path) as f:
            return [ClaimOutcome.model_validate_json(line) for line in f if line.strip()]
