from pathlib import Path
from typing import TypeVar

from concierge.models import ClaimConfig, DistributionConfig, ReconcileConfig

C = TypeVar("C", bound=DistributionConfig)


def load_conf(path: str, model: type[C]) -> C:
    """Loads and validates a json config file into `model`"""
    return model.model_validate_json(Path(path).read_text())


def load_claim_conf(path: str) -> ClaimConfig:
    return load_conf(path, ClaimConfig)


def load_reconcile_conf(path: str) -> ReconcileConfig:
    return load_conf(path, ReconcileConfig)
