from typing import Optional
from decimal import Decimal

import eth_utils as eth
from pydantic import BaseModel, field_validator, model_validator

from concierge.errors import BadConfigException
from concierge.models.types import EthereumAddress, Wei

PROOF_SERVICE_URL = "https://moca-claim.tokentable.xyz"
MOCA_NFT_ADDRESS = "0x59325733eb952a92e069c87f0a6168b29e80627f"
# delegate.xyz v2 registry, the same address on every chain it is deployed to
DELEGATE_REGISTRY_ADDRESS = "0x00000000000000447e69651d841bD8D104Bed493"


class ERROR_MESSAGES:
    CHUNK_SIZE = "Chunk size must be a positive integer"
    WORKERS = "Need at least one fetch worker"
    RETRIES = "Max retries cannot be negative"
    GAS_CEILING = "Gas ceiling must be positive"
    MAX_WAIT = "Max gas wait must be positive if set"
    WEEK = "Week must be 1 or greater, week 0 is the empty tree"
    RANGE = "end_at must be 0 (whole list) or greater than start_at"
    POPULATION_CAP = "Population cap must be a positive integer if set"


class DistributionConfig(BaseModel):
    """
    Settings shared by claim and reconciliation runs
    :param `distribution_id`: project id of the distribution on the proof service
    :param `distributor_address`: the NFT gated merkle distributor, checksummed on read
    :param `chunk_size`: number of recipients per proof service request and per multicall
    :param `fetch_workers`: proof service requests in flight at once
    """

    distribution_id: str
    distributor_address: EthereumAddress
    proof_service_url: str = PROOF_SERVICE_URL
    chunk_size: int = 50
    fetch_workers: int = 4
    max_retries: int = 3
    retry_backoff: float = 1.0
    request_timeout: float = 30
    output_dir: str = "output"

    @field_validator("distributor_address")
    @classmethod
    def checksum_distributor(cls, addr: EthereumAddress) -> EthereumAddress:
        return eth.to_checksum_address(addr)

    @field_validator("chunk_size")
    @classmethod
    def validate_chunk_size(cls, size: int) -> int:
        if size < 1:
            raise BadConfigException(ERROR_MESSAGES.CHUNK_SIZE)
        return size

    @field_validator("fetch_workers")
    @classmethod
    def validate_workers(cls, workers: int) -> int:
        if workers < 1:
            raise BadConfigException(ERROR_MESSAGES.WORKERS)
        return workers

    @field_validator("max_retries")
    @classmethod
    def validate_retries(cls, retries: int) -> int:
        if retries < 0:
            raise BadConfigException(ERROR_MESSAGES.RETRIES)
        return retries


class ClaimConfig(DistributionConfig):
    """
    Config for a claim run on behalf of NFT holders.

    The population is read from `population_path` (a csv of token ids) when set.
    Otherwise it is built from the NFTs held by the owners: the static `owners` list if given,
    else every address that delegated to the concierge wallet on the `delegate_registry`.
    `max_gas_wait` of None means the admission gate waits for as long as it takes,
    which will never return if the ceiling is set below what the network will reach.
    """

    gas_ceiling_gwei: Decimal = Decimal(7)
    poll_interval: float = 15
    max_gas_wait: Optional[float] = None
    confirm_receipts: bool = False
    chain_id: int = 1
    nft_contract: EthereumAddress = MOCA_NFT_ADDRESS
    population_path: Optional[str] = None
    owners: list[EthereumAddress] = []
    delegate_registry: EthereumAddress = DELEGATE_REGISTRY_ADDRESS
    allowed_owners_path: Optional[str] = None

    @field_validator("nft_contract", "delegate_registry")
    @classmethod
    def checksum_contracts(cls, addr: EthereumAddress) -> EthereumAddress:
        return eth.to_checksum_address(addr)

    @field_validator("owners")
    @classmethod
    def checksum_owners(cls, owners: list[EthereumAddress]) -> list[EthereumAddress]:
        return [eth.to_checksum_address(o) for o in owners]

    @field_validator("gas_ceiling_gwei")
    @classmethod
    def validate_gas_ceiling(cls, ceiling: Decimal) -> Decimal:
        if ceiling <= 0:
            raise BadConfigException(ERROR_MESSAGES.GAS_CEILING)
        return ceiling

    @field_validator("max_gas_wait")
    @classmethod
    def validate_max_wait(cls, wait: Optional[float]) -> Optional[float]:
        if wait is not None and wait <= 0:
            raise BadConfigException(ERROR_MESSAGES.MAX_WAIT)
        return wait

    @property
    def gas_ceiling(self) -> Wei:
        return eth.to_wei(self.gas_ceiling_gwei, "gwei")


class ReconcileConfig(DistributionConfig):
    """
    Config for validating a week's merkle tree against the previous week
    :param `week`: the week being validated, the previous snapshot is `week - 1`
    :param `nft_list_path`: csv with a `token_id` column, the full eligible population
    :param `allocation_path`: csv with `Recipient` and `Token Allocated` columns, amounts in whole tokens
    :param `population_cap`: max number of leaves, defaults to the size of the nft list
    :param `start_at`, `end_at`: optional slice of the nft list, `end_at` of 0 means until the end
    """

    week: int
    nft_list_path: str
    allocation_path: str
    population_cap: Optional[int] = None
    start_at: int = 0
    end_at: int = 0
    block_snapshot: Optional[int] = None
    snapshot_dir: str = "snapshots"

    @field_validator("week")
    @classmethod
    def validate_week(cls, week: int) -> int:
        if week < 1:
            raise BadConfigException(ERROR_MESSAGES.WEEK)
        return week

    @field_validator("population_cap")
    @classmethod
    def validate_population_cap(cls, cap: Optional[int]) -> Optional[int]:
        if cap is not None and cap < 1:
            raise BadConfigException(ERROR_MESSAGES.POPULATION_CAP)
        return cap

    @model_validator(mode="after")
    def validate_range(self) -> "ReconcileConfig":
        if self.start_at < 0 or (self.end_at != 0 and self.end_at <= self.start_at):
            raise BadConfigException(ERROR_MESSAGES.RANGE)
        return self
