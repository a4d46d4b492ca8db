import threading
import time
from typing import Optional

from eth_account import Account
from web3 import Web3

from concierge.config import load_claim_conf
from concierge.env import concierge_private_key
from concierge.gas import GasAdmissionGate
from concierge.loaders import load_addresses, load_token_ids
from concierge.models import ClaimConfig, ClaimLedger, EthereumAddress, RecipientId, RunStats
from concierge.orchestrator import ClaimOrchestrator
from concierge.queries import ChainStateReader, DelegationReader, ProofServiceClient, get_w3
from concierge.submitter import ClaimSubmitter
from concierge.utils import unique


def resolve_owners(
    config: ClaimConfig, delegations: DelegationReader, delegate: EthereumAddress
) -> list[EthereumAddress]:
    """
    Holders to claim for: the static `owners` from the config if any, otherwise every address
    that delegated to `delegate`. Restricted to `allowed_owners_path` when that is set.
    """
    if config.owners:
        owners = config.owners
    else:
        owners = delegations.incoming_delegators(delegate)
        print(f"{len(owners)} delegating addresses found for {delegate}")

    if config.allowed_owners_path:
        allowed = set(load_addresses(config.allowed_owners_path))
        processing = [o for o in owners if o.lower() in allowed]
        print(f"{len(processing)} of {len(owners)} owners are in the allowed list")
        owners = processing
    return owners


def build_population(
    config: ClaimConfig, proofs: ProofServiceClient, owners: list[EthereumAddress]
) -> list[RecipientId]:
    """
    Token ids to claim for, in order and without duplicates.
    Either read straight from the population csv, or collected from the NFTs each owner holds.
    """
    if config.population_path:
        return unique(load_token_ids(config.population_path))

    token_ids: list[RecipientId] = []
    for owner in owners:
        owned = proofs.request_owned_nfts(config.chain_id, owner, config.nft_contract)
        print(f"   {owner} holds {len(owned)} nfts")
        token_ids += owned
    return unique(token_ids)


def run_claim(
    path_to_config: str,
    cancel: Optional[threading.Event] = None,
    w3: Optional[Web3] = None,
) -> RunStats:
    """
    Entry point for claiming on behalf of holders: wires the proof service, chain reader,
    gas gate and submitter together and runs the orchestrator over the population.
    """
    config = load_claim_conf(path_to_config)
    cancel = cancel or threading.Event()
    w3 = w3 or get_w3()

    account = Account.from_key(concierge_private_key())
    proofs = ProofServiceClient(
        config.proof_service_url, config.distribution_id, timeout=config.request_timeout
    )
    chain = ChainStateReader(w3, config.distributor_address)
    ledger = ClaimLedger(config.output_dir, config.distribution_id)

    print(
        f"Script started for NFT airdrop claiming on behalf: project {config.distribution_id}, contract {chain.address} @ {ledger.run_timestamp}"
    )

    window = chain.get_window()
    print(f"Contract start time: {window.start_time} end time: {window.end_time}")
    if not window.is_open(int(time.time())):
        print("⚠️  Distribution window is not open, claims are likely to revert")

    gate = GasAdmissionGate(
        chain.gas_price,
        interval=config.poll_interval,
        max_wait=config.max_gas_wait,
        cancel=cancel,
    )
    submitter = ClaimSubmitter(
        w3,
        config.distributor_address,
        account,
        ledger,
        max_fee=config.gas_ceiling,
        confirm=config.confirm_receipts,
    )
    orchestrator = ClaimOrchestrator(
        proofs,
        chain,
        gate,
        submitter,
        workers=config.fetch_workers,
        max_retries=config.max_retries,
        retry_backoff=config.retry_backoff,
        cancel=cancel,
    )

    owners: list[EthereumAddress] = []
    if not config.population_path:
        delegations = DelegationReader(w3, config.delegate_registry)
        owners = resolve_owners(config, delegations, account.address)
    population = build_population(config, proofs, owners)
    print(f"Processing {len(population)} nfts, ledger at {ledger.path}")

    return orchestrator.run(population, config.chunk_size, config.gas_ceiling)
