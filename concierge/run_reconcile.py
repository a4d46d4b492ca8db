import threading
from typing import Optional

from web3 import Web3

from concierge.config import load_reconcile_conf
from concierge.loaders import load_allocations, load_token_ids
from concierge.models import (
    LeafSnapshotEntry,
    ReconciliationReport,
    SnapshotStore,
    Writer,
)
from concierge.queries import ChainStateReader, ProofServiceClient, get_w3
from concierge.reconciler import WeeklyReconciler


def run_reconcile(
    path_to_config: str,
    cancel: Optional[threading.Event] = None,
    w3: Optional[Web3] = None,
) -> ReconciliationReport:
    """
    Validate this week's tree against last week's snapshot and, if it passes, persist it.
    Raises on the first violated invariant, in which case nothing is written for the week.
    """
    config = load_reconcile_conf(path_to_config)
    w3 = w3 or get_w3()

    nft_ids = load_token_ids(config.nft_list_path)
    allocations = load_allocations(config.allocation_path)

    end = config.end_at or len(nft_ids)
    population = nft_ids[config.start_at : end]

    chain = ChainStateReader(w3, config.distributor_address, block_id=config.block_snapshot)
    store = SnapshotStore(config.snapshot_dir, config.distribution_id)
    writer = Writer(config)

    window = chain.get_window()
    print(f"Contract start time: {window.start_time} end time: {window.end_time}")
    print(
        f"Script started for validating week {config.week} of {config.distribution_id}, contract {chain.address} at {writer.run_timestamp}"
    )

    previous = store.load(config.week - 1)
    print(f"Loaded {len(previous)} leafs from week {config.week - 1}")

    reconciler = WeeklyReconciler(
        ProofServiceClient(
            config.proof_service_url,
            config.distribution_id,
            timeout=config.request_timeout,
        ),
        chain,
        store,
        writer=writer,
        workers=config.fetch_workers,
        max_retries=config.max_retries,
        retry_backoff=config.retry_backoff,
        cancel=cancel,
    )

    report = reconciler.reconcile(
        config.week,
        population,
        previous,
        allocations,
        len(nft_ids) if config.population_cap is None else config.population_cap,
        config.chunk_size,
    )

    print(
        f"🚀 Week {report.week} accepted: {report.matched} matched, {report.carried_over} carried over, "
        f"{report.new_leaf_count} new leafs ({report.diff_from_previous:+d}), total claimable {report.total_claimable}"
    )
    if report.top_up_required is not None:
        print(f"   Top up required for the distributor: {report.top_up_required}")
    return report


def import_snapshot(path_to_config: str, week: int, csv_path: str) -> list[LeafSnapshotEntry]:
    """Seed the snapshot store with a week validated before the store existed"""
    config = load_reconcile_conf(path_to_config)
    store = SnapshotStore(config.snapshot_dir, config.distribution_id)
    entries = store.import_csv(week, csv_path)
    print(f"Imported {len(entries)} leafs as week {week} of {config.distribution_id}")
    return entries
