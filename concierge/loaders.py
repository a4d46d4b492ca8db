"""
Readers for the csv inputs handed over by the distribution team.
Token ids are padded on the way in, so every comparison downstream uses the same form.
"""

import csv
from decimal import Decimal

import eth_utils as eth

from concierge.errors import BadConfigException
from concierge.models import EthereumAddress, RecipientId, Wei
from concierge.utils import pad_token_id, unique


def read_csv(path: str) -> list[dict[str, str]]:
    with open(path, newline="") as f:
        return [
            {k.strip(): (v or "").strip() for k, v in row.items() if k}
            for row in csv.DictReader(f, skipinitialspace=True)
        ]


def _column(rows: list[dict[str, str]], column: str, path: str) -> list[str]:
    try:
        return [row[column] for row in rows]
    except KeyError:
        raise BadConfigException(f"{path} has no `{column}` column")


def load_token_ids(path: str, column: str = "token_id") -> list[RecipientId]:
    """Ordered list of token ids, duplicates are kept: deduplicating is the caller's call"""
    return [pad_token_id(t) for t in _column(read_csv(path), column, path)]


def load_allocations(
    path: str,
    recipient_column: str = "Recipient",
    amount_column: str = "Token Allocated",
) -> dict[RecipientId, Wei]:
    """
    The authoritative allocation for a week, `Token Allocated` is in whole tokens (18 decimals).
    A recipient listed twice is a broken table, not something to pick a winner from.
    """
    rows = read_csv(path)
    recipients = _column(rows, recipient_column, path)
    amounts = _column(rows, amount_column, path)

    allocations: dict[RecipientId, Wei] = {}
    for recipient, amount in zip(recipients, amounts):
        key = pad_token_id(recipient)
        if key in allocations:
            raise BadConfigException(f"Recipient {key} is listed twice in {path}")
        allocations[key] = eth.to_wei(Decimal(amount), "ether")
    return allocations


def load_addresses(path: str, column: str = "address") -> list[EthereumAddress]:
    """Lower cased, deduplicated owner addresses"""
    return unique([a.lower() for a in _column(read_csv(path), column, path)])
