from typing import Any, Optional

from web3 import Web3

from concierge.models import ClaimLedger, ClaimOutcome, ClaimRecord, HexString, Wei
from concierge.queries.chain import RPC_ERRORS, distributor_contract
from concierge.utils import hex_to_bytes

RECEIPT_TIMEOUT = 180


class ClaimSubmitter:
    """
    Sends one `claim(proof, group, data)` transaction per record and writes the outcome to the ledger.

    The distributor enforces at most one claim per leaf, so resubmitting is safe:
    a leaf that was already used reverts and is recorded as a failed outcome.
    The ledger line is on disk before `submit` returns.

    :param `account`: a local eth_account signer
    :param `max_fee`: maxFeePerGas for every transaction, the same ceiling the gas gate admits at
    :param `confirm`: wait for the receipt and record a reverted transaction as failed
    """

    def __init__(
        self,
        w3: Web3,
        distributor_address: str,
        account: Any,
        ledger: ClaimLedger,
        max_fee: Wei,
        confirm: bool = False,
    ):
        self.w3 = w3
        self.contract = distributor_contract(w3, distributor_address)
        self.account = account
        self.ledger = ledger
        self.max_fee = max_fee
        self.confirm = confirm

    def send_claim(self, record: ClaimRecord) -> HexString:
        fn = self.contract.functions.claim(
            [hex_to_bytes(p) for p in record.proof],
            hex_to_bytes(record.group),
            hex_to_bytes(record.data),
        )
        tx = fn.build_transaction(
            {
                "from": self.account.address,
                "nonce": self.w3.eth.get_transaction_count(self.account.address, "pending"),
                "maxFeePerGas": self.max_fee,
            }
        )
        signed = self.account.sign_transaction(tx)
        return Web3.to_hex(self.w3.eth.send_raw_transaction(signed.raw_transaction))

    def check_receipt(self, tx_hash: HexString) -> Optional[str]:
        """Returns an error message if the transaction reverted"""
        receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=RECEIPT_TIMEOUT)  # type: ignore
        return None if receipt["status"] == 1 else "transaction reverted"

    def submit(self, record: ClaimRecord) -> ClaimOutcome:
        tx_hash: Optional[HexString] = None
        error: Optional[str] = None
        try:
            tx_hash = self.send_claim(record)
            if self.confirm:
                error = self.check_receipt(tx_hash)
        except RPC_ERRORS as e:
            error = str(e)

        outcome = ClaimOutcome(
            recipient=record.recipient,
            leaf=record.leaf,
            success=error is None,
            txHash=tx_hash,
            error=error,
        )
        self.ledger.append(outcome)
        return outcome
