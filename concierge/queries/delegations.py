import json
from typing import Any

import eth_utils as eth
from web3 import Web3

from concierge.errors import ChainReadError
from concierge.models import DELEGATE_REGISTRY_ADDRESS, EthereumAddress
from concierge.queries.chain import RPC_ERRORS
from concierge.utils import unique

# just the incoming delegations view of the registry
DELEGATE_REGISTRY_ABI = json.loads(
    """
    [{
      "inputs": [{"internalType": "address", "name": "to", "type": "address"}],
      "name": "getIncomingDelegations",
      "outputs": [{
        "components": [
          {"internalType": "enum IDelegateRegistry.DelegationType", "name": "type_", "type": "uint8"},
          {"internalType": "address", "name": "to", "type": "address"},
          {"internalType": "address", "name": "from", "type": "address"},
          {"internalType": "bytes32", "name": "rights", "type": "bytes32"},
          {"internalType": "address", "name": "contract_", "type": "address"},
          {"internalType": "uint256", "name": "tokenId", "type": "uint256"},
          {"internalType": "uint256", "name": "amount", "type": "uint256"}
        ],
        "internalType": "struct IDelegateRegistry.Delegation[]",
        "name": "delegations",
        "type": "tuple[]"
      }],
      "stateMutability": "view",
      "type": "function"
    }]
    """
)


def delegate_registry(w3: Web3, address: EthereumAddress = DELEGATE_REGISTRY_ADDRESS) -> Any:
    return w3.eth.contract(address=eth.to_checksum_address(address), abi=DELEGATE_REGISTRY_ABI)  # type: ignore


class DelegationReader:
    """
    Finds the holders who have delegated to the concierge wallet on delegate.xyz.
    Any delegation type counts: a holder who delegated anything to us wants us to claim.
    """

    def __init__(self, w3: Web3, registry_address: EthereumAddress = DELEGATE_REGISTRY_ADDRESS):
        self.w3 = w3
        self.address = eth.to_checksum_address(registry_address)
        self.contract = delegate_registry(w3, self.address)

    def incoming_delegators(self, delegate: EthereumAddress) -> list[EthereumAddress]:
        """Checksummed `from` address of every delegation to `delegate`, first seen order"""
        fn = self.contract.functions.getIncomingDelegations(eth.to_checksum_address(delegate))
        try:
            delegations = fn.call()
        except RPC_ERRORS as e:
            raise ChainReadError(f"getIncomingDelegations call failed for {delegate}: {e}") from e

        return unique([eth.to_checksum_address(delegator) for _type, _to, delegator, *_ in delegations])
