import json
from typing import Any, Optional, Union

import eth_utils as eth
import requests
from multicall import Call, Multicall  # type: ignore
from web3 import Web3
from web3.exceptions import Web3Exception

from concierge.errors import ChainReadError
from concierge.models import (
    DistributionWindow,
    EthereumAddress,
    HexString,
    Leaf,
    LeafData,
    Wei,
)
from concierge.utils import hex_to_bytes

# simplified ABI containing just the fragments of the NFTGatedMerkleDistributor we use
DISTRIBUTOR_ABI = json.loads(
    """
    [{
      "inputs": [{"internalType": "bytes32", "name": "leaf", "type": "bytes32"}],
      "name": "isLeafUsed",
      "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
      "stateMutability": "view",
      "type": "function"
    },
    {
      "inputs": [],
      "name": "getTime",
      "outputs": [
        {"internalType": "uint256", "name": "", "type": "uint256"},
        {"internalType": "uint256", "name": "", "type": "uint256"}
      ],
      "stateMutability": "view",
      "type": "function"
    },
    {
      "inputs": [],
      "name": "paused",
      "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
      "stateMutability": "view",
      "type": "function"
    },
    {
      "inputs": [{"internalType": "bytes", "name": "data", "type": "bytes"}],
      "name": "decodeMOCALeafData",
      "outputs": [{
        "components": [
          {
            "components": [
              {"internalType": "uint256", "name": "index", "type": "uint256"},
              {"internalType": "uint128", "name": "claimableTimestamp", "type": "uint128"},
              {"internalType": "uint256", "name": "claimableAmount", "type": "uint256"}
            ],
            "internalType": "struct TokenTableMerkleDistributorData",
            "name": "base",
            "type": "tuple"
          },
          {"internalType": "uint128", "name": "expiryTimestamp", "type": "uint128"},
          {"internalType": "uint256", "name": "nftTokenId", "type": "uint256"}
        ],
        "internalType": "struct MOCALeafData",
        "name": "",
        "type": "tuple"
      }],
      "stateMutability": "pure",
      "type": "function"
    },
    {
      "inputs": [
        {"internalType": "bytes32[]", "name": "proof", "type": "bytes32[]"},
        {"internalType": "bytes32", "name": "group", "type": "bytes32"},
        {"internalType": "bytes", "name": "data", "type": "bytes"}
      ],
      "name": "claim",
      "outputs": [],
      "stateMutability": "payable",
      "type": "function"
    }]
    """
)

IS_LEAF_USED = "isLeafUsed(bytes32)(bool)"

# errors a single RPC round trip can surface with
RPC_ERRORS = (Web3Exception, ValueError, requests.RequestException)


def distributor_contract(w3: Web3, address: EthereumAddress) -> Any:
    return w3.eth.contract(address=eth.to_checksum_address(address), abi=DISTRIBUTOR_ABI)  # type: ignore


class ChainStateReader:
    """
    Read side of the distributor contract.
    `is_used` is the hot path: one aggregated multicall per chunk of leaves, never one call per leaf.
    :param `block_id`: pin every read to a block, defaults to latest
    """

    def __init__(
        self,
        w3: Web3,
        distributor_address: EthereumAddress,
        block_id: Optional[int] = None,
    ):
        self.w3 = w3
        self.address = eth.to_checksum_address(distributor_address)
        self.block_id = block_id
        self.contract = distributor_contract(w3, self.address)

    @property
    def block_identifier(self) -> Union[int, str]:
        return self.block_id if self.block_id is not None else "latest"

    def is_used(self, leaves: list[Leaf]) -> list[bool]:
        """
        Claimed status of each leaf, in input order.
        If the aggregated call fails, the whole batch fails: there is no partial result.
        """
        if not leaves:
            return []

        calls = [
            Call(
                # address to call:
                self.address,
                # signature + return value, with argument:
                [IS_LEAF_USED, hex_to_bytes(leaf)],
                # keyed by position so repeated leaves keep their own slot:
                [[idx, None]],
            )
            for idx, leaf in enumerate(leaves)
        ]

        try:
            results = Multicall(calls, _w3=self.w3, block_id=self.block_id)()
        except Exception as e:
            raise ChainReadError(f"isLeafUsed multicall failed for {len(leaves)} leaves: {e}") from e

        missing = [idx for idx in range(len(leaves)) if idx not in results]
        if missing:
            raise ChainReadError(f"isLeafUsed multicall returned no result for {len(missing)} leaves")

        return [bool(results[idx]) for idx in range(len(leaves))]

    def _call(self, fn) -> Any:
        try:
            return fn.call(block_identifier=self.block_identifier)
        except RPC_ERRORS as e:
            raise ChainReadError(f"{fn.fn_name} call failed: {e}") from e

    def get_window(self) -> DistributionWindow:
        start, end = self._call(self.contract.functions.getTime())
        return DistributionWindow(start_time=start, end_time=end)

    def paused(self) -> bool:
        return bool(self._call(self.contract.functions.paused()))

    def decode_leaf_data(self, data: HexString) -> LeafData:
        decoded = self._call(self.contract.functions.decodeMOCALeafData(hex_to_bytes(data)))
        return LeafData.from_call(decoded)

    def gas_price(self) -> Wei:
        try:
            return self.w3.eth.gas_price
        except RPC_ERRORS as e:
            raise ChainReadError(f"gas price lookup failed: {e}") from e
