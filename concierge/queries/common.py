from copy import deepcopy
from typing import Any, Optional

from web3 import Web3

from concierge.env import rpc_url
from concierge.errors import MalformedResponseError
from concierge.models import ProofService_Response


def get_w3(url: Optional[str] = None) -> Web3:
    """instantiate a basic web3 client, from the environment unless a url is passed"""
    return Web3(Web3.HTTPProvider(url or rpc_url()))


def extract_nested(res: ProofService_Response, access_path: list[str]) -> Any:
    """
    This function walks through a dictionary until it finds the data you want.

    :param `access_path`: in the format ['first_key', 'nested_key_level0', 'nested_key_level1', ....]
    :param `res`: api response from the proof service. First key should be 'data'
    """
    deepcopy_access_path = deepcopy(access_path)
    try:
        current = res["data"]
        while len(deepcopy_access_path) > 0:
            current = current[deepcopy_access_path.pop(0)]
    except (KeyError, TypeError) as e:
        raise MalformedResponseError(
            f"Response is missing data.{'.'.join(access_path)}"
        ) from e
    return current
