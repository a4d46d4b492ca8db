from typing import Any, Optional

import requests
from pydantic import TypeAdapter, ValidationError

from concierge.errors import MalformedResponseError, ProofServiceError
from concierge.models import (
    ClaimRecord,
    EthereumAddress,
    ProofService_Response,
    RecipientId,
)
from concierge.queries.common import extract_nested
from concierge.utils import pad_token_id

ClaimRecords = TypeAdapter(list[ClaimRecord])


class ProofServiceClient:
    """
    Thin client over the proof service's open airdrop API.
    Transport faults raise `ProofServiceError` (retryable),
    anything that doesn't parse raises `MalformedResponseError` (not retryable).
    """

    BATCH_QUERY = "/api/airdrop-open/batch-query"
    OWNED_NFTS = "/api/airdrop-open/nfts"

    def __init__(
        self,
        base_url: str,
        project_id: str,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
    ):
        self.base_url = base_url.rstrip("/")
        self.project_id = project_id
        self.session = session or requests.Session()
        self.timeout = timeout

    def _post(self, endpoint: str, payload: dict[str, Any]) -> ProofService_Response:
        url = f"{self.base_url}{endpoint}"
        try:
            response = self.session.post(url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise ProofServiceError(f"Request to {url} failed: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise MalformedResponseError(f"Non json response from {url}") from e

        if not body:
            raise MalformedResponseError(f"Empty response from {url}")
        return body

    def request_proofs(self, recipients: list[RecipientId]) -> list[ClaimRecord]:
        """Batch query the claims for a list of token ids in this distribution"""
        payload = {
            "recipients": [pad_token_id(r) for r in recipients],
            "projectId": self.project_id,
        }
        body = self._post(self.BATCH_QUERY, payload)

        claims = extract_nested(body, ["claims"])
        if not isinstance(claims, list):
            raise MalformedResponseError("data.claims is not a list")

        try:
            return ClaimRecords.validate_python(claims)
        except ValidationError as e:
            raise MalformedResponseError(f"Invalid claim in response: {e}") from e

    def request_owned_nfts(
        self, chain_id: int, owner: EthereumAddress, contract: EthereumAddress
    ) -> list[RecipientId]:
        """Token ids of `contract` held by `owner`, as indexed by the proof service"""
        payload = {
            "chainId": str(chain_id),
            "owner": owner,
            "contractAddress": contract,
        }
        body = self._post(self.OWNED_NFTS, payload)

        nfts = extract_nested(body, ["ownedNfts"])
        try:
            return [pad_token_id(n["tokenId"]) for n in nfts]
        except (KeyError, TypeError) as e:
            raise MalformedResponseError("Invalid ownedNfts in response") from e
