"""Client for the marketplace order-book gateway."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from .errors import CollaboratorError
from .orders.typed_data import hash_typed_data
from .signers import TypedDataSigner

logger = logging.getLogger(__name__)


class GatewayClient:
    """Publishes, unpublishes and searches signed orders.

    Write calls are authenticated with a challenge issued by the gateway and
    signed by ``signer``; the resulting credential is
    ``<challengeHash>_<signature>_<address>``.
    """

    def __init__(
        self,
        url: str,
        chain_id: int,
        *,
        signer: Optional[TypedDataSigner] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._url = url.rstrip("/")
        self._chain_id = chain_id
        self._signer = signer
        self._headers = headers or {}
        self._timeout = timeout
        self._transport = transport

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        body: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Dict[str, Any]:
        url = f"{self._url}/{endpoint.lstrip('/')}"
        merged = {**self._headers, **dict(headers or {})}
        try:
            async with httpx.AsyncClient(timeout=self._timeout, headers=merged, transport=self._transport) as client:
                response = await client.request(method, url, params=params, json=body)
        except httpx.HTTPError as exc:
            raise CollaboratorError(f"Gateway request {endpoint} failed: {exc}", service="gateway") from exc
        if response.status_code >= 400:
            raise CollaboratorError(
                f"Gateway responded with HTTP {response.status_code} on {endpoint}",
                service="gateway",
                status=response.status_code,
            )
        try:
            data = response.json()
        except json.JSONDecodeError as exc:
            raise CollaboratorError(f"Invalid gateway response on {endpoint}", service="gateway") from exc
        if not isinstance(data, dict) or not data.get("ok"):
            error = data.get("error") if isinstance(data, dict) else None
            raise CollaboratorError(
                f"Gateway rejected {endpoint}: {error or 'unexpected payload'}",
                service="gateway",
                status=response.status_code,
            )
        return data

    async def authorization(self, address: str) -> str:
        if self._signer is None:
            raise CollaboratorError("A signer is required to authenticate with the gateway", service="gateway")
        data = await self._request("GET", "challenge", params={"chainId": str(self._chain_id), "address": address})
        challenge = data.get("data")
        if not isinstance(challenge, dict):
            raise CollaboratorError("Gateway returned an invalid challenge", service="gateway")
        try:
            typed = {key: challenge[key] for key in ("types", "domain", "primaryType", "message")}
        except KeyError as exc:
            raise CollaboratorError(f"Gateway challenge is missing {exc}", service="gateway") from exc
        signature = await self._signer.sign_typed_data(
            address, typed["domain"], typed["types"], typed["primaryType"], typed["message"]
        )
        return f"{hash_typed_data(typed)}_{signature}_{address}"

    async def publish(self, endpoint: str, order: Mapping[str, Any], address: str) -> str:
        authorization = await self.authorization(address)
        data = await self._request(
            "POST",
            f"{endpoint}/publish",
            body={"chainId": str(self._chain_id), "order": dict(order)},
            headers={"authorization": authorization},
        )
        saved = data.get("saved") or {}
        order_hash = saved.get("orderHash")
        if not order_hash:
            raise CollaboratorError("An error occurred while publishing order", service="gateway")
        logger.info("published %s %s", endpoint, order_hash)
        return order_hash

    async def unpublish(self, endpoint: str, order_hash: str, address: str) -> str:
        authorization = await self.authorization(address)
        data = await self._request(
            "POST",
            f"{endpoint}/unpublish",
            body={"chainId": str(self._chain_id), "orderHash": order_hash},
            headers={"authorization": authorization},
        )
        unpublished = data.get("unpublished")
        if not unpublished:
            raise CollaboratorError("An error occurred while unpublishing order", service="gateway")
        logger.info("unpublished %s %s", endpoint, order_hash)
        return unpublished

    async def find_one(self, endpoint: str, find: Mapping[str, Any]) -> Dict[str, Any]:
        body = {
            "chainId": str(self._chain_id),
            "sort": {"publicationTimestamp": -1},
            "limit": 1,
            "find": dict(find),
        }
        return await self._request("POST", endpoint, body=body)

