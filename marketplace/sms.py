"""Client for the secret management service (SMS)."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

import httpx
from web3 import Web3

from .errors import CollaboratorError
from .signers import TypedDataSigner

logger = logging.getLogger(__name__)

SMS_DOMAIN = "IEXEC_SMS_DOMAIN"


def web2_secret_challenge(owner: str, name: str, value: str) -> bytes:
    """Message the owner signs to push a secret."""

    return bytes(
        Web3.solidity_keccak(
            ["string", "address", "bytes32", "bytes32"],
            [SMS_DOMAIN, Web3.to_checksum_address(owner), Web3.keccak(text=name), Web3.keccak(text=value)],
        )
    )


class SmsClient:
    """Checks and pushes secrets; never reads secret values back."""

    def __init__(
        self,
        url: str,
        *,
        signer: Optional[TypedDataSigner] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._url = url.rstrip("/")
        self._signer = signer
        self._timeout = timeout
        self._transport = transport

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Mapping[str, Any],
        *,
        content: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        url = f"{self._url}/{endpoint}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                return await client.request(method, url, params=dict(params), content=content, headers=headers)
        except httpx.HTTPError as exc:
            raise CollaboratorError(f"SMS request {endpoint} failed: {exc}", service="sms") from exc

    async def _exists(self, endpoint: str, params: Mapping[str, Any]) -> bool:
        response = await self._request("GET", endpoint, params)
        if response.status_code == 404:
            return False
        if response.status_code >= 400:
            raise CollaboratorError(
                f"SMS responded with HTTP {response.status_code} on {endpoint}",
                service="sms",
                status=response.status_code,
            )
        return True

    async def check_web2_secret(self, owner: str, name: str) -> bool:
        return await self._exists("secrets/web2", {"ownerAddress": owner, "secretName": name})

    async def check_web3_secret(self, address: str) -> bool:
        return await self._exists("secrets/web3", {"secretAddress": address})

    async def push_web2_secret(self, owner: str, name: str, value: str) -> bool:
        """Register a secret; ``False`` when one already exists under ``name``."""

        if self._signer is None:
            raise CollaboratorError("A signer is required to push secrets", service="sms")
        signature = await self._signer.sign_message(owner, web2_secret_challenge(owner, name, value))
        response = await self._request(
            "POST",
            "secrets/web2",
            {"ownerAddress": owner, "secretName": name},
            content=value,
            headers={"Authorization": signature},
        )
        if response.status_code == 409:
            logger.warning("secret %s already exists for %s", name, owner)
            return False
        if response.status_code >= 400:
            raise CollaboratorError(
                f"SMS refused secret {name!r} for {owner}: HTTP {response.status_code}",
                service="sms",
                status=response.status_code,
            )
        logger.info("pushed secret %s for %s", name, owner)
        return True
