"""Signer interfaces for typed-data and challenge signatures."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Mapping, Protocol

from eth_account import Account
from eth_account.messages import encode_defunct, encode_typed_data
from eth_account.signers.local import LocalAccount


class TypedDataSigner(Protocol):
    """Protocol for objects capable of producing EIP-712 signatures."""

    @property
    def address(self) -> str:  # pragma: no cover - protocol
        """Checksummed address of the signing key."""

    async def sign_typed_data(
        self,
        address: str,
        domain: Mapping[str, Any],
        types: Mapping[str, List[Dict[str, str]]],
        primary_type: str,
        message: Mapping[str, Any],
    ) -> str:  # pragma: no cover - protocol
        """Sign the typed-data document with the key of ``address``."""

    async def sign_message(self, address: str, message: bytes) -> str:  # pragma: no cover - protocol
        """Sign ``message`` with the personal-message prefix."""


class LocalAccountSigner:
    """Signer backed by an in-process private key."""

    def __init__(self, account: LocalAccount) -> None:
        self._account = account

    @classmethod
    def from_key(cls, private_key: str) -> "LocalAccountSigner":
        return cls(Account.from_key(private_key))

    @property
    def address(self) -> str:
        return self._account.address

    def _check_address(self, address: str) -> None:
        if address.lower() != self._account.address.lower():
            raise ValueError(f"signer holds the key of {self._account.address}, not {address}")

    async def sign_typed_data(
        self,
        address: str,
        domain: Mapping[str, Any],
        types: Mapping[str, List[Dict[str, str]]],
        primary_type: str,
        message: Mapping[str, Any],
    ) -> str:
        self._check_address(address)
        signable = encode_typed_data(
            full_message={
                "types": dict(types),
                "domain": dict(domain),
                "primaryType": primary_type,
                "message": dict(message),
            }
        )
        signed = self._account.sign_message(signable)
        await asyncio.sleep(0)
        return "0x" + bytes(signed.signature).hex()

    async def sign_message(self, address: str, message: bytes) -> str:
        self._check_address(address)
        signed = self._account.sign_message(encode_defunct(primitive=message))
        await asyncio.sleep(0)
        return "0x" + bytes(signed.signature).hex()
