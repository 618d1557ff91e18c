"""Ledger collaborator and the per-chain context shared by every operation."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3, Web3
from web3.logs import DISCARD

from .abi import ABIS, EVENT_SOURCES
from .codec import normalize_address
from .config import ChainConfig
from .errors import CollaboratorError, ConfirmationError, MarketplaceError, PreconditionError, ValidationError
from .orders.models import Order, OrderKind
from .orders.typed_data import compute_order_hash, eip712_domain
from .signers import TypedDataSigner

logger = logging.getLogger(__name__)

Receipt = Dict[str, Any]


class LedgerClient(Protocol):
    """Subset of ledger access required by the marketplace client."""

    async def read(self, contract: str, method: str, *args: Any, at: Optional[str] = None) -> Any:  # pragma: no cover - protocol
        """Call a view method and return plain python values."""

    async def send_transaction(
        self,
        contract: str,
        method: str,
        *args: Any,
        at: Optional[str] = None,
        tx_options: Optional[Mapping[str, Any]] = None,
    ) -> str:  # pragma: no cover - protocol
        """Submit a transaction and return its hash."""

    async def wait_receipt(self, tx_hash: str, confirmations: int = 1) -> Receipt:  # pragma: no cover - protocol
        """Wait for ``tx_hash`` and return ``{"txHash": ..., "events": [{"event", "args"}]}``."""


def _plain(value: Any, param: Mapping[str, Any]) -> Any:
    type_ = param["type"]
    if type_.endswith("[]"):
        item = {**param, "type": type_[:-2]}
        return [_plain(entry, item) for entry in value]
    if type_ == "tuple":
        return {
            component["name"]: _plain(entry, component)
            for component, entry in zip(param["components"], value)
        }
    if type_.startswith("bytes"):
        return "0x" + bytes(value).hex()
    return value


def _plain_event_args(args: Mapping[str, Any]) -> Dict[str, Any]:
    plain: Dict[str, Any] = {}
    for key, value in args.items():
        plain[key] = "0x" + bytes(value).hex() if isinstance(value, (bytes, bytearray)) else value
    return plain


def _outputs(contract: str, method: str) -> List[Dict[str, Any]]:
    for entry in ABIS[contract]:
        if entry["type"] == "function" and entry["name"] == method:
            return entry["outputs"]
    raise ValidationError(f"unknown method {contract}.{method}")


class Web3Ledger:
    """Ledger client backed by an ``AsyncWeb3`` provider."""

    def __init__(
        self,
        web3: AsyncWeb3,
        hub_address: str,
        *,
        account: Optional[LocalAccount] = None,
        tx_options: Optional[Mapping[str, Any]] = None,
        poll_interval: float = 1.0,
    ) -> None:
        self.web3 = web3
        self._hub = Web3.to_checksum_address(hub_address)
        self._account = account
        self._tx_options = dict(tx_options or {})
        self._poll_interval = poll_interval
        self._linked: Dict[str, str] = {}

    @classmethod
    def from_config(cls, config: ChainConfig, private_key: Optional[str] = None) -> "Web3Ledger":
        if not config.rpc_url:
            raise ValidationError(f"chain {config.name!r} has no rpc_url")
        web3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(config.rpc_url))
        account = Account.from_key(private_key) if private_key else None
        return cls(web3, config.hub_address, account=account, tx_options=config.tx_options)

    async def _address(self, contract: str, at: Optional[str]) -> str:
        if at is not None:
            return Web3.to_checksum_address(at)
        if contract == "hub":
            return self._hub
        if contract in ("clerk", "token"):
            if contract not in self._linked:
                self._linked[contract] = await self.read("hub", contract)
            return Web3.to_checksum_address(self._linked[contract])
        raise ValidationError(f"an address is required to reach the {contract} contract")

    def _contract(self, name: str, address: str) -> Any:
        return self.web3.eth.contract(address=address, abi=ABIS[name])

    async def read(self, contract: str, method: str, *args: Any, at: Optional[str] = None) -> Any:
        instance = self._contract(contract, await self._address(contract, at))
        result = await getattr(instance.functions, method)(*args).call()
        outputs = _outputs(contract, method)
        if len(outputs) == 1:
            return _plain(result, outputs[0])
        return {param["name"]: _plain(value, param) for param, value in zip(outputs, result)}

    async def send_transaction(
        self,
        contract: str,
        method: str,
        *args: Any,
        at: Optional[str] = None,
        tx_options: Optional[Mapping[str, Any]] = None,
    ) -> str:
        instance = self._contract(contract, await self._address(contract, at))
        function = getattr(instance.functions, method)(*args)
        options = {**self._tx_options, **dict(tx_options or {})}
        if self._account is None:
            tx_hash = await function.transact(options)
        else:
            options.setdefault("from", self._account.address)
            options.setdefault("nonce", await self.web3.eth.get_transaction_count(self._account.address))
            transaction = await function.build_transaction(options)
            signed = self._account.sign_transaction(transaction)
            tx_hash = await self.web3.eth.send_raw_transaction(signed.raw_transaction)
        return Web3.to_hex(tx_hash)

    async def wait_receipt(self, tx_hash: str, confirmations: int = 1) -> Receipt:
        receipt = await self.web3.eth.wait_for_transaction_receipt(tx_hash)
        target = receipt["blockNumber"] + confirmations - 1
        while await self.web3.eth.block_number < target:
            await asyncio.sleep(self._poll_interval)
        decoded: Dict[int, Dict[str, Any]] = {}
        for name in EVENT_SOURCES:
            instance = self._contract(name, await self._address(name, None))
            for entry in ABIS[name]:
                if entry["type"] != "event":
                    continue
                event = getattr(instance.events, entry["name"])()
                for log in event.process_receipt(receipt, errors=DISCARD):
                    decoded.setdefault(
                        log["logIndex"],
                        {"event": log["event"], "args": _plain_event_args(log["args"])},
                    )
        return {
            "txHash": Web3.to_hex(receipt["transactionHash"]),
            "events": [decoded[index] for index in sorted(decoded)],
        }


def find_event(receipt: Receipt, name: str) -> Optional[Dict[str, Any]]:
    for event in receipt.get("events", []):
        if event.get("event") == name:
            return event
    return None


class ChainContext:
    """Ledger access bound to one chain, its configuration and a signer."""

    def __init__(
        self,
        ledger: LedgerClient,
        config: ChainConfig,
        *,
        signer: Optional[TypedDataSigner] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ledger = ledger
        self.config = config
        self.signer = signer
        self.clock = clock
        self._verifying_contract: Optional[str] = None

    @property
    def chain_id(self) -> int:
        return self.config.chain_id

    @property
    def is_enterprise(self) -> bool:
        return self.config.is_enterprise

    @property
    def signer_address(self) -> str:
        if self.signer is None:
            raise PreconditionError("a signer is required for this operation")
        return self.signer.address

    def now(self) -> int:
        return int(self.clock())

    async def call(self, contract: str, method: str, *args: Any, at: Optional[str] = None) -> Any:
        logger.debug("read %s.%s%r at %s", contract, method, args, at or contract)
        try:
            return await self.ledger.read(contract, method, *args, at=at)
        except MarketplaceError:
            raise
        except Exception as exc:
            raise CollaboratorError(f"ledger read {contract}.{method} failed: {exc}", service="ledger") from exc

    async def send(
        self,
        contract: str,
        method: str,
        *args: Any,
        at: Optional[str] = None,
        value: Optional[int] = None,
        expect: Sequence[str] = (),
    ) -> Receipt:
        """Submit a transaction, wait for it and require the ``expect`` events."""

        tx_options: Dict[str, Any] = dict(self.config.tx_options)
        if value is not None:
            tx_options["value"] = value
        logger.debug("send %s.%s%r", contract, method, args)
        try:
            tx_hash = await self.ledger.send_transaction(contract, method, *args, at=at, tx_options=tx_options)
            receipt = await self.ledger.wait_receipt(tx_hash, self.config.confirms)
        except MarketplaceError:
            raise
        except Exception as exc:
            raise CollaboratorError(f"transaction {contract}.{method} failed: {exc}", service="ledger") from exc
        for event in expect:
            if find_event(receipt, event) is None:
                raise ConfirmationError(event, receipt.get("txHash", tx_hash))
        return receipt

    async def verifying_contract(self) -> str:
        if self._verifying_contract is None:
            self._verifying_contract = normalize_address(await self.call("hub", "clerk"), name="clerk")
        return self._verifying_contract

    async def domain(self) -> Dict[str, Any]:
        return eip712_domain(self.chain_id, await self.verifying_contract())

    async def order_hash(self, order: Order) -> str:
        return compute_order_hash(order, await self.domain())

    async def resource_owner(self, kind: OrderKind, address: str) -> str:
        return normalize_address(await self.call(kind.resource, "owner", at=address), name="owner")

    async def is_deployed(self, resource: str, address: str) -> bool:
        registry = await self.call("hub", f"{resource}registry")
        return bool(await self.call("registry", "isRegistered", address, at=registry))

    async def consumed(self, order_hash: str) -> int:
        return int(await self.call("clerk", "viewConsumed", order_hash))

    async def account(self, address: str) -> Dict[str, int]:
        account = await self.call("hub", "viewAccount", address)
        return {"stake": int(account["stake"]), "locked": int(account["locked"])}

    async def is_whitelisted(self, address: str) -> bool:
        return bool(await self.call("token", "isKYC", address))

