"""Shared fixtures for the marketplace client suites.

``FakeLedger`` answers reads from a table of canned values or callables,
records every transaction and replays configured events in receipts.
``Marketplace`` wires a ledger, a manual clock and a local signer into a
:class:`ChainContext` with deployed resources, owners and stakes already in
place so each test only overrides what it exercises.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import pytest
from eth_account import Account
from eth_account.messages import encode_typed_data

from marketplace.config import ChainConfig
from marketplace.constants import NULL_BYTES32
from marketplace.ledger import ChainContext
from marketplace.orders.models import (
    AppOrder,
    DatasetOrder,
    Order,
    RequestOrder,
    WorkerpoolOrder,
    create_apporder,
    create_datasetorder,
    create_requestorder,
    create_workerpoolorder,
)
from marketplace.orders.typed_data import build_typed_data, eip712_domain
from marketplace.signers import LocalAccountSigner

HUB = "0x3eca1B216A7DF1C7689aEb259fFB83ADFB894E7f"
CLERK = "0x" + "c1" * 20
TOKEN = "0x" + "70" * 20
APP = "0x" + "a1" * 20
DATASET = "0x" + "d1" * 20
WORKERPOOL = "0x" + "b1" * 20
REGISTRIES = {
    "app": "0x" + "e1" * 20,
    "dataset": "0x" + "e2" * 20,
    "workerpool": "0x" + "e3" * 20,
}

REQUESTER_KEY = "0x" + "11" * 32
APP_OWNER_KEY = "0x" + "22" * 32
DATASET_OWNER_KEY = "0x" + "33" * 32
WORKERPOOL_OWNER_KEY = "0x" + "44" * 32

REQUESTER = Account.from_key(REQUESTER_KEY).address
APP_OWNER = Account.from_key(APP_OWNER_KEY).address
DATASET_OWNER = Account.from_key(DATASET_OWNER_KEY).address
WORKERPOOL_OWNER = Account.from_key(WORKERPOOL_OWNER_KEY).address

FIXED_SALT = "0x" + "5a" * 32


@dataclass
class SentTx:
    contract: str
    method: str
    args: Tuple[Any, ...]
    at: Optional[str]
    tx_options: Dict[str, Any] = field(default_factory=dict)


def _key(contract: str, method: str, at: Optional[str]) -> Tuple[str, str, Optional[str]]:
    return (contract, method, at.lower() if at else None)


class FakeLedger:
    """In-memory ledger collaborator."""

    def __init__(self) -> None:
        self.responses: Dict[Tuple[str, str, Optional[str]], Any] = {}
        self.events: Dict[Tuple[str, str], List[Dict[str, Any]]] = {}
        self.sent: List[SentTx] = []
        self.reads: List[Tuple[str, str, Tuple[Any, ...], Optional[str]]] = []
        self.fail_reads: Dict[Tuple[str, str], Exception] = {}
        self._pending: Dict[str, Tuple[str, str]] = {}

    def set(self, contract: str, method: str, value: Any, *, at: Optional[str] = None) -> None:
        """Answer ``contract.method`` with ``value``; callables receive the call args."""

        self.responses[_key(contract, method, at)] = value

    def script(self, contract: str, method: str, values: Iterable[Any]) -> None:
        """Answer successive calls with ``values``, repeating the last one."""

        queue = list(values)

        def _next(*_args: Any) -> Any:
            return queue.pop(0) if len(queue) > 1 else queue[0]

        self.set(contract, method, _next)

    def emit(self, contract: str, method: str, *events: Dict[str, Any]) -> None:
        self.events[(contract, method)] = list(events)

    def reads_of(self, contract: str, method: str) -> int:
        return sum(1 for read in self.reads if read[0] == contract and read[1] == method)

    async def read(self, contract: str, method: str, *args: Any, at: Optional[str] = None) -> Any:
        self.reads.append((contract, method, args, at))
        await asyncio.sleep(0)
        if (contract, method) in self.fail_reads:
            raise self.fail_reads[(contract, method)]
        for key in (_key(contract, method, at), _key(contract, method, None)):
            if key in self.responses:
                value = self.responses[key]
                return value(*args) if callable(value) else value
        raise LookupError(f"no canned answer for {contract}.{method} at {at}")

    async def send_transaction(
        self,
        contract: str,
        method: str,
        *args: Any,
        at: Optional[str] = None,
        tx_options: Optional[Dict[str, Any]] = None,
    ) -> str:
        tx_hash = "0x%064x" % (len(self.sent) + 1)
        self.sent.append(SentTx(contract, method, args, at, dict(tx_options or {})))
        self._pending[tx_hash] = (contract, method)
        await asyncio.sleep(0)
        return tx_hash

    async def wait_receipt(self, tx_hash: str, confirmations: int = 1) -> Dict[str, Any]:
        return {"txHash": tx_hash, "events": list(self.events.get(self._pending[tx_hash], []))}


class ManualClock:
    def __init__(self, now: float = 1_700_000_000) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def sign_with(order: Order, private_key: str, domain: Dict[str, Any], salt: str = FIXED_SALT) -> Any:
    salted = order.model_copy(update={"salt": salt, "sign": None})
    typed = build_typed_data(salted, domain)
    signed = Account.sign_message(encode_typed_data(full_message=typed), private_key=private_key)
    return salted.model_copy(update={"sign": "0x" + bytes(signed.signature).hex()})


class Marketplace:
    """A consistent ledger state around one app, dataset and workerpool."""

    HUB = HUB
    CLERK = CLERK
    TOKEN = TOKEN
    APP = APP
    DATASET = DATASET
    WORKERPOOL = WORKERPOOL
    REQUESTER = REQUESTER
    APP_OWNER = APP_OWNER
    DATASET_OWNER = DATASET_OWNER
    WORKERPOOL_OWNER = WORKERPOOL_OWNER
    REQUESTER_KEY = REQUESTER_KEY
    APP_OWNER_KEY = APP_OWNER_KEY
    DATASET_OWNER_KEY = DATASET_OWNER_KEY
    WORKERPOOL_OWNER_KEY = WORKERPOOL_OWNER_KEY

    def __init__(self, config: ChainConfig, *, with_signer: bool = True) -> None:
        self.ledger = FakeLedger()
        self.clock = ManualClock()
        self.config = config
        self.signer = LocalAccountSigner.from_key(REQUESTER_KEY) if with_signer else None
        self.context = ChainContext(self.ledger, config, signer=self.signer, clock=self.clock)
        self.domain = eip712_domain(config.chain_id, CLERK)
        self.deployed = {APP.lower(), DATASET.lower(), WORKERPOOL.lower()}
        self.consumed: Dict[str, int] = {}
        self.stakes: Dict[str, int] = {REQUESTER.lower(): 100, WORKERPOOL_OWNER.lower(): 100}
        self.kyc = {REQUESTER.lower(), APP_OWNER.lower(), DATASET_OWNER.lower(), WORKERPOOL_OWNER.lower()}

        ledger = self.ledger
        ledger.set("hub", "clerk", CLERK)
        ledger.set("hub", "token", TOKEN)
        for resource, registry in REGISTRIES.items():
            ledger.set("hub", f"{resource}registry", registry)
        ledger.set("registry", "isRegistered", lambda address: address.lower() in self.deployed)
        ledger.set("app", "owner", APP_OWNER, at=APP)
        ledger.set("dataset", "owner", DATASET_OWNER, at=DATASET)
        ledger.set("workerpool", "owner", WORKERPOOL_OWNER, at=WORKERPOOL)
        ledger.set("app", "m_appMREnclave", "0x", at=APP)
        ledger.set("clerk", "viewConsumed", lambda order_hash: self.consumed.get(order_hash, 0))
        ledger.set(
            "hub",
            "viewAccount",
            lambda address: {"stake": self.stakes.get(address.lower(), 0), "locked": 0},
        )
        ledger.set("hub", "workerpool_stake_ratio", 30)
        ledger.set("hub", "final_deadline_ratio", 10)
        ledger.set("hub", "countCategory", 5)
        ledger.set("hub", "viewCategory", lambda index: {"name": "S", "description": "small", "workClockTimeRef": 300})
        ledger.set("token", "isKYC", lambda address: address.lower() in self.kyc)

    def sign(self, order: Order, private_key: str) -> Any:
        return sign_with(order, private_key, self.domain)

    def app_order(self, **overrides: Any) -> AppOrder:
        fields = {"app": APP, "appprice": 1, "volume": 10, **overrides}
        return create_apporder(**fields)

    def dataset_order(self, **overrides: Any) -> DatasetOrder:
        fields = {"dataset": DATASET, "datasetprice": 2, "volume": 10, **overrides}
        return create_datasetorder(**fields)

    def workerpool_order(self, **overrides: Any) -> WorkerpoolOrder:
        fields = {"workerpool": WORKERPOOL, "workerpoolprice": 3, "volume": 5, "category": 0, **overrides}
        return create_workerpoolorder(**fields)

    def request_order(self, **overrides: Any) -> RequestOrder:
        fields = {
            "app": APP,
            "appmaxprice": 1,
            "dataset": DATASET,
            "datasetmaxprice": 2,
            "workerpool": WORKERPOOL,
            "workerpoolmaxprice": 3,
            "requester": REQUESTER,
            "volume": 3,
            "category": 0,
            **overrides,
        }
        return create_requestorder(**fields)

    def signed_orders(
        self,
        *,
        app: Optional[Dict[str, Any]] = None,
        dataset: Optional[Dict[str, Any]] = None,
        workerpool: Optional[Dict[str, Any]] = None,
        request: Optional[Dict[str, Any]] = None,
    ) -> Tuple[AppOrder, DatasetOrder, WorkerpoolOrder, RequestOrder]:
        return (
            self.sign(self.app_order(**(app or {})), APP_OWNER_KEY),
            self.sign(self.dataset_order(**(dataset or {})), DATASET_OWNER_KEY),
            self.sign(self.workerpool_order(**(workerpool or {})), WORKERPOOL_OWNER_KEY),
            self.sign(self.request_order(**(request or {})), REQUESTER_KEY),
        )

    def deal(self, **overrides: Any) -> Dict[str, Any]:
        deal = {
            "app": {"pointer": APP, "owner": APP_OWNER, "price": 1},
            "dataset": {"pointer": DATASET, "owner": DATASET_OWNER, "price": 2},
            "workerpool": {"pointer": WORKERPOOL, "owner": WORKERPOOL_OWNER, "price": 3},
            "trust": 0,
            "category": 0,
            "tag": NULL_BYTES32,
            "requester": REQUESTER,
            "beneficiary": REQUESTER,
            "callback": "0x" + "00" * 20,
            "params": "",
            "startTime": int(self.clock.now),
            "botFirst": 0,
            "botSize": 1,
            "workerStake": 0,
            "schedulerRewardRatio": 1,
        }
        deal.update(overrides)
        return deal

    def task(self, dealid: str, status: int, **overrides: Any) -> Dict[str, Any]:
        task = {
            "status": status,
            "dealid": dealid,
            "idx": 0,
            "timeref": 300,
            "contributionDeadline": 0,
            "revealDeadline": 0,
            "finalDeadline": int(self.clock.now) + 3000,
            "consensusValue": NULL_BYTES32,
            "revealCounter": 0,
            "winnerCounter": 0,
            "contributors": [],
            "resultDigest": NULL_BYTES32,
            "results": "0x",
        }
        task.update(overrides)
        return task


@pytest.fixture
def chain_config() -> ChainConfig:
    return ChainConfig(
        name="test",
        chain_id=134,
        hub_address=HUB,
        gateway_url="https://gateway.test",
        sms_url="https://sms.test",
        ipfs_gateway_url="https://ipfs.test",
        is_native=True,
        poll_interval_seconds=1.0,
    )


@pytest.fixture
def enterprise_config(chain_config: ChainConfig) -> ChainConfig:
    return ChainConfig(name="enterprise", chain_id=133, hub_address=HUB, flavour="enterprise")


@pytest.fixture
def market(chain_config: ChainConfig) -> Marketplace:
    return Marketplace(chain_config)


@pytest.fixture
def enterprise_market(enterprise_config: ChainConfig) -> Marketplace:
    return Marketplace(enterprise_config)


@pytest.fixture
def no_sleep() -> Callable[[float], Any]:
    async def _sleep(_seconds: float) -> None:
        await asyncio.sleep(0)

    return _sleep
