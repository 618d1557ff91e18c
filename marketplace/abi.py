"""Minimal contract ABIs used by the web3 ledger client."""

from __future__ import annotations

from typing import Any, Dict, List, Sequence, Tuple

from .orders.models import OrderKind

Param = Tuple[str, str]


def _param(name: str, type_: str, components: Sequence[Dict[str, Any]] | None = None) -> Dict[str, Any]:
    entry: Dict[str, Any] = {"internalType": type_, "name": name, "type": type_}
    if components is not None:
        entry["components"] = list(components)
    return entry


def _fn(
    name: str,
    inputs: Sequence[Dict[str, Any]] = (),
    outputs: Sequence[Dict[str, Any]] = (),
    mutability: str = "view",
) -> Dict[str, Any]:
    return {
        "inputs": list(inputs),
        "name": name,
        "outputs": list(outputs),
        "stateMutability": mutability,
        "type": "function",
    }


def _event(name: str, params: Sequence[Param], indexed: Sequence[str] = ()) -> Dict[str, Any]:
    return {
        "anonymous": False,
        "inputs": [
            {**_param(param_name, type_), "indexed": param_name in indexed}
            for param_name, type_ in params
        ],
        "name": name,
        "type": "event",
    }


def order_struct(kind: OrderKind, name: str) -> Dict[str, Any]:
    members = [_param(member, type_) for member, type_ in kind.spec.members]
    members.append(_param("sign", "bytes"))
    return _param(name, "tuple", members)


def _order_args() -> List[Dict[str, Any]]:
    return [
        order_struct(OrderKind.APP, "_apporder"),
        order_struct(OrderKind.DATASET, "_datasetorder"),
        order_struct(OrderKind.WORKERPOOL, "_workerpoolorder"),
        order_struct(OrderKind.REQUEST, "_requestorder"),
    ]


_RESOURCE = [
    _param("pointer", "address"),
    _param("owner", "address"),
    _param("price", "uint256"),
]

DEAL_STRUCT = _param(
    "deal",
    "tuple",
    [
        _param("app", "tuple", _RESOURCE),
        _param("dataset", "tuple", _RESOURCE),
        _param("workerpool", "tuple", _RESOURCE),
        _param("trust", "uint256"),
        _param("category", "uint256"),
        _param("tag", "bytes32"),
        _param("requester", "address"),
        _param("beneficiary", "address"),
        _param("callback", "address"),
        _param("params", "string"),
        _param("startTime", "uint256"),
        _param("botFirst", "uint256"),
        _param("botSize", "uint256"),
        _param("workerStake", "uint256"),
        _param("schedulerRewardRatio", "uint256"),
    ],
)

TASK_STRUCT = _param(
    "task",
    "tuple",
    [
        _param("status", "uint8"),
        _param("dealid", "bytes32"),
        _param("idx", "uint256"),
        _param("timeref", "uint256"),
        _param("contributionDeadline", "uint256"),
        _param("revealDeadline", "uint256"),
        _param("finalDeadline", "uint256"),
        _param("consensusValue", "bytes32"),
        _param("revealCounter", "uint256"),
        _param("winnerCounter", "uint256"),
        _param("contributors", "address[]"),
        _param("resultDigest", "bytes32"),
        _param("results", "bytes"),
    ],
)

_ORDERS_MATCHED = _event(
    "OrdersMatched",
    [
        ("dealid", "bytes32"),
        ("appHash", "bytes32"),
        ("datasetHash", "bytes32"),
        ("workerpoolHash", "bytes32"),
        ("requestHash", "bytes32"),
        ("volume", "uint256"),
    ],
)

HUB_ABI: List[Dict[str, Any]] = [
    _fn("clerk", outputs=[_param("", "address")]),
    _fn("token", outputs=[_param("", "address")]),
    _fn("appregistry", outputs=[_param("", "address")]),
    _fn("datasetregistry", outputs=[_param("", "address")]),
    _fn("workerpoolregistry", outputs=[_param("", "address")]),
    _fn(
        "viewAccount",
        [_param("account", "address")],
        [_param("account", "tuple", [_param("stake", "uint256"), _param("locked", "uint256")])],
    ),
    _fn("viewDeal", [_param("_id", "bytes32")], [DEAL_STRUCT]),
    _fn("viewTask", [_param("_taskid", "bytes32")], [TASK_STRUCT]),
    _fn(
        "viewCategory",
        [_param("_catid", "uint256")],
        [
            _param(
                "category",
                "tuple",
                [
                    _param("name", "string"),
                    _param("description", "string"),
                    _param("workClockTimeRef", "uint256"),
                ],
            )
        ],
    ),
    _fn("countCategory", outputs=[_param("", "uint256")]),
    _fn("final_deadline_ratio", outputs=[_param("", "uint256")]),
    _fn("workerpool_stake_ratio", outputs=[_param("", "uint256")]),
    _fn("claim", [_param("_taskid", "bytes32")], mutability="nonpayable"),
    _fn("extend", [_param("_taskid", "bytes32"), _param("_duration", "uint256")], mutability="nonpayable"),
    _fn("interrupt", [_param("_taskid", "bytes32")], mutability="nonpayable"),
    _fn("deposit", outputs=[_param("", "bool")], mutability="payable"),
    _fn("withdraw", [_param("amount", "uint256")], [_param("", "bool")], mutability="nonpayable"),
    _fn("voucherBalanceOf", [_param("account", "address")], [_param("", "uint256")]),
    _fn(
        "depositVoucherFor",
        [_param("beneficiary", "address"), _param("amount", "uint256")],
        [_param("", "bool")],
        mutability="nonpayable",
    ),
    _fn("requestTask", _order_args(), [_param("", "bytes32")], mutability="nonpayable"),
]

for _resource in ("App", "Dataset", "Workerpool"):
    HUB_ABI.extend(
        [
            _fn(f"countAuthorized{_resource}s", outputs=[_param("", "uint256")]),
            _fn(f"viewAuthorized{_resource}", [_param("index", "uint256")], [_param("", "address")]),
            _fn(f"authorize{_resource}", [_param("resource", "address")], mutability="nonpayable"),
            _fn(f"unAuthorize{_resource}", [_param("resource", "address")], mutability="nonpayable"),
        ]
    )

HUB_ABI.extend(
    [
        _event("TaskClaimed", [("taskid", "bytes32")], indexed=("taskid",)),
        _event("TaskExtended", [("taskid", "bytes32"), ("duration", "uint256")], indexed=("taskid",)),
        _event("TaskInterrupt", [("taskid", "bytes32")], indexed=("taskid",)),
        _event("TaskRequested", [("dealid", "bytes32"), ("requester", "address")], indexed=("dealid",)),
        _event("Transfer", [("from", "address"), ("to", "address"), ("value", "uint256")], indexed=("from", "to")),
        _event("Deposit", [("beneficiary", "address"), ("transferredAmount", "uint256")], indexed=("beneficiary",)),
        _ORDERS_MATCHED,
    ]
)

CLERK_ABI: List[Dict[str, Any]] = [
    _fn("viewConsumed", [_param("_id", "bytes32")], [_param("", "uint256")]),
    _fn("matchOrders", _order_args(), [_param("", "bytes32")], mutability="nonpayable"),
    _ORDERS_MATCHED,
]
for _kind in OrderKind:
    CLERK_ABI.append(
        _fn(_kind.spec.cancel_method, [order_struct(_kind, f"_{_kind.value}")], [_param("", "bool")], mutability="nonpayable")
    )
    CLERK_ABI.append(_event(_kind.spec.cancel_event, [(f"{_kind.resource}Hash", "bytes32")]))

REGISTRY_ABI: List[Dict[str, Any]] = [
    _fn("isRegistered", [_param("_entry", "address")], [_param("", "bool")]),
]

_OWNABLE = [_fn("owner", outputs=[_param("", "address")])]

APP_ABI: List[Dict[str, Any]] = _OWNABLE + [_fn("m_appMREnclave", outputs=[_param("", "bytes")])]
DATASET_ABI: List[Dict[str, Any]] = list(_OWNABLE)
WORKERPOOL_ABI: List[Dict[str, Any]] = list(_OWNABLE)

TOKEN_ABI: List[Dict[str, Any]] = [
    _fn("isKYC", [_param("account", "address")], [_param("", "bool")]),
    _fn(
        "approveAndCall",
        [_param("spender", "address"), _param("value", "uint256"), _param("extraData", "bytes")],
        [_param("", "bool")],
        mutability="nonpayable",
    ),
    _event("Approval", [("owner", "address"), ("spender", "address"), ("value", "uint256")], indexed=("owner", "spender")),
    _event("Transfer", [("from", "address"), ("to", "address"), ("value", "uint256")], indexed=("from", "to")),
]

ABIS: Dict[str, List[Dict[str, Any]]] = {
    "hub": HUB_ABI,
    "clerk": CLERK_ABI,
    "registry": REGISTRY_ABI,
    "app": APP_ABI,
    "dataset": DATASET_ABI,
    "workerpool": WORKERPOOL_ABI,
    "token": TOKEN_ABI,
}

# contracts whose events are decoded from transaction receipts
EVENT_SOURCES: Tuple[str, ...] = ("hub", "clerk", "token")
