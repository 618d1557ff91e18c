"""Voucher balances, sponsored task requests and voucher authorizations.

A voucher pays matches on behalf of its holder. The hub keeps one voucher
balance per account and an allow list of apps, datasets and workerpools the
voucher may be spent on.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

from .codec import normalize_address, normalize_uint256, parse_amount
from .errors import ValidationError
from .ledger import find_event
from .orders.market import deal_from_receipt, match_structs
from .orders.matching import MatchValidator
from .orders.models import AppOrder, DatasetOrder, RequestOrder, WorkerpoolOrder

if TYPE_CHECKING:  # pragma: no cover
    from .ledger import ChainContext

logger = logging.getLogger(__name__)

RESOURCES = ("app", "dataset", "workerpool")


def _resource_method(resource: str) -> str:
    if resource not in RESOURCES:
        raise ValidationError(f"unknown voucher resource {resource!r}, expected one of {', '.join(RESOURCES)}")
    return resource.capitalize()


async def deposit_for(context: "ChainContext", address: str, amount: Any) -> Dict[str, Any]:
    """Credit ``amount`` nRLC of voucher balance to ``address``."""

    beneficiary = normalize_address(address, name="beneficiary")
    vamount = parse_amount(amount)
    if vamount <= 0:
        raise ValidationError("Deposit amount must be greater than 0")
    receipt = await context.send("hub", "depositVoucherFor", beneficiary, vamount, expect=("Deposit",))
    args = find_event(receipt, "Deposit")["args"]  # type: ignore[index]
    logger.info("deposited %s nRLC of voucher for %s", vamount, beneficiary)
    return {
        "beneficiary": normalize_address(args["beneficiary"], name="beneficiary"),
        "transferredAmount": int(args["transferredAmount"]),
        "txHash": receipt["txHash"],
    }


async def show_balance(context: "ChainContext", address: str) -> int:
    return int(await context.call("hub", "voucherBalanceOf", normalize_address(address)))


async def request_task(
    context: "ChainContext",
    app: AppOrder,
    dataset: Optional[DatasetOrder],
    workerpool: WorkerpoolOrder,
    request: RequestOrder,
    *,
    preflight: bool = True,
) -> Dict[str, Any]:
    """Match the orders paid by the requester's voucher.

    The preflight is the regular match preflight except that the requester
    solvency checks read the voucher balance instead of the account stake.
    """

    if preflight:
        validator = MatchValidator(context, requester_balance=lambda address: show_balance(context, address))
        await validator.check_matchable(app, dataset, workerpool, request)
    receipt = await context.send(
        "hub",
        "requestTask",
        *match_structs(app, dataset, workerpool, request),
        expect=("TaskRequested", "OrdersMatched"),
    )
    deal = deal_from_receipt(receipt)
    logger.info("voucher requested deal %s (volume %s)", deal["dealid"], deal["volume"])
    return deal


async def count_authorized(context: "ChainContext", resource: str) -> int:
    method = f"countAuthorized{_resource_method(resource)}s"
    return int(await context.call("hub", method))


async def view_authorized(context: "ChainContext", resource: str, index: Any) -> str:
    method = f"viewAuthorized{_resource_method(resource)}"
    vindex = normalize_uint256(index, name="index")
    return normalize_address(await context.call("hub", method, vindex), name=resource)


async def authorize(context: "ChainContext", resource: str, address: str) -> str:
    method = f"authorize{_resource_method(resource)}"
    receipt = await context.send("hub", method, normalize_address(address, name=resource))
    logger.info("authorized %s %s for vouchers", resource, address)
    return receipt["txHash"]


async def unauthorize(context: "ChainContext", resource: str, address: str) -> str:
    method = f"unAuthorize{_resource_method(resource)}"
    receipt = await context.send("hub", method, normalize_address(address, name=resource))
    logger.info("unauthorized %s %s for vouchers", resource, address)
    return receipt["txHash"]
