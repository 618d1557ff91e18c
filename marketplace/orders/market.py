"""Order book and match operations."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

from ..codec import normalize_bytes32
from ..errors import CollaboratorError, ObjectNotFoundError, ValidationError
from .matching import check_matchable
from .models import AppOrder, DatasetOrder, Order, OrderKind, RequestOrder, WorkerpoolOrder, parse_order
from .typed_data import null_dataset_struct, signed_order_to_struct

if TYPE_CHECKING:  # pragma: no cover
    from ..gateway import GatewayClient
    from ..ledger import ChainContext, Receipt

logger = logging.getLogger(__name__)


def match_structs(
    app: AppOrder,
    dataset: Optional[DatasetOrder],
    workerpool: WorkerpoolOrder,
    request: RequestOrder,
) -> List[List[Any]]:
    return [
        signed_order_to_struct(app),
        signed_order_to_struct(dataset) if dataset is not None else null_dataset_struct(),
        signed_order_to_struct(workerpool),
        signed_order_to_struct(request),
    ]


def deal_from_receipt(receipt: "Receipt") -> Dict[str, Any]:
    for event in receipt["events"]:
        if event["event"] == "OrdersMatched":
            args = event["args"]
            return {"dealid": args["dealid"], "volume": int(args["volume"]), "txHash": receipt["txHash"]}
    raise ValidationError("receipt carries no OrdersMatched event")


async def match_orders(
    context: "ChainContext",
    app: AppOrder,
    dataset: Optional[DatasetOrder],
    workerpool: WorkerpoolOrder,
    request: RequestOrder,
    *,
    preflight: bool = True,
) -> Dict[str, Any]:
    """Submit ``matchOrders`` and return ``{dealid, volume, txHash}``."""

    if preflight:
        await check_matchable(context, app, dataset, workerpool, request)
    receipt = await context.send(
        "clerk",
        "matchOrders",
        *match_structs(app, dataset, workerpool, request),
        expect=("OrdersMatched",),
    )
    deal = deal_from_receipt(receipt)
    logger.info("matched orders into deal %s (volume %s)", deal["dealid"], deal["volume"])
    return deal


async def publish_order(context: "ChainContext", gateway: "GatewayClient", order: Order) -> str:
    if not order.is_signed:
        raise ValidationError(f"{order.kind.value} must be signed before publication")
    return await gateway.publish(order.kind.spec.api_endpoint, order.to_dict(), context.signer_address)


async def unpublish_order(
    context: "ChainContext",
    gateway: "GatewayClient",
    kind: Union[str, OrderKind],
    order_hash: str,
) -> str:
    order_kind = OrderKind.parse(kind)
    return await gateway.unpublish(
        order_kind.spec.api_endpoint,
        normalize_bytes32(order_hash, name="orderHash"),
        context.signer_address,
    )


async def fetch_published_order_by_hash(
    gateway: "GatewayClient",
    kind: Union[str, OrderKind],
    order_hash: str,
) -> Optional[Dict[str, Any]]:
    """Latest published entry for ``order_hash`` (``None`` when unknown)."""

    order_kind = OrderKind.parse(kind)
    data = await gateway.find_one(order_kind.spec.api_endpoint, {"orderHash": normalize_bytes32(order_hash)})
    orders = data.get("orders")
    if not isinstance(orders, list):
        raise CollaboratorError("An error occurred while getting order", service="gateway")
    return orders[0] if orders else None


async def fetch_order(gateway: "GatewayClient", kind: Union[str, OrderKind], order_hash: str) -> Order:
    """Published order for ``order_hash`` as a model; not found is an error."""

    order_kind = OrderKind.parse(kind)
    entry = await fetch_published_order_by_hash(gateway, order_kind, order_hash)
    if entry is None or "order" not in entry:
        raise ObjectNotFoundError(order_kind.value, order_hash)
    return parse_order(order_kind, entry["order"])


async def fetch_deals_by_order_hash(
    gateway: "GatewayClient",
    kind: Union[str, OrderKind],
    order_hash: str,
) -> Dict[str, Any]:
    order_kind = OrderKind.parse(kind)
    data = await gateway.find_one("deals", {order_kind.spec.deal_field: normalize_bytes32(order_hash)})
    deals = data.get("deals")
    if not isinstance(deals, list):
        raise CollaboratorError("An error occurred while getting deals", service="gateway")
    return {"count": int(data.get("count", len(deals))), "deals": deals}
