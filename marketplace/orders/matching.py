"""Client-side match preflight.

:class:`MatchValidator` reproduces the clerk's ``matchOrders`` revert
conditions against live ledger state so a doomed match never reaches the
chain. Checks run in a fixed order and the first failing one raises its own
:class:`~marketplace.errors.PreconditionError` subclass:

1. resources are deployed
2. signatures recover to the expected signers
3. the request points at the peer orders and every restriction holds
4. categories are equal
5. the workerpool trust covers the requested trust
6. the workerpool tag covers the app, dataset and request tags
7. prices are within the request max prices
8. no order is fully consumed; the matchable volume is their minimum
9. the requester can pay for one task and for the whole volume
10. the workerpool owner can lock its stake
11. enterprise chains only: every party is whitelisted
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional, Tuple

from ..codec import has_tee, is_null_address, missing_tag_names, same_address, tag_to_int
from ..constants import NULL_ADDRESS, TEE_TAG
from ..errors import (
    AddressMismatch,
    CategoryMismatch,
    InsufficientStakeError,
    InvalidSignature,
    MissingTags,
    NotAuthorized,
    OrderFullyConsumed,
    PriceTooHigh,
    ResourceNotDeployed,
    RestrictionViolation,
    TrustTooLow,
)
from .models import AppOrder, DatasetOrder, Order, OrderKind, RequestOrder, WorkerpoolOrder
from .signing import expected_signer, get_remaining_volume
from .typed_data import recover_order_signer

if TYPE_CHECKING:  # pragma: no cover
    from ..ledger import ChainContext

logger = logging.getLogger(__name__)

BalanceSource = Callable[[str], Awaitable[int]]


class MatchValidator:
    """Runs the ordered match preflight against one chain."""

    def __init__(self, context: "ChainContext", *, requester_balance: Optional[BalanceSource] = None) -> None:
        self._context = context
        self._requester_balance = requester_balance

    async def check_matchable(
        self,
        app: AppOrder,
        dataset: Optional[DatasetOrder],
        workerpool: WorkerpoolOrder,
        request: RequestOrder,
    ) -> int:
        """Return the volume a match of these orders would produce."""

        orders: List[Order] = [order for order in (app, dataset, workerpool, request) if order is not None]
        owners: Dict[OrderKind, str] = {}

        await self._check_deployed(app, dataset, workerpool)
        await self._check_signatures(orders, owners)
        self._check_addresses(app, dataset, workerpool, request)
        self._check_restrictions(app, dataset, workerpool, request)
        if request.category != workerpool.category:
            raise CategoryMismatch(request.category, workerpool.category)
        if workerpool.trust < request.trust:
            raise TrustTooLow(request.trust, workerpool.trust)
        self._check_tags(app, dataset, workerpool, request)
        self._check_prices(app, dataset, workerpool, request)
        volume = await self._matchable_volume(orders)
        await self._check_requester_stake(app, dataset, workerpool, request, volume)
        await self._check_workerpool_stake(workerpool, owners, volume)
        if self._context.is_enterprise:
            await self._check_whitelist(request, owners)
        logger.debug("orders are matchable for a volume of %s", volume)
        return volume

    async def _check_deployed(
        self,
        app: AppOrder,
        dataset: Optional[DatasetOrder],
        workerpool: WorkerpoolOrder,
    ) -> None:
        resources: List[Tuple[str, str]] = [("app", app.app)]
        if dataset is not None:
            resources.append(("dataset", dataset.dataset))
        resources.append(("workerpool", workerpool.workerpool))
        for kind, address in resources:
            if not await self._context.is_deployed(kind, address):
                raise ResourceNotDeployed(kind, address)

    async def _check_signatures(self, orders: List[Order], owners: Dict[OrderKind, str]) -> None:
        domain = await self._context.domain()
        for order in orders:
            kind = order.kind
            expected = await expected_signer(self._context, order)
            if kind is not OrderKind.REQUEST:
                owners[kind] = expected
            if not order.is_signed:
                raise InvalidSignature(kind.value)
            recovered = recover_order_signer(order, domain)
            if recovered is None or not same_address(recovered, expected):
                raise InvalidSignature(kind.value, expected, recovered or "nothing")

    @staticmethod
    def _check_addresses(
        app: AppOrder,
        dataset: Optional[DatasetOrder],
        workerpool: WorkerpoolOrder,
        request: RequestOrder,
    ) -> None:
        if not same_address(request.app, app.app):
            raise AddressMismatch("app", request.app, app.app)
        dataset_address = dataset.dataset if dataset is not None else NULL_ADDRESS
        if not same_address(request.dataset, dataset_address):
            raise AddressMismatch("dataset", request.dataset, dataset_address)
        if not is_null_address(request.workerpool) and not same_address(request.workerpool, workerpool.workerpool):
            raise AddressMismatch("workerpool", request.workerpool, workerpool.workerpool)

    @staticmethod
    def _check_restrictions(
        app: AppOrder,
        dataset: Optional[DatasetOrder],
        workerpool: WorkerpoolOrder,
        request: RequestOrder,
    ) -> None:
        dataset_address = dataset.dataset if dataset is not None else NULL_ADDRESS
        rules: List[Tuple[Order, str, str]] = [
            (app, "datasetrestrict", dataset_address),
            (app, "workerpoolrestrict", workerpool.workerpool),
            (app, "requesterrestrict", request.requester),
        ]
        if dataset is not None:
            rules += [
                (dataset, "apprestrict", app.app),
                (dataset, "workerpoolrestrict", workerpool.workerpool),
                (dataset, "requesterrestrict", request.requester),
            ]
        rules += [
            (workerpool, "apprestrict", app.app),
            (workerpool, "datasetrestrict", dataset_address),
            (workerpool, "requesterrestrict", request.requester),
        ]
        for order, field, actual in rules:
            restriction = getattr(order, field)
            if not is_null_address(restriction) and not same_address(restriction, actual):
                raise RestrictionViolation(order.kind.value, field, restriction, actual)

    @staticmethod
    def _check_tags(
        app: AppOrder,
        dataset: Optional[DatasetOrder],
        workerpool: WorkerpoolOrder,
        request: RequestOrder,
    ) -> None:
        required = tag_to_int(app.tag) | tag_to_int(request.tag)
        if dataset is not None:
            required |= tag_to_int(dataset.tag)
        missing = missing_tag_names(required, workerpool.tag)
        if missing:
            raise MissingTags(OrderKind.WORKERPOOL.value, missing)
        if has_tee(request.tag) and not has_tee(app.tag):
            raise MissingTags(OrderKind.APP.value, [TEE_TAG])

    @staticmethod
    def _check_prices(
        app: AppOrder,
        dataset: Optional[DatasetOrder],
        workerpool: WorkerpoolOrder,
        request: RequestOrder,
    ) -> None:
        if app.appprice > request.appmaxprice:
            raise PriceTooHigh("app", request.appmaxprice, app.appprice)
        if dataset is not None and dataset.datasetprice > request.datasetmaxprice:
            raise PriceTooHigh("dataset", request.datasetmaxprice, dataset.datasetprice)
        if workerpool.workerpoolprice > request.workerpoolmaxprice:
            raise PriceTooHigh("workerpool", request.workerpoolmaxprice, workerpool.workerpoolprice)

    async def _matchable_volume(self, orders: List[Order]) -> int:
        volumes: List[int] = []
        for order in orders:
            remaining = await get_remaining_volume(self._context, order)
            if remaining <= 0:
                raise OrderFullyConsumed(order.kind.value, await self._context.order_hash(order))
            volumes.append(remaining)
        return min(volumes)

    async def _requester_stake(self, requester: str) -> int:
        if self._requester_balance is not None:
            return int(await self._requester_balance(requester))
        return (await self._context.account(requester))["stake"]

    async def _check_requester_stake(
        self,
        app: AppOrder,
        dataset: Optional[DatasetOrder],
        workerpool: WorkerpoolOrder,
        request: RequestOrder,
        volume: int,
    ) -> None:
        cost_per_task = app.appprice + (dataset.datasetprice if dataset is not None else 0) + workerpool.workerpoolprice
        total_cost = cost_per_task * volume
        stake = await self._requester_stake(request.requester)
        if stake < cost_per_task:
            raise InsufficientStakeError(
                f"Cost per task ({cost_per_task}) is greater than requester account stake ({stake}). "
                "Orders can't be matched. If you are the requester, you should deposit to top up your account",
                role="requester",
                required=cost_per_task,
                available=stake,
            )
        if stake < total_cost:
            raise InsufficientStakeError(
                f"Total cost for {volume} tasks ({total_cost}) is greater than requester account stake ({stake}). "
                "Orders can't be matched. If you are the requester, you should deposit to top up your account "
                "or reduce your requestorder volume",
                role="requester",
                required=total_cost,
                available=stake,
            )

    async def _check_workerpool_stake(
        self,
        workerpool: WorkerpoolOrder,
        owners: Dict[OrderKind, str],
        volume: int,
    ) -> None:
        ratio = int(await self._context.call("hub", "workerpool_stake_ratio"))
        required = workerpool.workerpoolprice * ratio // 100 * volume
        owner = owners[OrderKind.WORKERPOOL]
        stake = (await self._context.account(owner))["stake"]
        if stake < required:
            raise InsufficientStakeError(
                f"Workerpool required stake for {volume} tasks ({required}) is greater than workerpool owner "
                f"account stake ({stake}). Orders can't be matched. If you are the workerpool owner, "
                "you should deposit to top up your account",
                role="workerpool owner",
                required=required,
                available=stake,
            )

    async def _check_whitelist(self, request: RequestOrder, owners: Dict[OrderKind, str]) -> None:
        parties: List[Tuple[str, Any]] = [("requester", request.requester)]
        for kind in (OrderKind.APP, OrderKind.DATASET, OrderKind.WORKERPOOL):
            if kind in owners:
                parties.append((f"{kind.resource} owner", owners[kind]))
        for role, address in parties:
            if not await self._context.is_whitelisted(address):
                raise NotAuthorized(role, address)


async def check_matchable(
    context: "ChainContext",
    app: AppOrder,
    dataset: Optional[DatasetOrder],
    workerpool: WorkerpoolOrder,
    request: RequestOrder,
    *,
    requester_balance: Optional[BalanceSource] = None,
) -> int:
    validator = MatchValidator(context, requester_balance=requester_balance)
    return await validator.check_matchable(app, dataset, workerpool, request)
