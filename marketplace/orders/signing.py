"""Order signing, cancellation and remaining volume."""

from __future__ import annotations

import logging
import secrets
from typing import TYPE_CHECKING, Optional, TypeVar

from ..codec import normalize_address, same_address
from ..errors import AlreadyCanceled, ConfirmationError, InvalidSigner, ValidationError
from .models import Order, OrderKind, RequestOrder
from .requirements import SecretsChecker, check_order_requirements
from .typed_data import build_typed_data, compute_order_hash, signed_order_to_struct

if TYPE_CHECKING:  # pragma: no cover
    from ..ledger import ChainContext

logger = logging.getLogger(__name__)

O = TypeVar("O", bound=Order)


def new_salt() -> str:
    return "0x" + secrets.token_bytes(32).hex()


async def expected_signer(context: "ChainContext", order: Order) -> str:
    """Requester for request orders, on-chain resource owner otherwise."""

    if isinstance(order, RequestOrder):
        return order.requester
    kind = order.kind
    return await context.resource_owner(kind, getattr(order, kind.spec.resource_field))


async def sign_order(
    context: "ChainContext",
    order: O,
    *,
    signer_address: Optional[str] = None,
    check_requirements: bool = True,
    secrets_checker: Optional[SecretsChecker] = None,
) -> O:
    """Return a copy of ``order`` carrying a fresh salt and its signature.

    The advisory requirement check runs first unless ``check_requirements``
    is false; see :func:`marketplace.orders.requirements.check_order_requirements`.
    """

    address = normalize_address(signer_address or context.signer_address, name="signer")
    expected = await expected_signer(context, order)
    if not same_address(expected, address):
        raise InvalidSigner(order.kind.value, expected, address)

    if check_requirements:
        await check_order_requirements(context, order, secrets_checker=secrets_checker)

    if context.signer is None:
        raise ValidationError("a signer is required to sign orders")
    domain = await context.domain()
    salted = order.model_copy(update={"salt": new_salt(), "sign": None})
    typed = build_typed_data(salted, domain)
    signature = await context.signer.sign_typed_data(
        address,
        typed["domain"],
        typed["types"],
        typed["primaryType"],
        typed["message"],
    )
    signed = salted.model_copy(update={"sign": signature})
    logger.info("signed %s %s", order.kind.value, compute_order_hash(signed, domain))
    return signed


async def cancel_order(context: "ChainContext", order: Order) -> str:
    """Cancel ``order`` on-chain; returns the transaction hash."""

    kind: OrderKind = order.kind
    struct = signed_order_to_struct(order)
    try:
        receipt = await context.send("clerk", kind.spec.cancel_method, struct, expect=(kind.spec.cancel_event,))
    except ConfirmationError as exc:
        raise AlreadyCanceled(kind.value, await context.order_hash(order)) from exc
    logger.info("cancelled %s (tx %s)", kind.value, receipt.get("txHash"))
    return receipt["txHash"]


async def get_remaining_volume(context: "ChainContext", order: Order) -> int:
    """Initial volume minus the volume already consumed on-chain."""

    consumed = await context.consumed(await context.order_hash(order))
    return order.volume - consumed
