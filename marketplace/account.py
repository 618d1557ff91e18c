"""Account stake operations."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

from .codec import normalize_address, parse_amount
from .constants import NULL_BYTES
from .errors import NotAuthorized, PreconditionError, ValidationError

if TYPE_CHECKING:  # pragma: no cover
    from .ledger import ChainContext

logger = logging.getLogger(__name__)

# native chains hold the stake in the chain currency, 1 nRLC == 1 gwei
NRLC_TO_WEI = 10**9


async def show_account(context: "ChainContext", address: Optional[str] = None) -> Dict[str, int]:
    vaddress = normalize_address(address or context.signer_address)
    return await context.account(vaddress)


async def _ensure_whitelisted(context: "ChainContext", address: str) -> None:
    if context.is_enterprise and not await context.is_whitelisted(address):
        raise NotAuthorized("account", address)


def _positive_amount(amount: Any, action: str) -> int:
    vamount = parse_amount(amount)
    if vamount <= 0:
        raise ValidationError(f"{action} amount must be greater than 0")
    return vamount


async def deposit(context: "ChainContext", amount: Any) -> Dict[str, Any]:
    """Move ``amount`` nRLC from the wallet to the account stake."""

    vamount = _positive_amount(amount, "Deposit")
    address = context.signer_address
    await _ensure_whitelisted(context, address)
    if context.config.is_native:
        receipt = await context.send("hub", "deposit", value=vamount * NRLC_TO_WEI, expect=("Transfer",))
    else:
        receipt = await context.send(
            "token",
            "approveAndCall",
            context.config.hub_address,
            vamount,
            NULL_BYTES,
            expect=("Approval", "Transfer"),
        )
    logger.info("deposited %s nRLC for %s", vamount, address)
    return {"amount": vamount, "txHash": receipt["txHash"]}


async def withdraw(context: "ChainContext", amount: Any) -> Dict[str, Any]:
    """Move ``amount`` nRLC from the account stake back to the wallet."""

    vamount = _positive_amount(amount, "Withdraw")
    address = context.signer_address
    await _ensure_whitelisted(context, address)
    account = await context.account(address)
    if account["stake"] < vamount:
        raise PreconditionError("Withdraw amount exceed account balance")
    receipt = await context.send("hub", "withdraw", vamount, expect=("Transfer",))
    logger.info("withdrew %s nRLC for %s", vamount, address)
    return {"amount": vamount, "txHash": receipt["txHash"]}
