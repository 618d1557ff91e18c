"""Deal reads."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict

from web3 import Web3

from .codec import bytes32_to_bytes, is_null_address, normalize_bytes32, normalize_uint256
from .errors import ObjectNotFoundError

if TYPE_CHECKING:  # pragma: no cover
    from .ledger import ChainContext

logger = logging.getLogger(__name__)


def compute_task_id(dealid: str, idx: int) -> str:
    """Task id of the ``idx``-th task of ``dealid``."""

    index = normalize_uint256(idx, name="idx")
    return Web3.to_hex(Web3.solidity_keccak(["bytes32", "uint256"], [bytes32_to_bytes(dealid), index]))


async def fetch_deal(context: "ChainContext", dealid: str) -> Dict[str, Any]:
    """Raw deal record; a deal whose app pointer is unset does not exist."""

    vdealid = normalize_bytes32(dealid, name="dealid")
    deal = await context.call("hub", "viewDeal", vdealid)
    if is_null_address(deal["app"]["pointer"]):
        raise ObjectNotFoundError("deal", vdealid, context.chain_id)
    return deal


async def deal_final_time(context: "ChainContext", deal: Dict[str, Any]) -> int:
    category = await context.call("hub", "viewCategory", int(deal["category"]))
    ratio = int(await context.call("hub", "final_deadline_ratio"))
    return int(deal["startTime"]) + ratio * int(category["workClockTimeRef"])


async def show_deal(context: "ChainContext", dealid: str) -> Dict[str, Any]:
    """Deal with its final time, deadline flag and task id map."""

    vdealid = normalize_bytes32(dealid, name="dealid")
    deal = await fetch_deal(context, vdealid)
    final_time = await deal_final_time(context, deal)
    bot_first, bot_size = int(deal["botFirst"]), int(deal["botSize"])
    logger.debug("deal %s: final time %s, %s tasks", vdealid, final_time, bot_size)
    tasks = {idx: compute_task_id(vdealid, idx) for idx in range(bot_first, bot_first + bot_size)}
    return {
        "dealid": vdealid,
        **deal,
        "finalTime": final_time,
        "deadlineReached": context.now() >= final_time,
        "tasks": tasks,
    }
