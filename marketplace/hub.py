"""Hub wide reads: categories, deadline ratio and network flags."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict

from .codec import normalize_uint256
from .errors import ObjectNotFoundError

if TYPE_CHECKING:  # pragma: no cover
    from .ledger import ChainContext


async def count_category(context: "ChainContext") -> int:
    return int(await context.call("hub", "countCategory"))


async def show_category(context: "ChainContext", index: Any) -> Dict[str, Any]:
    vindex = normalize_uint256(index, name="index")
    if vindex >= await count_category(context):
        raise ObjectNotFoundError("category", str(vindex), context.chain_id)
    category = await context.call("hub", "viewCategory", vindex)
    return {
        "id": vindex,
        "name": category["name"],
        "description": category["description"],
        "workClockTimeRef": int(category["workClockTimeRef"]),
    }


async def get_timeout_ratio(context: "ChainContext") -> int:
    return int(await context.call("hub", "final_deadline_ratio"))


def get_network(context: "ChainContext") -> Dict[str, Any]:
    return {"chainId": context.chain_id, "isNative": context.config.is_native}
