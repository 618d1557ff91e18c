"""Task reads, task actions and result decoding."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional

import httpx

from .codec import normalize_bytes32, normalize_uint256
from .constants import (
    NULL_BYTES,
    NULL_BYTES32,
    STATUS_ACTIVE,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_UNSET,
    TASK_STATUS_NAMES,
    TASK_TIMEOUT_STATUS,
)
from .errors import CollaboratorError, ObjectNotFoundError, PreconditionError

if TYPE_CHECKING:  # pragma: no cover
    from .ledger import ChainContext

logger = logging.getLogger(__name__)


def decode_task_result(results: Any) -> Dict[str, Any]:
    """Decode the packed result blob; anything unreadable is ``{"storage": "none"}``."""

    try:
        if results and results != NULL_BYTES:
            raw = bytes.fromhex(results[2:]) if isinstance(results, str) else bytes(results)
            decoded = json.loads(raw.decode("utf-8"))
            if isinstance(decoded, dict):
                return decoded
    except (ValueError, TypeError):
        pass
    return {"storage": "none"}


def is_timed_out(status: int, final_deadline: int, now: int) -> bool:
    """Whether a non-finalized task is past its final deadline."""

    return status < STATUS_COMPLETED and now >= final_deadline


def status_name(status: int, timed_out: bool) -> str:
    if timed_out:
        return TASK_TIMEOUT_STATUS
    return TASK_STATUS_NAMES.get(status, str(status))


def _deadline(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


async def fetch_task(context: "ChainContext", taskid: str) -> Dict[str, Any]:
    """Raw task record; uninitialized tasks are returned as-is."""

    return await context.call("hub", "viewTask", normalize_bytes32(taskid, name="taskid"))


async def show_task(context: "ChainContext", taskid: str) -> Dict[str, Any]:
    vtaskid = normalize_bytes32(taskid, name="taskid")
    task = await fetch_task(context, vtaskid)
    if task["dealid"] == NULL_BYTES32:
        raise ObjectNotFoundError("task", vtaskid, context.chain_id)
    status = int(task["status"])
    timed_out = is_timed_out(status, int(task["finalDeadline"]), context.now())
    return {
        "taskid": vtaskid,
        **task,
        "statusName": status_name(status, timed_out),
        "taskTimedOut": timed_out,
        "results": decode_task_result(task["results"]),
    }


async def claim_task(context: "ChainContext", taskid: str) -> str:
    task = await show_task(context, taskid)
    status = int(task["status"])
    if status in (STATUS_COMPLETED, STATUS_FAILED):
        raise PreconditionError(f"Cannot claim a task having status {TASK_STATUS_NAMES[status]}")
    if not task["taskTimedOut"]:
        raise PreconditionError(
            f"Cannot claim a task before reaching the consensus deadline date: {_deadline(int(task['finalDeadline']))}"
        )
    receipt = await context.send("hub", "claim", task["taskid"], expect=("TaskClaimed",))
    logger.info("claimed task %s", task["taskid"])
    return receipt["txHash"]


def _check_running(task: Dict[str, Any], action: str) -> None:
    status = int(task["status"])
    if status not in (STATUS_UNSET, STATUS_ACTIVE):
        raise PreconditionError(f"Cannot {action} a task having status {TASK_STATUS_NAMES.get(status, status)}")
    if task["taskTimedOut"]:
        raise PreconditionError(
            f"Cannot {action} a task that reached the consensus deadline date: "
            f"{_deadline(int(task['finalDeadline']))}"
        )


async def extend_task(context: "ChainContext", taskid: str, duration: Any) -> str:
    vduration = normalize_uint256(duration, name="duration")
    task = await show_task(context, taskid)
    _check_running(task, "extend")
    receipt = await context.send("hub", "extend", task["taskid"], vduration, expect=("TaskExtended",))
    logger.info("extended task %s by %s", task["taskid"], vduration)
    return receipt["txHash"]


async def interrupt_task(context: "ChainContext", taskid: str) -> str:
    task = await show_task(context, taskid)
    _check_running(task, "interrupt")
    receipt = await context.send("hub", "interrupt", task["taskid"], expect=("TaskInterrupt",))
    logger.info("interrupted task %s", task["taskid"])
    return receipt["txHash"]


async def fetch_task_results(
    context: "ChainContext",
    taskid: str,
    *,
    ipfs_gateway_url: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    timeout: float = 60.0,
) -> bytes:
    """Download the result archive of a completed task from IPFS."""

    task = await show_task(context, taskid)
    if int(task["status"]) != STATUS_COMPLETED:
        raise PreconditionError("Task is not completed")
    results = task["results"]
    storage = results.get("storage")
    if storage == "none":
        raise PreconditionError("No result uploaded for this task")
    if storage != "ipfs":
        raise PreconditionError(f"Task result stored on {storage}, download not supported")
    location = results.get("location")
    if not location:
        raise PreconditionError("Missing location key in task results, download not supported")

    gateway = (ipfs_gateway_url or context.config.ipfs_gateway_url).rstrip("/")
    url = f"{gateway}/{str(location).lstrip('/')}"
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport, follow_redirects=True) as client:
            response = await client.get(url)
    except httpx.HTTPError as exc:
        raise CollaboratorError(f"Failed to download from {gateway}: {exc}", service="ipfs") from exc
    if response.status_code >= 400:
        raise CollaboratorError(
            f"Failed to download from {gateway}: HTTP {response.status_code}",
            service="ipfs",
            status=response.status_code,
        )
    return response.content
