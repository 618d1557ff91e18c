"""Polling observers for deal and task status.

An :class:`Observable` is cold: every :meth:`Observable.subscribe` call starts
its own poll loop in a dedicated asyncio task, with its own last-emitted
snapshot. A loop emits a ``*_UPDATED`` update whenever the polled status
differs from the previous emission, a single ``*_TIMEDOUT`` update when the
deadline passes before every tracked task is finalized, and completes once
every tracked task is ``COMPLETED`` or ``FAILED``.

:meth:`Subscription.unsubscribe` is synchronous. It cancels the poll task, so
a read still in flight is dropped and nothing is emitted afterwards.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Hashable, Optional, Tuple

from .codec import normalize_bytes32
from .constants import NULL_BYTES32, STATUS_COMPLETED, STATUS_FAILED, TERMINAL_STATUSES
from .deals import show_deal
from .errors import ObjectNotFoundError
from .tasks import decode_task_result, fetch_task, is_timed_out, status_name

if TYPE_CHECKING:  # pragma: no cover
    from .ledger import ChainContext

logger = logging.getLogger(__name__)

DEAL_UPDATED = "DEAL_UPDATED"
DEAL_TIMEDOUT = "DEAL_TIMEDOUT"
TASK_UPDATED = "TASK_UPDATED"
TASK_TIMEDOUT = "TASK_TIMEDOUT"

Update = Dict[str, Any]
Emit = Callable[[Update], None]
Producer = Callable[[Emit], Awaitable[None]]
Sleep = Callable[[float], Awaitable[Any]]


class Subscription:
    """Handle returned by :meth:`Observable.subscribe`."""

    def __init__(self) -> None:
        self._closed = False
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def closed(self) -> bool:
        return self._closed

    def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()


class Observable:
    """Cold, cancellable stream of status updates."""

    def __init__(self, producer: Producer, *, name: str = "observer") -> None:
        self._producer = producer
        self._name = name

    def subscribe(
        self,
        on_next: Optional[Callable[[Update], None]] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
        on_complete: Optional[Callable[[], None]] = None,
    ) -> Subscription:
        """Start a new poll loop; must be called with a running event loop."""

        subscription = Subscription()
        loop = asyncio.get_running_loop()
        subscription._task = loop.create_task(
            self._run(subscription, on_next, on_error, on_complete),
            name=self._name,
        )
        return subscription

    async def _run(
        self,
        subscription: Subscription,
        on_next: Optional[Callable[[Update], None]],
        on_error: Optional[Callable[[BaseException], None]],
        on_complete: Optional[Callable[[], None]],
    ) -> None:
        def emit(update: Update) -> None:
            if not subscription.closed and on_next is not None:
                on_next(update)

        try:
            await self._producer(emit)
        except asyncio.CancelledError:
            logger.debug("%s unsubscribed", self._name)
            raise
        except Exception as exc:
            if subscription.closed:
                return
            subscription._closed = True
            if on_error is None:
                logger.error("%s failed: %s", self._name, exc)
            else:
                on_error(exc)
            return
        if subscription.closed:
            return
        subscription._closed = True
        if on_complete is not None:
            on_complete()


async def watch(observable: Observable, on_next: Callable[[Update], None]) -> None:
    """Subscribe and wait for completion; errors are raised to the caller."""

    done: asyncio.Future[None] = asyncio.get_running_loop().create_future()

    def _error(exc: BaseException) -> None:
        if not done.done():
            done.set_exception(exc)

    def _complete() -> None:
        if not done.done():
            done.set_result(None)

    subscription = observable.subscribe(on_next, _error, _complete)
    try:
        await done
    finally:
        subscription.unsubscribe()


def _task_snapshot(taskid: str, task: Dict[str, Any], fallback_deadline: Optional[int], now: int) -> Dict[str, Any]:
    """Task fields with the time-derived status; unset tasks use ``fallback_deadline``."""

    initialized = task["dealid"] != NULL_BYTES32
    status = int(task["status"]) if initialized else 0
    final_deadline = int(task["finalDeadline"]) if initialized else int(fallback_deadline or 0)
    timed_out = is_timed_out(status, final_deadline, now)
    return {
        "taskid": taskid,
        **task,
        "status": status,
        "finalDeadline": final_deadline,
        "statusName": status_name(status, timed_out),
        "taskTimedOut": timed_out,
        "results": decode_task_result(task["results"]),
    }


def _task_key(task: Dict[str, Any]) -> Tuple[Hashable, ...]:
    return (task["taskid"], task["status"], task["statusName"], task.get("resultDigest"))


def obs_deal(
    context: "ChainContext",
    dealid: str,
    *,
    interval: Optional[float] = None,
    sleep: Sleep = asyncio.sleep,
) -> Observable:
    """Observe every task of ``dealid`` until they settle or the deal times out."""

    poll_interval = interval if interval is not None else context.config.poll_interval_seconds

    async def produce(emit: Emit) -> None:
        vdealid = normalize_bytes32(dealid, name="dealid")
        last_key: Optional[Tuple[Hashable, ...]] = None
        while True:
            deal = await show_deal(context, vdealid)
            final_time = deal["finalTime"]
            tasks: Dict[int, Dict[str, Any]] = {}
            for idx, taskid in deal["tasks"].items():
                raw = await fetch_task(context, taskid)
                tasks[idx] = _task_snapshot(taskid, raw, final_time, context.now())
            now = context.now()
            statuses = [task["status"] for task in tasks.values()]
            update = {
                "dealid": vdealid,
                "deal": {**deal, "deadlineReached": now >= final_time, "tasks": tasks},
                "tasksCount": len(tasks),
                "completedTasksCount": sum(1 for status in statuses if status == STATUS_COMPLETED),
                "failedTasksCount": sum(
                    1 for task in tasks.values() if task["status"] == STATUS_FAILED or task["taskTimedOut"]
                ),
            }
            settled = all(status in TERMINAL_STATUSES for status in statuses)
            logger.debug("deal %s polled: %s", vdealid, statuses)
            if now >= final_time and not settled:
                emit({"message": DEAL_TIMEDOUT, **update})
                return
            key = tuple(_task_key(tasks[idx]) for idx in sorted(tasks))
            if key != last_key:
                last_key = key
                emit({"message": DEAL_UPDATED, **update})
            if settled:
                return
            await sleep(poll_interval)

    return Observable(produce, name=f"deal-observer:{dealid}")


def obs_task(
    context: "ChainContext",
    taskid: str,
    *,
    dealid: Optional[str] = None,
    interval: Optional[float] = None,
    sleep: Sleep = asyncio.sleep,
) -> Observable:
    """Observe one task until it settles or passes its deadline.

    Without ``dealid`` a task that is not yet initialized on-chain cannot be
    told apart from a wrong id, so it fails with :class:`ObjectNotFoundError`.
    With ``dealid`` an uninitialized task is reported as ``UNSET`` and times
    out at the deal's final time.
    """

    poll_interval = interval if interval is not None else context.config.poll_interval_seconds

    async def produce(emit: Emit) -> None:
        vtaskid = normalize_bytes32(taskid, name="taskid")
        deal_final_time: Optional[int] = None
        if dealid is not None:
            deal = await show_deal(context, dealid)
            if vtaskid not in deal["tasks"].values():
                raise ObjectNotFoundError("task", vtaskid, context.chain_id)
            deal_final_time = deal["finalTime"]
        last_key: Optional[Tuple[Hashable, ...]] = None
        while True:
            raw = await fetch_task(context, vtaskid)
            if raw["dealid"] == NULL_BYTES32 and deal_final_time is None:
                raise ObjectNotFoundError("task", vtaskid, context.chain_id)
            now = context.now()
            task = _task_snapshot(vtaskid, raw, deal_final_time, now)
            settled = task["status"] in TERMINAL_STATUSES
            logger.debug("task %s polled: %s", vtaskid, task["statusName"])
            if now >= task["finalDeadline"] and not settled:
                emit({"message": TASK_TIMEDOUT, "task": task})
                return
            key = _task_key(task)
            if key != last_key:
                last_key = key
                emit({"message": TASK_UPDATED, "task": task})
            if settled:
                return
            await sleep(poll_interval)

    return Observable(produce, name=f"task-observer:{taskid}")
