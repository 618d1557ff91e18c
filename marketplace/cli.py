"""Command line interface for the marketplace client."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml

from . import observer, voucher
from .codec import int_to_tag, tag_to_int
from .config import ENV_PRIVATE_KEY, ChainConfig, load_config
from .constants import NULL_ADDRESS
from .deals import show_deal
from .errors import MarketplaceError, ValidationError
from .gateway import GatewayClient
from .ledger import ChainContext, Web3Ledger
from .orders import check_order_requirements, create_requestorder, fetch_order, parse_order, sign_order
from .orders.models import AppOrder, DatasetOrder, OrderKind, RequestOrder, WorkerpoolOrder
from .signers import LocalAccountSigner
from .sms import SmsClient
from .tasks import show_task

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class Session:
    """Collaborators a command runs against."""

    context: ChainContext
    gateway: Optional[GatewayClient] = None
    secrets: Optional[SmsClient] = None


SessionFactory = Callable[[argparse.Namespace], Session]


def build_session(args: argparse.Namespace) -> Session:
    config: ChainConfig = load_config(args.config, args.chain)
    private_key = os.environ.get(ENV_PRIVATE_KEY)
    signer = LocalAccountSigner.from_key(private_key) if private_key else None
    context = ChainContext(Web3Ledger.from_config(config, private_key), config, signer=signer)
    gateway = GatewayClient(config.gateway_url, config.chain_id, signer=signer) if config.gateway_url else None
    secrets = SmsClient(config.sms_url, signer=signer) if config.sms_url else None
    return Session(context=context, gateway=gateway, secrets=secrets)


def _emit(args: argparse.Namespace, result: Any) -> None:
    if args.raw:
        print(json.dumps({"ok": True, "result": result}, default=str))
        return
    if isinstance(result, dict):
        for key, value in result.items():
            rendered = json.dumps(value, default=str) if isinstance(value, (dict, list)) else value
            print(f"{key}: {rendered}")
    else:
        print(result)


def _load_orders_file(path: Optional[str]) -> Dict[str, Any]:
    if not path:
        return {}
    try:
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ValidationError(f"cannot read orders from {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValidationError(f"{path} must contain a mapping of orders")
    return data


async def _resolve_order(
    session: Session,
    kind: OrderKind,
    order_hash: Optional[str],
    from_file: Dict[str, Any],
) -> Optional[Any]:
    if order_hash:
        if session.gateway is None:
            raise ValidationError("a gateway_url is required to fetch orders by hash")
        return await fetch_order(session.gateway, kind, order_hash)
    if kind.value in from_file:
        return parse_order(kind, from_file[kind.value])
    return None


def _parse_params(params: Optional[str]) -> Any:
    if not params:
        return ""
    try:
        parsed = json.loads(params)
    except json.JSONDecodeError as exc:
        raise ValidationError(f"--params is not valid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ValidationError("--params must be a JSON object")
    return parsed


async def _new_requestorder(
    session: Session,
    app: AppOrder,
    dataset: Optional[DatasetOrder],
    workerpool: WorkerpoolOrder,
    params: Optional[str],
    check: bool,
) -> RequestOrder:
    tag = tag_to_int(app.tag)
    if dataset is not None:
        tag |= tag_to_int(dataset.tag)
    request = create_requestorder(
        app=app.app,
        appmaxprice=app.appprice,
        dataset=dataset.dataset if dataset is not None else NULL_ADDRESS,
        datasetmaxprice=dataset.datasetprice if dataset is not None else 0,
        workerpool=workerpool.workerpool,
        workerpoolmaxprice=workerpool.workerpoolprice,
        requester=session.context.signer_address,
        volume=1,
        category=workerpool.category,
        tag=int_to_tag(tag),
        params=_parse_params(params),
    )
    return await sign_order(session.context, request, check_requirements=check, secrets_checker=session.secrets)


async def _voucher_request_task(args: argparse.Namespace, session: Session) -> Any:
    from_file = _load_orders_file(args.orders)
    app = await _resolve_order(session, OrderKind.APP, args.app, from_file)
    dataset = await _resolve_order(session, OrderKind.DATASET, args.dataset, from_file)
    workerpool = await _resolve_order(session, OrderKind.WORKERPOOL, args.workerpool, from_file)
    request = await _resolve_order(session, OrderKind.REQUEST, args.request, from_file)
    if app is None:
        raise ValidationError("Missing apporder")
    if workerpool is None:
        raise ValidationError("Missing workerpoolorder")
    check = not args.skip_request_check
    if request is None:
        request = await _new_requestorder(session, app, dataset, workerpool, args.params, check)
    else:
        if args.params:
            raise ValidationError("--params cannot be used with an existing requestorder")
        if check:
            await check_order_requirements(session.context, request, secrets_checker=session.secrets)
    return await voucher.request_task(session.context, app, dataset, workerpool, request)


async def _voucher_deposit(args: argparse.Namespace, session: Session) -> Any:
    return await voucher.deposit_for(session.context, args.address, args.amount)


async def _voucher_show(args: argparse.Namespace, session: Session) -> Any:
    address = args.address or session.context.signer_address
    return {"address": address, "balance": await voucher.show_balance(session.context, address)}


async def _voucher_count(args: argparse.Namespace, session: Session) -> Any:
    return {"resource": args.resource, "count": await voucher.count_authorized(session.context, args.resource)}


async def _voucher_view(args: argparse.Namespace, session: Session) -> Any:
    address = await voucher.view_authorized(session.context, args.resource, args.index)
    return {"resource": args.resource, "index": args.index, "address": address}


async def _voucher_authorize(args: argparse.Namespace, session: Session) -> Any:
    return {"txHash": await voucher.authorize(session.context, args.resource, args.address)}


async def _voucher_unauthorize(args: argparse.Namespace, session: Session) -> Any:
    return {"txHash": await voucher.unauthorize(session.context, args.resource, args.address)}


def _print_update(args: argparse.Namespace, update: Dict[str, Any]) -> None:
    if args.raw:
        print(json.dumps(update, default=str))
    elif "task" in update:
        task = update["task"]
        print(f"{update['message']} {task['taskid']} {task['statusName']}")
    else:
        print(
            f"{update['message']} {update['dealid']} "
            f"completed {update['completedTasksCount']}/{update['tasksCount']} "
            f"failed {update['failedTasksCount']}"
        )


async def _deal_show(args: argparse.Namespace, session: Session) -> Any:
    if args.watch:
        await observer.watch(observer.obs_deal(session.context, args.dealid), lambda update: _print_update(args, update))
        return None
    return await show_deal(session.context, args.dealid)


async def _task_show(args: argparse.Namespace, session: Session) -> Any:
    if args.watch:
        observable = observer.obs_task(session.context, args.taskid, dealid=args.dealid)
        await observer.watch(observable, lambda update: _print_update(args, update))
        return None
    return await show_task(session.context, args.taskid)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="marketplace", description=__doc__)
    parser.add_argument("--chain", help="Chain name declared in the configuration")
    parser.add_argument("--config", help="Path to the chains YAML configuration")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--raw", action="store_true", help="Print JSON output")
    groups = parser.add_subparsers(dest="group", required=True)

    voucher_parser = groups.add_parser("voucher", help="Voucher operations")
    commands = voucher_parser.add_subparsers(dest="command", required=True)

    deposit = commands.add_parser("deposit", help="Credit a voucher balance")
    deposit.add_argument("address")
    deposit.add_argument("--amount", required=True, help="Amount, e.g. '100' or '1.5 RLC'")
    deposit.set_defaults(handler=_voucher_deposit)

    show = commands.add_parser("show", help="Show a voucher balance")
    show.add_argument("address", nargs="?")
    show.set_defaults(handler=_voucher_show)

    request_task = commands.add_parser("request-task", help="Match orders paid by the voucher")
    for kind in ("app", "dataset", "workerpool", "request"):
        request_task.add_argument(f"--{kind}", metavar="ORDERHASH", help=f"Published {kind}order hash")
    request_task.add_argument("--params", help="Request params as a JSON object")
    request_task.add_argument("--orders", metavar="FILE", help="YAML or JSON file holding signed orders")
    request_task.add_argument("--skip-request-check", action="store_true")
    request_task.set_defaults(handler=_voucher_request_task)

    count = commands.add_parser("count", help="Count authorized resources")
    count.add_argument("resource", choices=voucher.RESOURCES)
    count.set_defaults(handler=_voucher_count)

    view = commands.add_parser("view", help="Show an authorized resource by index")
    view.add_argument("resource", choices=voucher.RESOURCES)
    view.add_argument("index", type=int)
    view.set_defaults(handler=_voucher_view)

    for name, handler in (("authorize", _voucher_authorize), ("unauthorize", _voucher_unauthorize)):
        action = commands.add_parser(name, help=f"{name.capitalize()} a resource for vouchers")
        action.add_argument("resource", choices=voucher.RESOURCES)
        action.add_argument("address")
        action.set_defaults(handler=handler)

    deal = groups.add_parser("deal", help="Deal operations")
    deal_commands = deal.add_subparsers(dest="command", required=True)
    deal_show = deal_commands.add_parser("show", help="Show a deal")
    deal_show.add_argument("dealid")
    deal_show.add_argument("--watch", action="store_true", help="Follow the deal until it settles")
    deal_show.set_defaults(handler=_deal_show)

    task = groups.add_parser("task", help="Task operations")
    task_commands = task.add_subparsers(dest="command", required=True)
    task_show = task_commands.add_parser("show", help="Show a task")
    task_show.add_argument("taskid")
    task_show.add_argument("--watch", action="store_true", help="Follow the task until it settles")
    task_show.add_argument("--dealid", help="Deal of the task, lets --watch follow uninitialized tasks")
    task_show.set_defaults(handler=_task_show)

    return parser


async def _run(args: argparse.Namespace, session_factory: SessionFactory) -> Any:
    session = session_factory(args)
    return await args.handler(args, session)


def main(argv: List[str] | None = None, *, session_factory: SessionFactory = build_session) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING, format=LOG_FORMAT)
    try:
        result = asyncio.run(_run(args, session_factory))
    except MarketplaceError as exc:
        logger.debug("%s %s failed", args.group, args.command, exc_info=True)
        print(f"{type(exc).__name__}: {exc}", file=sys.stderr)
        return 1
    if result is not None:
        _emit(args, result)
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main(sys.argv[1:]))
