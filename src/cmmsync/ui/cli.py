# ruff: noqa: T201

from __future__ import annotations

import argparse
import logging
import sys
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from cmmsync.app import (
    change_work_order_status,
    checkout_parts,
    claim_work_order,
    list_work_orders,
    log_work_time,
)
from cmmsync.config import configure_logging
from cmmsync.domain.model import WorkOrderStatus

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from cmmsync.domain.model import WorkOrder
    from cmmsync.domain.reconciliation import MutationResult

log = logging.getLogger(__name__)


def _parse_status(value: str) -> WorkOrderStatus:
    normalized = value.strip().upper().replace("-", "_")
    try:
        return WorkOrderStatus(normalized)
    except ValueError as exc:
        choices = ", ".join(status.value for status in WorkOrderStatus)
        raise ValueError(f"Invalid status {value!r}; expected one of: {choices}") from exc


def _parse_checkout_line(value: str) -> tuple[int, int]:
    part_id, sep, quantity = value.partition(":")
    try:
        return int(part_id), int(quantity) if sep else 1
    except ValueError as exc:
        raise ValueError(f"Invalid part line {value!r}; expected PART_ID[:QUANTITY]") from exc


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Work-order actions against the CMMS API")
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Logging level (defaults to CMMS_LOG_LEVEL or INFO)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    listing = subparsers.add_parser("list", help="List work orders")
    listing.add_argument("--status", type=str, help="Only show work orders with this status")
    listing.add_argument(
        "--user-id",
        type=int,
        help="Only show work orders assigned to this user",
    )

    status = subparsers.add_parser("status", help="Change a work order's status")
    status.add_argument("work_order_id", type=int)
    status.add_argument("status", type=str, help="New status, e.g. IN_PROGRESS")

    claim = subparsers.add_parser("claim", help="Assign a work order to a technician")
    claim.add_argument("work_order_id", type=int)
    claim.add_argument("--user-id", type=int, required=True, help="Technician user id")

    log_time = subparsers.add_parser("log-time", help="Log hours against a work order")
    log_time.add_argument("work_order_id", type=int)
    log_time.add_argument("hours", type=float)
    log_time.add_argument("--description", type=str, required=True)
    log_time.add_argument("--category", type=str, default="LABOR")
    log_time.add_argument(
        "--non-billable",
        action="store_true",
        help="Mark the time entry as not billable",
    )

    checkout = subparsers.add_parser("checkout", help="Check parts out of inventory")
    checkout.add_argument(
        "parts",
        nargs="+",
        help="Parts to check out as PART_ID[:QUANTITY]",
    )
    checkout.add_argument("--requested-by", type=str, default="Unknown User")
    checkout.add_argument("--reason", type=str, default="Work order materials")
    checkout.add_argument("--notes", type=str)
    checkout.add_argument("--work-order-id", type=int)

    return parser.parse_args(list(argv))


def _print_work_orders(orders: Sequence[WorkOrder]) -> None:
    for order in orders:
        assignee = order.assigned_to_id if order.assigned_to_id is not None else "-"
        print(
            f"#{order.id:<6} {order.status.value:<12} {order.priority.value:<7} "
            f"{assignee!s:<6} {order.total_logged_hours:>6.2f}h  {order.title}"
        )


def _report(result: MutationResult[object]) -> int:
    if result.ok:
        log.info("%s: done", result.description)
        return 0
    log.error("%s: failed and was reverted (%s)", result.description, result.error)
    return 1


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args: argparse.Namespace
    try:
        parsed_args = _parse_args(args_list)
        configure_logging(level=parsed_args.log_level)
        if parsed_args.command in {"status", "list"} and parsed_args.status is not None:
            parsed_args.status = _parse_status(parsed_args.status)
        lines = (
            [_parse_checkout_line(value) for value in parsed_args.parts]
            if parsed_args.command == "checkout"
            else []
        )
        if parsed_args.command == "log-time" and parsed_args.hours <= 0:
            raise ValueError("Hours must be positive")  # noqa: TRY301
    except ValueError:
        log.exception("CLI validation error")
        sys.exit(2)

    exit_code = 0
    try:
        if parsed_args.command == "list":
            orders = list_work_orders(status=parsed_args.status, user_id=parsed_args.user_id)
            _print_work_orders(orders)
        elif parsed_args.command == "status":
            exit_code = _report(
                change_work_order_status(parsed_args.work_order_id, parsed_args.status)
            )
        elif parsed_args.command == "claim":
            exit_code = _report(claim_work_order(parsed_args.work_order_id, parsed_args.user_id))
        elif parsed_args.command == "log-time":
            exit_code = _report(
                log_work_time(
                    parsed_args.work_order_id,
                    parsed_args.hours,
                    parsed_args.description,
                    category=parsed_args.category,
                    billable=not parsed_args.non_billable,
                )
            )
        elif parsed_args.command == "checkout":
            exit_code = _report(
                checkout_parts(
                    lines,
                    requested_by=parsed_args.requested_by,
                    reason=parsed_args.reason,
                    notes=parsed_args.notes,
                    work_order_id=parsed_args.work_order_id,
                )
            )
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301

    except Exception:
        log.exception("Fatal error talking to the CMMS API")
        sys.exit(1)

    if exit_code:
        sys.exit(exit_code)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    """Console-script entry point: load `.env`, trap Ctrl+C, run."""
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
