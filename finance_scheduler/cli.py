"""CLI entry point for the finance scheduler.

Commands:
    finance-scheduler run [--as-of DATE]        Execute every due schedule (cron target)
    finance-scheduler upcoming [--days N]       Upcoming and blocked schedules
    finance-scheduler list [--status S]         List schedules
    finance-scheduler confirm ID [--as-of DATE] Execute a pending schedule now
    finance-scheduler pause ID                  Pause a schedule
    finance-scheduler resume ID [--as-of DATE]  Resume a paused schedule
    finance-scheduler cancel ID                 Cancel a schedule for good
"""

import argparse
import asyncio
import signal
import sys
from datetime import date
from typing import Optional
from uuid import UUID

from finance_scheduler.audit import configure_logging
from finance_scheduler.config import get_settings
from finance_scheduler.engine import InvalidStatusTransitionError, ScheduleNotActiveError
from finance_scheduler.models.schedule import (
    ScheduledTransaction,
    ScheduleFilters,
    ScheduleStatus,
)
from finance_scheduler.orchestrator import ScheduleService, create_app_components
from finance_scheduler.services.storage import NotFoundError


def _format_schedule(schedule: ScheduledTransaction) -> str:
    sign = "-" if schedule.type.value == "expense" else "+"
    flags = []
    if schedule.insufficient_funds:
        flags.append("BLOCKED")
    if not schedule.auto_execute:
        flags.append("manual")
    label = schedule.description or schedule.payee or ""
    return (
        f"{schedule.id}  {schedule.next_execution_date.isoformat()}  "
        f"{sign}{schedule.amount:>10}  {schedule.frequency.value:<9} "
        f"{schedule.status.value:<9} {schedule.account_id}  {label}"
        + (f"  [{', '.join(flags)}]" if flags else "")
    )


# ── Command handlers ─────────────────────────────────────


async def cmd_run(args: argparse.Namespace, service: ScheduleService) -> int:
    """Process due schedules; Ctrl-C stops the run between schedules."""
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
    except (NotImplementedError, RuntimeError):
        pass  # not supported on this platform

    summary = await service.run_due_schedules(as_of=args.as_of, cancel_event=cancel_event)

    print(f"Run {summary.run_id} for {summary.as_of.isoformat()}")
    for name, value in summary.counts().items():
        print(f"  {name:<22}{value}")
    for attempt in summary.attempts:
        if attempt.message:
            print(f"  {attempt.scheduled_transaction_id}: {attempt.outcome.value} ({attempt.message})")
    return 0 if summary.failed == 0 and summary.aborted == 0 else 2


async def cmd_upcoming(args: argparse.Namespace, service: ScheduleService) -> int:
    result = await service.get_upcoming(horizon_days=args.days)

    print(f"Upcoming (next {result.horizon_days} days from {result.generated_for.isoformat()}):")
    if not result.upcoming_transactions:
        print("  (none)")
    for schedule in result.upcoming_transactions:
        print(f"  {_format_schedule(schedule)}")

    print("Blocked by insufficient funds:")
    if not result.insufficient_funds_transactions:
        print("  (none)")
    for schedule in result.insufficient_funds_transactions:
        since = schedule.insufficient_funds_since
        print(f"  {_format_schedule(schedule)}" + (f"  since {since.isoformat()}" if since else ""))
    return 0


async def cmd_list(args: argparse.Namespace, service: ScheduleService) -> int:
    filters = ScheduleFilters(status=ScheduleStatus(args.status) if args.status else None)
    page = await service.list_schedules(filters, page=args.page, limit=args.limit)

    for schedule in page.items:
        print(_format_schedule(schedule))
    print(f"Page {page.page}/{max(page.total_pages, 1)}, {page.total_count} schedules")
    return 0


async def cmd_confirm(args: argparse.Namespace, service: ScheduleService) -> int:
    attempt = await service.confirm_execution(args.id, as_of=args.as_of)
    print(f"{attempt.outcome.value}: occurrence {attempt.occurrence_date.isoformat()}")
    if attempt.message:
        print(f"  {attempt.message}")
    if attempt.next_execution_date:
        print(f"  next execution {attempt.next_execution_date.isoformat()} ({attempt.status.value})")
    return 0 if attempt.outcome.value == "executed" else 2


async def cmd_pause(args: argparse.Namespace, service: ScheduleService) -> int:
    schedule = await service.pause(args.id)
    print(_format_schedule(schedule))
    return 0


async def cmd_resume(args: argparse.Namespace, service: ScheduleService) -> int:
    schedule = await service.resume(args.id, as_of=args.as_of)
    print(_format_schedule(schedule))
    return 0


async def cmd_cancel(args: argparse.Namespace, service: ScheduleService) -> int:
    schedule = await service.cancel(args.id)
    print(_format_schedule(schedule))
    return 0


# ── Main entry point ─────────────────────────────────────


_COMMANDS = {
    "run": cmd_run,
    "upcoming": cmd_upcoming,
    "list": cmd_list,
    "confirm": cmd_confirm,
    "pause": cmd_pause,
    "resume": cmd_resume,
    "cancel": cmd_cancel,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="finance-scheduler",
        description="Scheduled (recurring) transaction engine",
    )
    parser.add_argument(
        "--backend",
        choices=["memory", "google_sheets"],
        help="Storage backend (defaults to APP storage_backend setting)",
    )
    subparsers = parser.add_subparsers(dest="command")

    # run
    run_p = subparsers.add_parser("run", help="Execute every due schedule")
    run_p.add_argument("--as-of", type=date.fromisoformat, help="Run date (YYYY-MM-DD), default today")

    # upcoming
    upcoming_p = subparsers.add_parser("upcoming", help="Show upcoming and blocked schedules")
    upcoming_p.add_argument("--days", type=int, help="Look-ahead window in days")

    # list
    list_p = subparsers.add_parser("list", help="List schedules")
    list_p.add_argument("--status", choices=[s.value for s in ScheduleStatus], help="Filter by status")
    list_p.add_argument("--page", type=int, default=1)
    list_p.add_argument("--limit", type=int)

    # confirm
    confirm_p = subparsers.add_parser("confirm", help="Execute a pending schedule now")
    confirm_p.add_argument("id", type=UUID, help="Schedule ID")
    confirm_p.add_argument("--as-of", type=date.fromisoformat)

    # lifecycle
    for name, help_text in (("pause", "Pause a schedule"), ("cancel", "Cancel a schedule")):
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument("id", type=UUID, help="Schedule ID")
    resume_p = subparsers.add_parser("resume", help="Resume a paused schedule")
    resume_p.add_argument("id", type=UUID, help="Schedule ID")
    resume_p.add_argument("--as-of", type=date.fromisoformat)

    return parser


def main(argv: Optional[list[str]] = None, service: Optional[ScheduleService] = None):
    configure_logging(get_settings().app.log_level)

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    handler = _COMMANDS.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}")
        sys.exit(1)

    if service is None:
        service, _ = create_app_components(args.backend)

    try:
        code = asyncio.run(handler(args, service))
    except (NotFoundError, ScheduleNotActiveError, InvalidStatusTransitionError) as e:
        print(f"Error: {e}")
        code = 1

    sys.exit(code)


if __name__ == "__main__":
    main()
