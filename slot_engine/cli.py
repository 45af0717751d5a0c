"""
Reservation Engine - Command Line Entry Point
Wires the services to the local SQLite store for operators and scripts.
"""

import argparse
import asyncio
import logging
import sys
from datetime import date
from typing import List, Optional

from slot_engine.config import get_config
from slot_engine.database import close_database, get_session, init_database
from slot_engine.exceptions import BookingEngineError, InvalidBookingRequest
from slot_engine.models import DateRange, StudentSlot
from slot_engine.repositories import (
    BookingRepository,
    ScopedSlotRepository,
    SlotRepository,
    SubscriptionRepository,
)
from slot_engine.services.availability import AvailabilityAggregator, ScanSession
from slot_engine.services.booking_orchestrator import BookingOrchestrator
from slot_engine.services.bulk_booking import BulkBookingPlanner
from slot_engine.services.cancellation import CancellationService
from slot_engine.services.package_validator import PackageValidator
from slot_engine.services.schedule import load_student_schedule

logger = logging.getLogger(__name__)


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        level=level
    )


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid date '{value}', expected YYYY-MM-DD") from e


def _parse_weekdays(value: str) -> List[int]:
    """Comma separated weekdays, 0=Sunday..6=Saturday"""
    try:
        return [int(part) for part in value.split(",") if part.strip()]
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid weekdays '{value}', expected e.g. 1,3") from e


def _parse_log_level(value: str) -> str:
    level = value.upper()
    if level not in logging.getLevelNamesMapping():
        raise argparse.ArgumentTypeError(f"unknown log level '{value}', expected e.g. DEBUG or INFO")
    return level


def _format_slot(slot: StudentSlot) -> str:
    window = ""
    if slot.timeframe:
        window = f" {slot.timeframe.start_time}-{slot.timeframe.end_time}"
    room = f" room {slot.room_id}" if slot.room_id else ""
    return f"{slot.id}  {slot.date.isoformat()}{window}  {slot.status.value}{room}"


def _build_orchestrator(session) -> BookingOrchestrator:
    return BookingOrchestrator(
        SlotRepository(session),
        BookingRepository(session),
        PackageValidator(SubscriptionRepository(session)),
    )


async def _run_scan(args) -> None:
    aggregator = AvailabilityAggregator(ScopedSlotRepository())
    date_range = None
    if args.start or args.end:
        start = args.start or aggregator.today()
        end = args.end or aggregator.default_range().end
        if start > end:
            raise InvalidBookingRequest(f"Scan start {start} is after end {end}")
        date_range = DateRange(start, end)

    scan_session = ScanSession()
    async for month in aggregator.scan(args.student, date_range, session=scan_session):
        open_days = [d for d, a in sorted(month.dates.items()) if a.slot_count > 0]
        print(f"{month.year}-{month.month:02d}: {len(open_days)} open date(s)")
        for day in open_days:
            availability = month.dates[day]
            ids = ", ".join(o.id for o in availability.candidates)
            print(f"  {day.isoformat()}  {availability.slot_count} slot(s): {ids}")
        if month.unchecked_dates:
            unchecked = ", ".join(d.isoformat() for d in month.unchecked_dates)
            print(f"  unchecked: {unchecked}")


def _cmd_scan(args) -> None:
    asyncio.run(_run_scan(args))


def _cmd_book(args) -> None:
    with get_session() as session:
        slot = _build_orchestrator(session).book(
            args.student,
            args.slot,
            args.date,
            room_id=args.room,
            subscription_id=args.subscription,
            note=args.note,
        )
        print(f"Booked: {_format_slot(slot)}")


def _cmd_cancel(args) -> None:
    with get_session() as session:
        CancellationService(BookingRepository(session)).cancel(args.slot_id, args.student)
    print(f"Cancelled: {args.slot_id}")


def _cmd_bulk_book(args) -> None:
    with get_session() as session:
        planner = BulkBookingPlanner(_build_orchestrator(session))
        result = planner.plan(
            args.student,
            args.slot,
            args.subscription,
            args.start,
            args.end,
            args.weekdays,
            note=args.note,
            room_id=args.room,
        )
    print(f"Booked {len(result.booked)} date(s), {len(result.failed)} failed")
    for slot in result.booked:
        print(f"  + {_format_slot(slot)}")
    for failure in result.failed:
        print(f"  - {failure.date.isoformat()}  [{failure.code}] {failure.reason}")


def _cmd_schedule(args) -> None:
    with get_session() as session:
        buckets = load_student_schedule(
            BookingRepository(session), args.student, include_cancelled=args.include_cancelled
        )
    for title, slots in (
        ("Current", buckets.current),
        ("Upcoming", buckets.upcoming),
        ("Past", buckets.past),
    ):
        print(f"{title} ({len(slots)})")
        for slot in slots:
            print(f"  {_format_slot(slot)}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="slot-engine",
        description="Slot availability and booking reservation engine",
    )
    parser.add_argument("--db-file", help="SQLite database file (default from SLOT_ENGINE_DB_FILE)")
    parser.add_argument("--log-level", type=_parse_log_level, help="Log level (default from SLOT_ENGINE_LOG_LEVEL)")
    subparsers = parser.add_subparsers(dest="command", required=True, help="Command to run")

    scan_parser = subparsers.add_parser("scan", help="Show dates with open slots")
    scan_parser.add_argument("--student", required=True, help="Student ID")
    scan_parser.add_argument("--start", type=_parse_date, help="First date (default: today)")
    scan_parser.add_argument("--end", type=_parse_date, help="Last date (default: end of scan window)")
    scan_parser.set_defaults(handler=_cmd_scan)

    book_parser = subparsers.add_parser("book", help="Book one slot on one date")
    book_parser.add_argument("--student", required=True, help="Student ID")
    book_parser.add_argument("--slot", required=True, help="Slot occurrence ID")
    book_parser.add_argument("--date", required=True, type=_parse_date, help="Session date YYYY-MM-DD")
    book_parser.add_argument("--room", help="Room ID")
    book_parser.add_argument("--subscription", help="Subscription ID (default: first eligible)")
    book_parser.add_argument("--note", help="Parent note")
    book_parser.set_defaults(handler=_cmd_book)

    cancel_parser = subparsers.add_parser("cancel", help="Cancel a booked slot")
    cancel_parser.add_argument("--student", required=True, help="Student ID")
    cancel_parser.add_argument("--slot-id", required=True, help="Student slot ID")
    cancel_parser.set_defaults(handler=_cmd_cancel)

    bulk_parser = subparsers.add_parser("bulk-book", help="Book a slot on every selected weekday of a range")
    bulk_parser.add_argument("--student", required=True, help="Student ID")
    bulk_parser.add_argument("--slot", required=True, help="Slot occurrence ID")
    bulk_parser.add_argument("--start", required=True, type=_parse_date, help="First date YYYY-MM-DD")
    bulk_parser.add_argument("--end", required=True, type=_parse_date, help="Last date YYYY-MM-DD")
    bulk_parser.add_argument(
        "--weekdays", required=True, type=_parse_weekdays, help="Weekdays, 0=Sunday..6=Saturday, e.g. 1,3"
    )
    bulk_parser.add_argument("--room", help="Room ID")
    bulk_parser.add_argument("--subscription", help="Subscription ID (default: first eligible per date)")
    bulk_parser.add_argument("--note", help="Parent note")
    bulk_parser.set_defaults(handler=_cmd_bulk_book)

    schedule_parser = subparsers.add_parser("schedule", help="Show a student's sessions")
    schedule_parser.add_argument("--student", required=True, help="Student ID")
    schedule_parser.add_argument(
        "--include-cancelled", action="store_true", help="Also list cancelled slots"
    )
    schedule_parser.set_defaults(handler=_cmd_schedule)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    config = get_config()
    if args.db_file:
        config.db_file = args.db_file
    _setup_logging(args.log_level or config.log_level)

    init_database()
    try:
        args.handler(args)
    except BookingEngineError as e:
        logger.error(f"{args.command} failed: {e.code}: {e.message}")
        print(f"Error [{e.code}]: {e.message}", file=sys.stderr)
        return 1
    finally:
        close_database()
    return 0


if __name__ == "__main__":
    sys.exit(main())
