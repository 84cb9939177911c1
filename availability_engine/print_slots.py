"""Print a provider's open slots to stdout.

Usage:
    python -m availability_engine.print_slots --provider-id dr-lee --days 3
"""
import argparse
import sys
from datetime import datetime, timedelta

from availability_engine.core.errors import SchedulingError
from availability_engine.core.log import setup_logging
from availability_engine.database import SessionLocal, ensure_schema
from availability_engine.scheduling.expander import get_timezone
from availability_engine.scheduling.schemas import SlotQuery
from availability_engine.scheduling.service import AvailabilityService
from availability_engine.stores.sql import SqlScheduleStore


def parse_arguments(argv=None):
    parser = argparse.ArgumentParser(description="List bookable appointment slots for a provider.")
    parser.add_argument("--provider-id", required=True, help="Provider whose schedule is resolved.")
    parser.add_argument("--start-date", type=str, help="First local date in YYYY-MM-DD format. Defaults to today.")
    parser.add_argument("--days", type=int, default=1, help="Number of days to list. Defaults to 1.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging.")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_arguments(argv)
    setup_logging("DEBUG" if args.verbose else "WARNING")
    ensure_schema()

    service = AvailabilityService(SqlScheduleStore(SessionLocal))

    try:
        template = service.store.get_weekly_template(args.provider_id)
        tz = get_timezone(template.timezone)
        if args.start_date:
            try:
                first_day = datetime.strptime(args.start_date, "%Y-%m-%d").date()
            except ValueError:
                print("Error: Start date must be in YYYY-MM-DD format.", file=sys.stderr)
                return 1
        else:
            first_day = datetime.now(tz).date()

        range_start = tz.localize(datetime.combine(first_day, datetime.min.time()))
        range_end = tz.localize(datetime.combine(first_day + timedelta(days=args.days), datetime.min.time()))
        slots = service.get_available_slots(
            SlotQuery(provider_id=args.provider_id, range_start=range_start, range_end=range_end)
        )
    except SchedulingError as exc:
        print(f"Error ({exc.kind}): {exc}", file=sys.stderr)
        return 1

    for slot in slots:
        local_start = slot.start.astimezone(tz)
        local_end = slot.end.astimezone(tz)
        print(f"{local_start:%Y-%m-%d %H:%M} - {local_end:%H:%M}")

    print(f"Summary: {len(slots)} open slots for {args.provider_id}.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
