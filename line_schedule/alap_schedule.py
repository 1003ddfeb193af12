import logging
from datetime import date, timedelta

from optimize.models import Schedule, SolveError, SCHEDULING_OVERFLOW
from line_schedule.day_bucket import DayBucket, day_capacity, invalid_capacity, SUNDAY
from line_schedule.production_units import DemandTracker, expand_units, DEFAULT_LEAD_BUFFER_DAYS

"""
[alap_schedule.py]
Backward (as-late-as-possible) calendar: every unit goes to the latest day on or before
its target date that still has room, walking backwards day by day. Units are placed
latest target first so urgent work is not pushed back by stock.
"""

MAX_LOOKBACK_DAYS = 730
STOCK_HORIZON_DAYS = 365


def default_stock_date(demands):
    """Ideal date for stock units: one horizon after the latest due date."""
    due_dates = [d.due_date for d in demands if d.due_date is not None]
    latest = max(due_dates) if due_dates else date.today()
    return latest + timedelta(days=STOCK_HORIZON_DAYS)


def build_schedule_alap(results_by_group, demands, daily_capacity, setup_penalty,
                        lead_buffer_days=DEFAULT_LEAD_BUFFER_DAYS, rest_weekdays=(SUNDAY,),
                        rest_day_factor=0.5, stock_date=None, descriptions=None,
                        max_lookback=MAX_LOOKBACK_DAYS):
    if daily_capacity <= 0:
        return invalid_capacity(daily_capacity)

    tracker = DemandTracker(demands, lead_buffer_days)
    units = expand_units(results_by_group, tracker)
    schedule = Schedule()
    if not units:
        return schedule

    if stock_date is None:
        stock_date = default_stock_date(demands)
    for unit in units:
        if unit.target_date is None:
            unit.target_date = tracker.surplus_target(unit.coil_code, unit.pattern) or stock_date

    units.sort(key=lambda u: (-u.target_date.toordinal(), u.coil_code, u.pattern.pattern_id))

    buckets = {}
    for unit in units:
        candidate = unit.target_date
        placed = False
        for _ in range(max_lookback):
            bucket = buckets.get(candidate)
            if bucket is None:
                bucket = DayBucket(candidate,
                                   day_capacity(candidate, daily_capacity, rest_weekdays, rest_day_factor),
                                   setup_penalty, descriptions)
            if bucket.fits(unit):
                bucket.add(unit)
                buckets[candidate] = bucket
                placed = True
                break
            if bucket.is_empty:
                bucket.forced = True
                bucket.add(unit)
                buckets[candidate] = bucket
                placed = True
                schedule.warnings.append(
                    f"{candidate}: {unit.coil_code} pattern {unit.pattern.pattern_id} "
                    f"({unit.weight:.1f} T) exceeds the day capacity {bucket.capacity:.1f} T, placed alone")
                break
            candidate -= timedelta(days=1)

        if not placed:
            schedule.unplaced_units += 1

    schedule.days = [buckets[day].to_daily_plan() for day in sorted(buckets)]

    if schedule.unplaced_units:
        schedule.error = SolveError(
            SCHEDULING_OVERFLOW,
            f"{schedule.unplaced_units} units found no free day within {max_lookback} days of their target")
        logging.warning(f"[build_schedule_alap] {schedule.error.message}")

    logging.info(f"[build_schedule_alap] {len(units) - schedule.unplaced_units} units over "
                 f"{len(schedule.days)} days (stock target {stock_date})")
    return schedule
