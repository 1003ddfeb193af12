import logging
from datetime import date, timedelta

from optimize.models import Schedule, SolveError, SCHEDULING_OVERFLOW
from line_schedule.day_bucket import DayBucket, day_capacity, invalid_capacity, SUNDAY
from line_schedule.production_units import DemandTracker, expand_units, DEFAULT_LEAD_BUFFER_DAYS

"""
[forward_schedule.py]
Forward earliest-due-first calendar: units are sorted by target date and packed into
consecutive days starting at the anchor date. A day closes on the first unit that
does not fit (no look-ahead past it).
"""

MAX_SCHEDULE_DAYS = 365


def build_schedule_forward(results_by_group, demands, daily_capacity, setup_penalty, anchor_date,
                           lead_buffer_days=DEFAULT_LEAD_BUFFER_DAYS, rest_weekdays=(SUNDAY,),
                           rest_day_factor=0.5, descriptions=None, max_days=MAX_SCHEDULE_DAYS):
    if daily_capacity <= 0:
        return invalid_capacity(daily_capacity)

    tracker = DemandTracker(demands, lead_buffer_days)
    units = expand_units(results_by_group, tracker)
    schedule = Schedule()
    if not units:
        return schedule

    # stock units (no open demand) go last
    units.sort(key=lambda u: (u.target_date or date.max, u.coil_code, u.pattern.pattern_id))

    current = anchor_date
    idx = 0
    day_count = 0
    while idx < len(units) and day_count < max_days:
        bucket = DayBucket(current, day_capacity(current, daily_capacity, rest_weekdays, rest_day_factor),
                           setup_penalty, descriptions)
        while idx < len(units):
            unit = units[idx]
            if bucket.fits(unit):
                bucket.add(unit)
                idx += 1
                continue
            if bucket.is_empty:
                bucket.forced = True
                bucket.add(unit)
                idx += 1
                schedule.warnings.append(
                    f"{current}: {unit.coil_code} pattern {unit.pattern.pattern_id} "
                    f"({unit.weight:.1f} T) exceeds the day capacity {bucket.capacity:.1f} T, placed alone")
            break

        schedule.days.append(bucket.to_daily_plan())
        current += timedelta(days=1)
        day_count += 1

    if idx < len(units):
        schedule.unplaced_units = len(units) - idx
        schedule.error = SolveError(
            SCHEDULING_OVERFLOW,
            f"{schedule.unplaced_units} units not placed within {max_days} days from {anchor_date}")
        logging.warning(f"[build_schedule_forward] {schedule.error.message}")

    logging.info(f"[build_schedule_forward] {len(units) - schedule.unplaced_units} units over "
                 f"{len(schedule.days)} days from {anchor_date}")
    return schedule
