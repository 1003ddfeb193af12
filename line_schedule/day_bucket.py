import logging

from optimize.models import DailyPlan, Schedule, ScheduledPattern, SolveError, INVALID_CONFIG

"""
[day_bucket.py]
One calendar day of the slitting line while a schedule is being built.
Base capacity is reduced on rest days; every distinct pattern run that day
costs a fixed setup penalty in tons.
"""

SUNDAY = 6
CAPACITY_EPSILON = 1e-9


def day_capacity(day, daily_capacity, rest_weekdays=(SUNDAY,), rest_day_factor=0.5):
    if day.weekday() in rest_weekdays:
        return daily_capacity * rest_day_factor
    return daily_capacity


def invalid_capacity(daily_capacity):
    """Empty schedule carrying the InvalidConfig error for a non-positive line capacity."""
    error = SolveError(INVALID_CONFIG, f"daily_capacity must be positive (got {daily_capacity})")
    logging.error(f"[error] {error.message}")
    return Schedule(error=error)


class DayBucket:

    def __init__(self, day, capacity, setup_penalty, descriptions=None):
        self.day = day
        self.capacity = capacity
        self.setup_penalty = setup_penalty
        self.descriptions = descriptions or {}
        self.entries = {}
        self.total_tons = 0.0
        self.forced = False

    @property
    def is_empty(self):
        return not self.entries

    def penalty_with(self, unit):
        pattern_count = len(self.entries)
        if unit.pattern_key not in self.entries:
            pattern_count += 1
        return pattern_count * self.setup_penalty

    def fits(self, unit):
        available = self.capacity - self.penalty_with(unit)
        return self.total_tons + unit.weight <= available + CAPACITY_EPSILON

    def add(self, unit):
        entry = self.entries.get(unit.pattern_key)
        if entry:
            entry.coils += 1
        else:
            self.entries[unit.pattern_key] = ScheduledPattern(
                pattern=unit.pattern,
                coils=1,
                coil_code=unit.coil_code,
                coil_description=self.descriptions.get(unit.coil_code, ''),
            )
        self.total_tons += unit.weight

    def to_daily_plan(self):
        setup_penalty_tons = len(self.entries) * self.setup_penalty
        produced_items = {}
        total_output = 0.0
        for sp in self.entries.values():
            tons = sp.tons
            total_output += tons * sp.pattern.yield_percentage / 100
            for cut in sp.pattern.cuts:
                produced_items[cut.width] = produced_items.get(cut.width, 0.0) + sp.coils * cut.count * cut.weight_per_cut

        return DailyPlan(
            day=self.day,
            patterns=list(self.entries.values()),
            total_tons=self.total_tons,
            daily_yield=total_output / self.total_tons * 100 if self.total_tons > 0 else 0.0,
            produced_items=produced_items,
            setup_penalty_tons=setup_penalty_tons,
            capacity=self.capacity,
            capacity_used_percent=(self.total_tons + setup_penalty_tons) / self.capacity * 100 if self.capacity > 0 else 0.0,
            forced=self.forced,
        )
