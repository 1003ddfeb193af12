import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from optimize.coil_optimize import to_int
from optimize.models import Pattern

"""
[production_units.py]
Expansion of solved patterns into single parent-coil production units, and the
outstanding-demand tracker that gives every unit its target date.
"""

TRACKER_EPSILON = 0.001   # tons
COIL_ROUNDING = 1e-6
DEFAULT_LEAD_BUFFER_DAYS = 2


@dataclass
class ScheduledUnit:
    pattern: Pattern
    coil_code: str
    weight: float
    target_date: Optional[date] = None

    @property
    def pattern_key(self):
        return (self.coil_code, self.pattern.pattern_id)


class DemandTracker:
    """
    Outstanding demand per (coil group, width).

    Each key holds its demand entries sorted by target date (due date - lead buffer)
    and a head index. Units consume the queue front to back, so later units of the
    same pattern inherit later dates once the earlier entries are covered.
    """

    def __init__(self, demands, lead_buffer_days=DEFAULT_LEAD_BUFFER_DAYS):
        self.lead_buffer = timedelta(days=lead_buffer_days)
        self.queues = {}
        self.heads = {}
        for d in demands:
            if d.target_tons <= TRACKER_EPSILON or d.due_date is None:
                continue
            key = (d.group_code, to_int(d.width))
            self.queues.setdefault(key, []).append([d.due_date - self.lead_buffer, float(d.target_tons)])

        for key, entries in self.queues.items():
            entries.sort(key=lambda e: e[0])
            self.heads[key] = 0

    def _head(self, key):
        entries = self.queues[key]
        idx = self.heads[key]
        while idx < len(entries) and entries[idx][1] <= TRACKER_EPSILON:
            idx += 1
        self.heads[key] = idx
        return idx

    def peek(self, coil_code, width):
        key = (coil_code, to_int(width))
        if key not in self.queues:
            return None
        idx = self._head(key)
        entries = self.queues[key]
        return entries[idx][0] if idx < len(entries) else None

    def consume(self, coil_code, width, tons):
        key = (coil_code, to_int(width))
        if key not in self.queues:
            return
        entries = self.queues[key]
        idx = self._head(key)
        while tons > 0 and idx < len(entries):
            take = min(entries[idx][1], tons)
            entries[idx][1] -= take
            tons -= take
            if entries[idx][1] <= TRACKER_EPSILON:
                idx += 1
        self.heads[key] = idx

    def surplus_target(self, coil_code, pattern):
        """
        Target for a coil cut beyond the open demand of its widths: the latest target
        of each demanded width, earliest across the pattern. None when no width of the
        pattern was ever demanded (a pure stock pattern).
        """
        best = None
        for cut in pattern.cuts:
            entries = self.queues.get((coil_code, to_int(cut.width)))
            if entries and (best is None or entries[-1][0] < best):
                best = entries[-1][0]
        return best

    def assign(self, coil_code, pattern):
        """Target date for the next coil of this pattern, then deducts that coil's strips."""
        best = None
        for cut in pattern.cuts:
            target = self.peek(coil_code, cut.width)
            if target is not None and (best is None or target < best):
                best = target

        for cut in pattern.cuts:
            self.consume(coil_code, cut.width, cut.count * cut.weight_per_cut)

        return best


def coils_to_schedule(pattern):
    return math.ceil(pattern.assigned_coils - COIL_ROUNDING)


def expand_units(results_by_group, tracker):
    """One ScheduledUnit per parent coil (fractional LP usage rounded up). Stock units get no target date."""
    units = []
    for coil_code, result in results_by_group.items():
        for pattern in result.patterns:
            weight = pattern.weight_per_coil
            for _ in range(coils_to_schedule(pattern)):
                units.append(ScheduledUnit(
                    pattern=pattern,
                    coil_code=coil_code,
                    weight=weight,
                    target_date=tracker.assign(coil_code, pattern),
                ))
    return units
