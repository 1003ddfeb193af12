import logging
from datetime import timedelta

import pandas as pd

from optimize.coil_optimize import to_int
from line_schedule.forward_schedule import build_schedule_forward
from line_schedule.production_units import DEFAULT_LEAD_BUFFER_DAYS

"""
[lateness.py]
Due-date checks on a finished schedule: worst lateness against the target dates,
a per-line compliance table, and forward-anchor alignment.
"""

PENDING_EPSILON = 0.01   # tons; lines at or below this need no production
EARLY_THRESHOLD_DAYS = 5
MAX_ALIGN_ROUNDS = 5


def production_log(schedule):
    """(coil code, width) -> earliest production date in the schedule."""
    earliest = {}
    for day in schedule:
        for sp in day.patterns:
            for cut in sp.pattern.cuts:
                key = (sp.coil_code, to_int(cut.width))
                if key not in earliest or day.day < earliest[key]:
                    earliest[key] = day.day
    return earliest


def compute_max_lateness(schedule, demands, lead_buffer_days=DEFAULT_LEAD_BUFFER_DAYS):
    """
    Largest delay in days between the first production of a width and its target date
    (due date - lead buffer). Never negative: 0 when every line is on time or early,
    or when nothing relevant was produced.
    """
    earliest = production_log(schedule)
    buffer = timedelta(days=lead_buffer_days)
    max_lateness = 0
    for d in demands:
        if d.target_tons <= PENDING_EPSILON or d.due_date is None:
            continue
        produced_on = earliest.get((d.group_code, to_int(d.width)))
        if produced_on is None:
            continue
        diff = (produced_on - (d.due_date - buffer)).days
        max_lateness = max(max_lateness, diff)
    return max_lateness


def compute_date_compliance(schedule, demands):
    """
    One row per demand line still to manufacture: demand date against first production date.
    days_diff = demand date - production date; negative is late, above 5 days is early.
    Lines whose width never appears in the schedule are 'pending'.
    """
    earliest = production_log(schedule)
    rows = []
    for d in demands:
        if d.target_tons <= PENDING_EPSILON:
            continue
        produced_on = earliest.get((d.group_code, to_int(d.width)))
        row = {
            'coil_code': d.group_code,
            'width': d.width,
            'plan': d.planned_consumption or d.target_tons,
            'stock': d.reserved_stock or 0.0,
            'to_make': d.target_tons,
            'demand_date': d.due_date,
            'production_date': produced_on,
            'status': 'pending',
            'days_diff': 0,
        }
        if produced_on is not None and d.due_date is not None:
            diff = (d.due_date - produced_on).days
            status = 'ontime'
            if diff < 0:
                status = 'late'
            elif diff > EARLY_THRESHOLD_DAYS:
                status = 'early'
            row['status'] = status
            row['days_diff'] = diff
        rows.append(row)

    columns = ['coil_code', 'width', 'plan', 'stock', 'to_make', 'demand_date',
               'production_date', 'status', 'days_diff']
    df = pd.DataFrame(rows, columns=columns)
    if not df.empty:
        df['_sort'] = pd.to_datetime(df['demand_date'])
        df = df.sort_values('_sort', kind='stable', na_position='last').drop(columns='_sort').reset_index(drop=True)
    return df


def align_forward_schedule(results_by_group, demands, daily_capacity, setup_penalty, anchor_date,
                           lead_buffer_days=DEFAULT_LEAD_BUFFER_DAYS, max_rounds=MAX_ALIGN_ROUNDS, **kwargs):
    """
    Builds the forward schedule and, while it is late, moves the anchor back by the
    lateness and rebuilds. Returns (schedule, anchor actually used).
    """
    anchor = anchor_date
    schedule = build_schedule_forward(results_by_group, demands, daily_capacity, setup_penalty, anchor,
                                      lead_buffer_days=lead_buffer_days, **kwargs)
    for round_no in range(max_rounds):
        lateness = compute_max_lateness(schedule, demands, lead_buffer_days)
        if lateness <= 0:
            break
        anchor = anchor - timedelta(days=lateness)
        logging.info(f"[align_forward_schedule] round {round_no + 1}: {lateness} days late, anchor -> {anchor}")
        schedule = build_schedule_forward(results_by_group, demands, daily_capacity, setup_penalty, anchor,
                                          lead_buffer_days=lead_buffer_days, **kwargs)
    return schedule, anchor
