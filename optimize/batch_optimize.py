import logging
import random
import re
import time

from optimize.coil_optimize import solve_group
from optimize.models import (
    BatchResult, CoilGroupConfig, CoilSummary, Schedule, SolveError, INVALID_CONFIG,
)
from line_schedule.alap_schedule import build_schedule_alap
from line_schedule.forward_schedule import build_schedule_forward

"""
[batch_optimize.py]
Runs the slitting optimizer over a whole demand list: one solve per coil group
(demand lines sharing a parent coil code), each with its own parent width, then the
batch totals and, on request, the production calendar.
"""

WIDTH_IN_DESCRIPTION = re.compile(r'\b(\d{3,4})\s*MM\b')
MIN_DESCRIPTION_WIDTH = 600
MAX_DESCRIPTION_WIDTH = 2500
BLAC_NOMINAL_WIDTH = 1200
BLAC_REAL_WIDTH = 1210
BATCH_ERROR_KEY = '*'
GENERIC_COIL_DESCRIPTION = 'Generic coil'

SCHEDULE_ALAP = 'alap'
SCHEDULE_FORWARD = 'forward'


def extract_width_from_description(description):
    """
    Parent width read from a material description such as 'BLAC A-36 1.8MM X 1200MM'.
    Takes the largest 3-4 digit 'MM' value strictly between 600 and 2500 (thickness
    values like '1.8MM' never match). BLAC coils sold as 1200 are really 1210 wide.
    """
    if not description:
        return None
    desc_upper = description.upper()
    widths = [int(m) for m in WIDTH_IN_DESCRIPTION.findall(desc_upper)]
    widths = [w for w in widths if MIN_DESCRIPTION_WIDTH < w < MAX_DESCRIPTION_WIDTH]
    if not widths:
        return None
    width = max(widths)
    if width == BLAC_NOMINAL_WIDTH and 'BLAC' in desc_upper:
        return float(BLAC_REAL_WIDTH)
    return float(width)


def resolve_parent_width(coil_code, description, material_master=None, width_overrides=None,
                         default_width=None):
    """Returns (width, source): override -> material master -> description -> default."""
    if width_overrides and width_overrides.get(coil_code):
        return float(width_overrides[coil_code]), 'override'
    if material_master is not None:
        width = material_master.width_for(coil_code)
        if width:
            return float(width), 'master'
    width = extract_width_from_description(description)
    if width:
        return width, 'description'
    return default_width, 'default'


def group_demands(all_demands):
    grouped = {}
    for d in all_demands:
        grouped.setdefault(d.group_code, []).append(d)
    return grouped


def prepare_coil_groups(all_demands, material_master=None, width_overrides=None, default_width=None):
    """One CoilGroupConfig per coil code, largest total demand first."""
    groups = {}
    for d in all_demands:
        code = d.group_code
        if code not in groups:
            description = d.coil_description
            if not description and material_master is not None and code in material_master:
                description = material_master.get(code).description
            width, source = resolve_parent_width(code, description, material_master, width_overrides, default_width)
            groups[code] = CoilGroupConfig(
                coil_code=code,
                description=description or GENERIC_COIL_DESCRIPTION,
                detected_width=width,
                width_source=source,
            )
        groups[code].total_demand += d.target_tons

    return sorted(groups.values(), key=lambda g: g.total_demand, reverse=True)


def _solve_one_group(group, demands, config, rng):
    logging.info(f"\n--- Coil group {group.coil_code} ({group.description}): "
                 f"parent {group.detected_width:g}mm [{group.width_source}], {group.total_demand:.1f} T ---")
    result = solve_group(
        demands,
        parent_width=group.detected_width,
        edge_trim=config.edge_trim,
        parent_weight=config.parent_weight,
        max_cuts=config.max_cuts,
        tolerance_min=config.tolerance_min,
        tolerance_max=config.tolerance_max,
        rng=rng,
        extra_waste_tolerance=config.extra_waste_tolerance,
        group_code=group.coil_code,
    )
    if isinstance(result, SolveError):
        logging.error(f"[error] Coil group {group.coil_code} failed ({result.code}): {result.message}")
        return result

    for warning in result.unmet_demands:
        logging.warning(f"[{group.coil_code}] {warning}")
    logging.info(f"--- Coil group {group.coil_code} solved: {len(result.patterns)} patterns, "
                 f"{result.total_coils_used:.2f} coils, yield {result.global_yield:.2f}% ---")
    return result


def _summarize(group, result):
    input_tons = result.input_tons
    output_tons = result.output_tons
    yield_pct = output_tons / input_tons * 100 if input_tons > 0 else 0.0
    return CoilSummary(
        coil_code=group.coil_code,
        description=group.description,
        total_input_tons=input_tons,
        total_output_tons=output_tons,
        yield_pct=yield_pct,
        waste_pct=100 - yield_pct if input_tons > 0 else 0.0,
        parent_width=result.parent_width,
    )


def _recompute_totals(batch):
    batch.summary.sort(key=lambda s: s.total_input_tons, reverse=True)
    batch.total_global_input = sum(s.total_input_tons for s in batch.summary)
    batch.total_global_output = sum(s.total_output_tons for s in batch.summary)
    if batch.total_global_input > 0:
        batch.total_global_yield = batch.total_global_output / batch.total_global_input * 100
    else:
        batch.total_global_yield = 0.0


def build_batch_schedule(batch, all_demands, config, mode=SCHEDULE_FORWARD):
    descriptions = {g.coil_code: g.description for g in batch.groups}
    common = dict(
        lead_buffer_days=config.lead_buffer_days,
        rest_weekdays=config.rest_weekdays,
        rest_day_factor=config.rest_day_factor,
        descriptions=descriptions,
    )
    if mode == SCHEDULE_ALAP:
        return build_schedule_alap(batch.results, all_demands, config.daily_capacity, config.setup_penalty,
                                   **common)
    return build_schedule_forward(batch.results, all_demands, config.daily_capacity, config.setup_penalty,
                                  config.schedule_start_date, **common)


def solve_batch(all_demands, config, width_overrides=None, generate_schedule=False, material_master=None,
                rng=None, schedule_mode=SCHEDULE_FORWARD):
    """
    Solves every coil group in the demand list.

    A configuration problem rejects the whole batch before any solve (error under '*').
    A group that fails is recorded in BatchResult.errors and the other groups go on.
    """
    batch = BatchResult()
    problems = config.validate()
    if problems:
        batch.errors[BATCH_ERROR_KEY] = SolveError(INVALID_CONFIG, '; '.join(problems))
        logging.error(f"[error] Invalid solver configuration: {'; '.join(problems)}")
        return batch

    if rng is None:
        rng = random.Random(config.seed)

    batch.groups = prepare_coil_groups(all_demands, material_master, width_overrides, config.parent_width)
    grouped = group_demands(all_demands)

    for group in batch.groups:
        result = _solve_one_group(group, grouped[group.coil_code], config, rng)
        if isinstance(result, SolveError):
            batch.errors[group.coil_code] = result
            continue
        batch.results[group.coil_code] = result
        batch.summary.append(_summarize(group, result))

    _recompute_totals(batch)
    logging.info(f"Batch: {len(batch.results)} groups solved, {len(batch.errors)} failed, "
                 f"input {batch.total_global_input:.1f} T, yield {batch.total_global_yield:.2f}%")

    if generate_schedule:
        batch.schedule = build_batch_schedule(batch, all_demands, config, schedule_mode)
    return batch


def _is_better_batch(current, best, epsilon):
    # failed groups add nothing to the yield, so coverage is compared first
    if len(current.errors) != len(best.errors):
        return len(current.errors) < len(best.errors)
    if current.total_global_yield > best.total_global_yield + epsilon:
        return True
    return abs(current.total_global_yield - best.total_global_yield) <= epsilon \
        and current.total_patterns < best.total_patterns


def solve_batch_best_of(all_demands, config, width_overrides=None, attempts=None, generate_schedule=False,
                        material_master=None, rng=None, schedule_mode=SCHEDULE_FORWARD):
    """
    Repeats the randomized batch solve and keeps the best run: fewer failed groups wins,
    then higher global yield (beyond config.yield_epsilon), then fewer total patterns.
    All attempts draw from one seeded generator, so a fixed seed reproduces the pick.
    """
    if attempts is None:
        attempts = config.best_of_attempts
    if rng is None:
        rng = random.Random(config.seed)
    epsilon = config.yield_epsilon

    best = None
    start_time = time.time()
    for attempt in range(max(1, attempts)):
        current = solve_batch(all_demands, config, width_overrides, generate_schedule=False,
                              material_master=material_master, rng=rng)
        if BATCH_ERROR_KEY in current.errors:
            return current

        if best is None or _is_better_batch(current, best, epsilon):
            best = current
        logging.info(f"[best-of] attempt {attempt + 1}/{attempts}: {len(current.errors)} failed groups, "
                     f"yield {current.total_global_yield:.3f}%, {current.total_patterns} patterns "
                     f"(best {best.total_global_yield:.3f}%)")

    logging.info(f"[best-of] {attempts} attempts in {time.time() - start_time:.2f}s")
    if generate_schedule:
        best.schedule = build_batch_schedule(best, all_demands, config, schedule_mode)
    return best


def reoptimize_group(batch, all_demands, coil_code, config, parent_width=None, material_master=None, rng=None):
    """
    Re-solves one coil group in place (optionally on a new parent width), then refreshes
    its summary line and the global totals. The batch schedule is cleared because it no
    longer matches the patterns.
    """
    grouped = group_demands(all_demands)
    if coil_code not in grouped:
        logging.error(f"[error] Coil group {coil_code} has no demand lines")
        return batch

    if rng is None:
        rng = random.Random(config.seed)

    overrides = {coil_code: parent_width} if parent_width else None
    group = prepare_coil_groups(grouped[coil_code], material_master, overrides, config.parent_width)[0]

    batch.groups = [g for g in batch.groups if g.coil_code != coil_code] + [group]
    batch.groups.sort(key=lambda g: g.total_demand, reverse=True)
    batch.summary = [s for s in batch.summary if s.coil_code != coil_code]
    batch.results.pop(coil_code, None)
    batch.errors.pop(coil_code, None)

    result = _solve_one_group(group, grouped[coil_code], config, rng)
    if isinstance(result, SolveError):
        batch.errors[coil_code] = result
    else:
        batch.results[coil_code] = result
        batch.summary.append(_summarize(group, result))

    _recompute_totals(batch)
    batch.schedule = Schedule()
    return batch
