import logging
import random
import time

from ortools.linear_solver import pywraplp

from optimize.models import (
    Cut, Pattern, SolveResult, SolveError, demands_to_frame,
    INFEASIBLE, EMPTY_PATTERN_POOL, INVALID_CONFIG,
)

"""
[coil_optimize.py]
Core module of the coil slitting optimizer.
For one parent coil (fixed width and weight) and the strip widths required from it,
picks the cutting patterns and the number of parent coils per pattern so that every
width lands inside its tolerance band with the fewest coils, then trims the pattern
list so the line runs as few distinct setups as possible.
"""

SCALE = 100                      # fixed-point factor for widths (0.01 mm)
RANDOM_ITERATIONS = 5000
RANDOM_WASTE_LIMIT = 0.05        # share of usable width
DENSE_WASTE_LIMIT = 0.02
DENSE_MAX_PATTERNS = 2000
DENSE_MAX_ATTEMPTS = 500000
NEGLIGIBLE_TARGET = 0.5          # tons; below this only the upper bound applies
SOLUTION_EPSILON = 1e-5
ACTIVE_EPSILON = 1e-4
EXTRA_WASTE_TOLERANCE = 0.02     # extra coils accepted to drop one pattern
REDUCTION_MAX_ITERATIONS = 50
FULFILLMENT_EPSILON = 1e-3


def to_int(value):
    return int(round(float(value) * SCALE))


def to_float(value):
    return value / SCALE


def strip_weight(strip_width, parent_width, parent_weight):
    if parent_width == 0:
        return 0.0
    return strip_width / parent_width * parent_weight


def demand_bounds(target, tolerance_min, tolerance_max):
    upper = target * (1 + tolerance_max / 100)
    if target < NEGLIGIBLE_TARGET:
        return 0.0, upper
    return max(0.0, target * (1 - tolerance_min / 100)), upper


def check_fulfillment(width, target, produced, tolerance_min, tolerance_max):
    """Returns a warning when the produced tons fall outside the tolerance band, otherwise None."""
    lower, upper = demand_bounds(target, tolerance_min, tolerance_max)
    if produced < lower - FULFILLMENT_EPSILON:
        return f"Width {width:g}: {produced:.1f} / {target:.1f} T (below minimum {lower:.1f} T)"
    if produced > upper + FULFILLMENT_EPSILON:
        return f"Width {width:g}: {produced:.1f} / {target:.1f} T (above maximum {upper:.1f} T)"
    return None


class CoilOptimize:
    """
    [CoilOptimize]

    Slitting optimization for one coil group (all demand lines cut from the same parent coil).

    1.  **Initialization (__init__)**:
        -   Aggregates the demand lines per strip width (target tons summed) and converts
            every width to fixed-point integers so fit checks never drift at exact-fit boundaries.

    2.  **Pattern generation (generate_patterns)**:
        -   Single-width fill: the most strips of one width that fit, so a trivial plan always exists.
        -   Randomized greedy sampling: shuffled width order, random strip counts, kept only when
            the waste stays under 5% of the usable width.
        -   Dense recursive search: depth-first over widths (widest first), kept only when the
            waste stays under 2%. Bounded by an attempt counter and a result cap.

    3.  **Pattern selection (_solve_master_problem)**:
        -   One LP (GLOP): a variable per pattern (coils), a ranged row per width
            [target x (1 - tol_min), target x (1 + tol_max)], minimize total coils.

    4.  **Pattern reduction (_reduce_patterns)**:
        -   Drops the least-used pattern and re-solves while the LP stays feasible and the coil
            count stays within baseline x (1 + extra_waste_tolerance).

    5.  **Result (_format_results)**:
        -   Assigned coils, production weight, fulfillment per width, yield and unmet-demand warnings.
    """

    def __init__(self, df_demand, parent_width, edge_trim=0.0, parent_weight=1.0, max_cuts=16,
                 tolerance_min=10.0, tolerance_max=10.0, extra_waste_tolerance=EXTRA_WASTE_TOLERANCE,
                 rng=None, group_code=None):
        self.df_demand = df_demand
        self.parent_width = float(parent_width)
        self.edge_trim = float(edge_trim)
        self.parent_weight = float(parent_weight)
        self.max_cuts = int(max_cuts)
        self.tolerance_min = float(tolerance_min)
        self.tolerance_max = float(tolerance_max)
        self.extra_waste_tolerance = float(extra_waste_tolerance)
        self.rng = rng if rng is not None else random.Random()
        self.group_code = group_code

        self.parent_width_int = to_int(parent_width)
        self.edge_trim_int = to_int(edge_trim)
        self.usable_width_int = self.parent_width_int - self.edge_trim_int

        df_valid = df_demand[(df_demand['width'] > 0) & (df_demand['target_tons'] > 0)]
        aggregated = df_valid.groupby('width')['target_tons'].sum().to_dict()
        self.demands = {float(w): float(t) for w, t in aggregated.items()}
        self.widths = list(self.demands.keys())
        self.width_ints = [to_int(w) for w in self.widths]

        self.count_vectors = []
        self.pattern_keys = set()

    def _clear_patterns(self):
        self.count_vectors = []
        self.pattern_keys = set()

    def _add_pattern(self, counts):
        key = tuple(counts)
        if not any(key) or key in self.pattern_keys:
            return False
        self.count_vectors.append(list(key))
        self.pattern_keys.add(key)
        return True

    def _generate_single_width_patterns(self):
        for i, width_int in enumerate(self.width_ints):
            if width_int > self.usable_width_int:
                continue
            count = min(self.usable_width_int // width_int, self.max_cuts)
            if count > 0:
                counts = [0] * len(self.widths)
                counts[i] = count
                self._add_pattern(counts)

    def _generate_random_patterns(self, iterations=RANDOM_ITERATIONS):
        n = len(self.widths)
        waste_limit = self.usable_width_int * RANDOM_WASTE_LIMIT
        indices = list(range(n))

        for _ in range(iterations):
            counts = [0] * n
            remaining = self.usable_width_int
            current_cuts = 0
            self.rng.shuffle(indices)

            for idx in indices:
                if current_cuts >= self.max_cuts:
                    break
                width_int = self.width_ints[idx]
                if width_int > remaining:
                    continue
                max_count = min(remaining // width_int, self.max_cuts - current_cuts)
                if max_count > 0:
                    count = self.rng.randint(1, max_count)
                    counts[idx] += count
                    remaining -= count * width_int
                    current_cuts += count

            if remaining < waste_limit:
                self._add_pattern(counts)

    def _generate_dense_patterns(self):
        n = len(self.widths)
        order = sorted(range(n), key=lambda i: self.width_ints[i], reverse=True)
        sorted_widths = [self.width_ints[i] for i in order]
        usable = self.usable_width_int
        waste_limit = usable * DENSE_WASTE_LIMIT

        found = []
        counts = [0] * n
        attempts = 0

        def find_combinations_recursive(current_sum, start_index, depth):
            nonlocal attempts
            attempts += 1
            if len(found) >= DENSE_MAX_PATTERNS or attempts > DENSE_MAX_ATTEMPTS:
                return

            waste = usable - current_sum
            if waste < waste_limit:
                found.append(list(counts))

            if depth >= self.max_cuts or waste == 0:
                return

            for i in range(start_index, n):
                width_int = sorted_widths[i]
                if current_sum + width_int <= usable:
                    counts[i] += 1
                    find_combinations_recursive(current_sum + width_int, i, depth + 1)
                    counts[i] -= 1

        find_combinations_recursive(0, 0, 0)

        for dense_counts in found:
            original = [0] * n
            for sorted_idx, count in enumerate(dense_counts):
                original[order[sorted_idx]] = count
            self._add_pattern(original)

    def generate_patterns(self):
        self._clear_patterns()
        if not self.widths or self.usable_width_int <= 0:
            return self.count_vectors

        self._generate_single_width_patterns()
        single_count = len(self.count_vectors)
        self._generate_random_patterns()
        random_count = len(self.count_vectors) - single_count
        self._generate_dense_patterns()
        dense_count = len(self.count_vectors) - single_count - random_count

        logging.info(f"[{self.group_code}] Pattern pool: {len(self.count_vectors)} "
                     f"(single={single_count}, random={random_count}, dense={dense_count})")
        return self.count_vectors

    def _build_patterns(self):
        patterns = []
        for idx, counts in enumerate(self.count_vectors):
            cuts = []
            used_width_int = 0
            for i, count in enumerate(counts):
                if count > 0:
                    width = self.widths[i]
                    cuts.append(Cut(width=width, count=count,
                                    weight_per_cut=strip_weight(width, self.parent_width, self.parent_weight)))
                    used_width_int += count * self.width_ints[i]

            patterns.append(Pattern(
                pattern_id=idx + 1,
                cuts=sorted(cuts, key=lambda c: c.width, reverse=True),
                used_width=to_float(used_width_int),
                waste_width=to_float(self.usable_width_int - used_width_int + self.edge_trim_int),
                yield_percentage=to_float(used_width_int) / self.parent_width * 100,
            ))
        return patterns

    def _solve_master_problem(self, patterns):
        """
        Pattern-selection LP (GLOP).

        Variables: coils per pattern (continuous, >= 0), objective coefficient 1.
        Rows: one per width, bounded by its tolerance band; a pattern contributes
        count x weight-per-strip tons to each width it cuts.
        Returns None when the LP has no solution.
        """
        solver = pywraplp.Solver.CreateSolver('GLOP')
        if not solver:
            return None

        x = {p.pattern_id: solver.NumVar(0, solver.infinity(), f'P_{p.pattern_id}') for p in patterns}

        for width, target in self.demands.items():
            lower, upper = demand_bounds(target, self.tolerance_min, self.tolerance_max)
            constraint = solver.Constraint(lower, upper, f'width_{width:g}')
            for p in patterns:
                for cut in p.cuts:
                    if cut.width == width:
                        constraint.SetCoefficient(x[p.pattern_id], cut.count * cut.weight_per_cut)

        solver.Minimize(solver.Sum(list(x.values())))

        status = solver.Solve()
        if status not in (pywraplp.Solver.OPTIMAL, pywraplp.Solver.FEASIBLE):
            return None

        pattern_counts = {}
        for pattern_id, var in x.items():
            value = var.solution_value()
            if value > SOLUTION_EPSILON:
                pattern_counts[pattern_id] = value

        return {
            'pattern_counts': pattern_counts,
            'total_coils': sum(pattern_counts.values()),
        }

    def _reduce_patterns(self, patterns, solution):
        """
        Greedy pattern-count reduction.

        Removes the least-used active pattern and re-solves on the remaining pool. A removal
        is kept only if the LP stays feasible and total coils stay within
        baseline x (1 + extra_waste_tolerance); the first rejected removal ends the descent.
        """
        baseline = solution['total_coils']
        max_coils_allowed = baseline * (1 + self.extra_waste_tolerance)

        active_pool = list(patterns)
        current = solution

        for _ in range(REDUCTION_MAX_ITERATIONS):
            counts = current['pattern_counts']
            used_patterns = [p for p in active_pool if counts.get(p.pattern_id, 0) > ACTIVE_EPSILON]
            if len(used_patterns) <= 1:
                break

            candidate = min(used_patterns, key=lambda p: counts[p.pattern_id])
            test_pool = [p for p in active_pool if p.pattern_id != candidate.pattern_id]

            test_solution = self._solve_master_problem(test_pool)
            if test_solution is None or test_solution['total_coils'] > max_coils_allowed:
                break

            active_pool = test_pool
            current = test_solution

        return active_pool, current, baseline

    def run_optimize(self):
        logging.info(f"[{self.group_code}] Starting run_optimize with {len(self.widths)} widths, "
                     f"parent {self.parent_width:g}mm / usable {to_float(self.usable_width_int):g}mm")
        start_time = time.time()

        if not self.demands:
            return self._format_results([], {'pattern_counts': {}, 'total_coils': 0.0}, 0.0)

        self.generate_patterns()
        if not self.count_vectors:
            return SolveError(EMPTY_PATTERN_POOL,
                              f"No width fits the usable width {to_float(self.usable_width_int):g}mm",
                              self.group_code)

        patterns = self._build_patterns()
        initial_solution = self._solve_master_problem(patterns)
        if initial_solution is None:
            too_wide = [w for w, wi in zip(self.widths, self.width_ints)
                        if wi > self.usable_width_int and self.demands[w] >= NEGLIGIBLE_TARGET]
            message = "No pattern combination satisfies the tolerance bounds"
            if too_wide:
                message += f" (widths wider than the usable width: {', '.join(f'{w:g}' for w in too_wide)})"
            return SolveError(INFEASIBLE, message, self.group_code)

        active = [p for p in patterns if initial_solution['pattern_counts'].get(p.pattern_id, 0) > ACTIVE_EPSILON]
        reduced_pool, solution, baseline = self._reduce_patterns(active, initial_solution)

        logging.info(f"[{self.group_code}] LP baseline {baseline:.2f} coils / {len(active)} patterns -> "
                     f"{solution['total_coils']:.2f} coils / {len(solution['pattern_counts'])} patterns "
                     f"({time.time() - start_time:.2f}s)")

        return self._format_results(reduced_pool, solution, baseline)

    def _format_results(self, patterns, solution, baseline):
        final_patterns = []
        fulfillment = {width: 0.0 for width in self.demands}

        for p in patterns:
            coils = solution['pattern_counts'].get(p.pattern_id, 0.0)
            if coils <= ACTIVE_EPSILON:
                continue
            p.assigned_coils = coils
            p.total_production_weight = coils * self.parent_weight
            for cut in p.cuts:
                fulfillment[cut.width] += coils * cut.count * cut.weight_per_cut
            final_patterns.append(p)

        final_patterns.sort(key=lambda p: p.assigned_coils, reverse=True)

        total_coils = sum(p.assigned_coils for p in final_patterns)
        total_input = total_coils * self.parent_weight
        total_output = sum(p.output_weight for p in final_patterns)
        global_yield = total_output / total_input * 100 if total_input > 0 else 0.0

        unmet_demands = []
        for width, target in self.demands.items():
            warning = check_fulfillment(width, target, fulfillment[width], self.tolerance_min, self.tolerance_max)
            if warning:
                unmet_demands.append(warning)

        return SolveResult(
            patterns=final_patterns,
            fulfillment=fulfillment,
            targets=dict(self.demands),
            total_coils_used=total_coils,
            global_yield=global_yield,
            global_waste=100 - global_yield if total_input > 0 else 0.0,
            unmet_demands=unmet_demands,
            parent_width=self.parent_width,
            parent_weight=self.parent_weight,
            baseline_coils=baseline,
        )


def solve_group(demands, parent_width, edge_trim, parent_weight, max_cuts, tolerance_min, tolerance_max,
                rng=None, extra_waste_tolerance=EXTRA_WASTE_TOLERANCE, group_code=None):
    """Solves one coil group. Returns a SolveResult, or a SolveError for invalid input or no solution."""
    if parent_width <= 0 or parent_weight <= 0 or edge_trim < 0 or edge_trim >= parent_width or max_cuts < 1:
        return SolveError(INVALID_CONFIG,
                          f"Invalid coil setup: width={parent_width}, trim={edge_trim}, "
                          f"weight={parent_weight}, max_cuts={max_cuts}",
                          group_code)

    optimizer = CoilOptimize(
        df_demand=demands_to_frame(demands),
        parent_width=parent_width,
        edge_trim=edge_trim,
        parent_weight=parent_weight,
        max_cuts=max_cuts,
        tolerance_min=tolerance_min,
        tolerance_max=tolerance_max,
        extra_waste_tolerance=extra_waste_tolerance,
        rng=rng,
        group_code=group_code,
    )
    return optimizer.run_optimize()
