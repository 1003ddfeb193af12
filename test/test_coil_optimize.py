import random
import unittest
from unittest.mock import patch

from optimize.coil_optimize import (
    CoilOptimize, solve_group, check_fulfillment, demand_bounds, strip_weight, to_int, SCALE,
)
from optimize.models import (
    DemandLine, SolveError, SolveResult, demands_to_frame,
    INFEASIBLE, EMPTY_PATTERN_POOL, INVALID_CONFIG,
)
from schedule_fixtures import make_pattern


def demand(width, tons, code='C1'):
    return DemandLine(width=width, target_tons=tons, coil_code=code)


class TestPatternGeneration(unittest.TestCase):
    def setUp(self):
        self.demands = [demand(304.8, 55), demand(152.4, 24), demand(228.6, 16), demand(175, 12)]

    def test_patterns_fit_width_and_knives(self):
        optimizer = CoilOptimize(demands_to_frame(self.demands), parent_width=1213, edge_trim=10,
                                 parent_weight=11, max_cuts=6, rng=random.Random(3))
        vectors = optimizer.generate_patterns()

        self.assertTrue(len(vectors) > 0)
        usable = to_int(1213) - to_int(10)
        for counts in vectors:
            used = sum(c * w for c, w in zip(counts, optimizer.width_ints))
            self.assertLessEqual(used, usable)
            self.assertLessEqual(sum(counts), 6)
            self.assertTrue(any(counts))

    def test_patterns_are_unique(self):
        optimizer = CoilOptimize(demands_to_frame(self.demands), parent_width=1213, edge_trim=10,
                                 parent_weight=11, rng=random.Random(5))
        vectors = optimizer.generate_patterns()
        self.assertEqual(len(vectors), len({tuple(v) for v in vectors}))

    def test_same_width_lines_are_aggregated(self):
        lines = [demand(600, 20), demand(600, 30), demand(400, 0)]
        optimizer = CoilOptimize(demands_to_frame(lines), parent_width=1200)
        self.assertEqual(optimizer.demands, {600.0: 50.0})

    def test_fixed_point_exact_fit(self):
        # 3 x 403.33 = 1209.99 fits a 1210 coil, 3 x 403.34 does not
        optimizer = CoilOptimize(demands_to_frame([demand(403.33, 10)]), parent_width=1210, max_cuts=4,
                                 rng=random.Random(1))
        optimizer._generate_single_width_patterns()
        self.assertEqual(optimizer.count_vectors, [[3]])

        optimizer = CoilOptimize(demands_to_frame([demand(403.34, 10)]), parent_width=1210, max_cuts=4,
                                 rng=random.Random(1))
        optimizer._generate_single_width_patterns()
        self.assertEqual(optimizer.count_vectors, [[2]])

    def test_scale(self):
        self.assertEqual(SCALE, 100)
        self.assertEqual(to_int(152.4), 15240)


class TestSolveGroup(unittest.TestCase):
    def test_single_width_full_coil(self):
        result = solve_group([demand(600, 50)], parent_width=1200, edge_trim=0, parent_weight=10,
                             max_cuts=4, tolerance_min=0, tolerance_max=0, rng=random.Random(1))

        self.assertIsInstance(result, SolveResult)
        self.assertEqual(len(result.patterns), 1)
        pattern = result.patterns[0]
        self.assertEqual([(c.width, c.count) for c in pattern.cuts], [(600.0, 2)])
        self.assertAlmostEqual(pattern.yield_percentage, 100.0)
        self.assertAlmostEqual(pattern.assigned_coils, 5.0, places=4)
        self.assertAlmostEqual(result.fulfillment[600.0], 50.0, places=4)
        self.assertEqual(result.unmet_demands, [])

    def test_combined_pattern_preferred(self):
        result = solve_group([demand(500, 30), demand(700, 30)], parent_width=1200, edge_trim=0,
                             parent_weight=12, max_cuts=4, tolerance_min=10, tolerance_max=10,
                             rng=random.Random(2))

        self.assertIsInstance(result, SolveResult)
        top = result.patterns[0]
        self.assertEqual(sorted((c.width, c.count) for c in top.cuts), [(500.0, 1), (700.0, 1)])
        self.assertAlmostEqual(top.yield_percentage, 100.0)
        self.assertGreater(result.global_yield, 95.0)

    def test_fulfillment_inside_tolerance(self):
        lines = [demand(304.8, 55), demand(152.4, 24), demand(228.6, 16)]
        result = solve_group(lines, parent_width=1213, edge_trim=10, parent_weight=11, max_cuts=16,
                             tolerance_min=10, tolerance_max=10, rng=random.Random(11))

        self.assertIsInstance(result, SolveResult)
        for width, target in result.targets.items():
            lower, upper = demand_bounds(target, 10, 10)
            self.assertGreaterEqual(result.fulfillment[width], lower - 1e-4)
            self.assertLessEqual(result.fulfillment[width], upper + 1e-4)
        self.assertEqual(result.unmet_demands, [])

    def test_reduction_stays_within_extra_waste(self):
        lines = [demand(304.8, 55), demand(152.4, 24), demand(228.6, 16), demand(175, 12)]
        result = solve_group(lines, parent_width=1213, edge_trim=10, parent_weight=11, max_cuts=16,
                             tolerance_min=10, tolerance_max=10, rng=random.Random(4))

        self.assertIsInstance(result, SolveResult)
        self.assertGreaterEqual(result.total_coils_used, result.baseline_coils - 1e-6)
        self.assertLessEqual(result.total_coils_used, result.baseline_coils * 1.02 + 1e-6)

    def test_reduction_never_adds_patterns(self):
        lines = [demand(304.8, 55), demand(152.4, 24), demand(228.6, 16), demand(175, 12)]
        original = CoilOptimize._reduce_patterns
        with patch.object(CoilOptimize, '_reduce_patterns', autospec=True, side_effect=original) as reducer:
            result = solve_group(lines, parent_width=1213, edge_trim=10, parent_weight=11, max_cuts=16,
                                 tolerance_min=10, tolerance_max=10, rng=random.Random(4),
                                 extra_waste_tolerance=0.5)

        reducer.assert_called_once()
        active_before = reducer.call_args[0][1]
        self.assertIsInstance(result, SolveResult)
        self.assertLessEqual(len(result.patterns), len(active_before))
        self.assertLessEqual(result.total_coils_used, result.baseline_coils * 1.5 + 1e-6)


class TestPatternReduction(unittest.TestCase):
    """500 mm and 300 mm strips from a 1000 mm / 10 t coil: 2x500 and 3x300 beat the mixed 500+300."""

    def setUp(self):
        self.optimizer = CoilOptimize(demands_to_frame([demand(500, 50), demand(300, 30)]), parent_width=1000,
                                      parent_weight=10, tolerance_min=10, tolerance_max=10)
        self.pool = [
            make_pattern(1, [(500, 2)], coils=0, parent_width=1000),
            make_pattern(2, [(300, 3)], coils=0, parent_width=1000),
            make_pattern(3, [(500, 1), (300, 1)], coils=0, parent_width=1000),
        ]

    def test_baseline_uses_two_patterns(self):
        solution = self.optimizer._solve_master_problem(self.pool)
        self.assertEqual(sorted(solution['pattern_counts']), [1, 2])
        self.assertAlmostEqual(solution['total_coils'], 7.5, places=4)

    def test_removal_within_extra_waste(self):
        self.optimizer.extra_waste_tolerance = 0.5
        baseline_solution = self.optimizer._solve_master_problem(self.pool)

        pool, solution, baseline = self.optimizer._reduce_patterns(self.pool, baseline_solution)

        self.assertAlmostEqual(baseline, 7.5, places=4)
        self.assertEqual(list(solution['pattern_counts']), [3])
        self.assertLess(len(solution['pattern_counts']), len(baseline_solution['pattern_counts']))
        self.assertAlmostEqual(solution['total_coils'], 9.0, places=4)
        self.assertNotIn(2, [p.pattern_id for p in pool])

    def test_removal_rejected_beyond_extra_waste(self):
        baseline_solution = self.optimizer._solve_master_problem(self.pool)

        pool, solution, baseline = self.optimizer._reduce_patterns(self.pool, baseline_solution)

        self.assertEqual(len(pool), 3)
        self.assertEqual(sorted(solution['pattern_counts']), [1, 2])
        self.assertAlmostEqual(solution['total_coils'], baseline, places=6)

    def test_same_seed_same_plan(self):
        lines = [demand(304.8, 55), demand(152.4, 24), demand(228.6, 16)]
        kwargs = dict(parent_width=1213, edge_trim=10, parent_weight=11, max_cuts=16,
                      tolerance_min=10, tolerance_max=10)
        first = solve_group(lines, rng=random.Random(21), **kwargs)
        second = solve_group(lines, rng=random.Random(21), **kwargs)

        self.assertEqual([p.describe() for p in first.patterns], [p.describe() for p in second.patterns])
        self.assertEqual([round(p.assigned_coils, 6) for p in first.patterns],
                         [round(p.assigned_coils, 6) for p in second.patterns])

    def test_width_wider_than_coil(self):
        result = solve_group([demand(1300, 20)], parent_width=1210, edge_trim=10, parent_weight=11,
                             max_cuts=16, tolerance_min=10, tolerance_max=10, rng=random.Random(1))
        self.assertIsInstance(result, SolveError)
        self.assertEqual(result.code, EMPTY_PATTERN_POOL)

    def test_one_width_too_wide_is_infeasible(self):
        result = solve_group([demand(1300, 20), demand(500, 20)], parent_width=1210, edge_trim=10,
                             parent_weight=11, max_cuts=16, tolerance_min=10, tolerance_max=10,
                             rng=random.Random(1))
        self.assertIsInstance(result, SolveError)
        self.assertEqual(result.code, INFEASIBLE)
        self.assertIn('1300', result.message)

    def test_invalid_coil_setup(self):
        result = solve_group([demand(500, 20)], parent_width=1200, edge_trim=1200, parent_weight=11,
                             max_cuts=16, tolerance_min=10, tolerance_max=10)
        self.assertIsInstance(result, SolveError)
        self.assertEqual(result.code, INVALID_CONFIG)

    def test_no_demand(self):
        result = solve_group([], parent_width=1200, edge_trim=0, parent_weight=10, max_cuts=4,
                             tolerance_min=10, tolerance_max=10)
        self.assertIsInstance(result, SolveResult)
        self.assertEqual(result.patterns, [])
        self.assertEqual(result.total_coils_used, 0)

    def test_reporting_frames(self):
        result = solve_group([demand(600, 50), demand(400, 20)], parent_width=1200, edge_trim=0,
                             parent_weight=10, max_cuts=6, tolerance_min=10, tolerance_max=10,
                             rng=random.Random(8))
        df = result.fulfillment_summary
        self.assertEqual(list(df['width']), [600.0, 400.0])
        self.assertEqual(len(result.pattern_result), len(result.patterns))


class TestToleranceBand(unittest.TestCase):
    def test_band_edges(self):
        self.assertIsNone(check_fulfillment(600, 10, 9.0, 10, 10))
        self.assertIsNone(check_fulfillment(600, 10, 11.0, 10, 10))
        self.assertIsNotNone(check_fulfillment(600, 10, 8.9, 10, 10))
        self.assertIn('below minimum', check_fulfillment(600, 10, 8.9, 10, 10))
        self.assertIn('above maximum', check_fulfillment(600, 10, 11.2, 10, 10))

    def test_negligible_target_has_no_lower_bound(self):
        self.assertEqual(demand_bounds(0.3, 10, 10)[0], 0.0)
        self.assertIsNone(check_fulfillment(600, 0.3, 0.0, 10, 10))

    def test_strip_weight(self):
        self.assertAlmostEqual(strip_weight(605, 1210, 11), 5.5)
        self.assertEqual(strip_weight(605, 0, 11), 0.0)


if __name__ == '__main__':
    unittest.main()
