import unittest
from datetime import date

from optimize.models import DemandLine
from line_schedule.alap_schedule import build_schedule_alap
from line_schedule.forward_schedule import build_schedule_forward
from line_schedule.lateness import compute_max_lateness, compute_date_compliance, align_forward_schedule
from schedule_fixtures import make_pattern, make_result, D1, D2


class TestLateness(unittest.TestCase):
    def setUp(self):
        self.results = {'A': make_result([make_pattern(1, [(600, 2)], coils=5)])}
        self.demands = [
            DemandLine(width=600, target_tons=20, due_date=D1, coil_code='A', planned_consumption=25,
                       reserved_stock=5),
            DemandLine(width=600, target_tons=30, due_date=D2, coil_code='A'),
        ]

    def test_alap_is_never_late(self):
        schedule = build_schedule_alap(self.results, self.demands, daily_capacity=20, setup_penalty=0)
        self.assertEqual(compute_max_lateness(schedule, self.demands), 0)

    def test_late_forward_start(self):
        schedule = build_schedule_forward(self.results, self.demands, daily_capacity=20, setup_penalty=0,
                                          anchor_date=date(2026, 3, 12))
        # first 600 strip on 03-12, wanted by 03-10
        self.assertEqual(compute_max_lateness(schedule, self.demands), 2)

    def test_empty_schedule(self):
        self.assertEqual(compute_max_lateness([], self.demands), 0)

    def test_other_group_is_ignored(self):
        schedule = build_schedule_forward(self.results, self.demands, daily_capacity=20, setup_penalty=0,
                                          anchor_date=date(2026, 3, 12))
        other = [DemandLine(width=600, target_tons=20, due_date=date(2026, 3, 1), coil_code='B')]
        self.assertEqual(compute_max_lateness(schedule, other), 0)

    def test_align_moves_anchor_back(self):
        schedule, anchor = align_forward_schedule(self.results, self.demands, daily_capacity=20, setup_penalty=0,
                                                  anchor_date=date(2026, 3, 12))
        self.assertEqual(anchor, date(2026, 3, 10))
        self.assertEqual(schedule.days[0].day, date(2026, 3, 10))
        self.assertEqual(compute_max_lateness(schedule, self.demands), 0)

    def test_align_keeps_anchor_on_time(self):
        _, anchor = align_forward_schedule(self.results, self.demands, daily_capacity=20, setup_penalty=0,
                                           anchor_date=date(2026, 3, 2))
        self.assertEqual(anchor, date(2026, 3, 2))


class TestDateCompliance(unittest.TestCase):
    def test_statuses(self):
        results = {'A': make_result([make_pattern(1, [(600, 2)], coils=5)])}
        demands = [
            DemandLine(width=600, target_tons=30, due_date=D2, coil_code='A'),
            DemandLine(width=600, target_tons=20, due_date=D1, coil_code='A', planned_consumption=25,
                       reserved_stock=5),
            DemandLine(width=600, target_tons=5, due_date=date(2026, 3, 9), coil_code='A'),
            DemandLine(width=600, target_tons=5, due_date=date(2026, 3, 30), coil_code='A'),
            DemandLine(width=450, target_tons=8, due_date=date(2026, 3, 20), coil_code='A'),
            DemandLine(width=600, target_tons=0, due_date=date(2026, 3, 20), coil_code='A'),
        ]
        schedule = build_schedule_alap(results, demands[:2], daily_capacity=20, setup_penalty=0)
        df = compute_date_compliance(schedule, demands)

        self.assertEqual(len(df), 5)
        self.assertEqual(list(df['demand_date']),
                         [date(2026, 3, 9), D1, D2, date(2026, 3, 20), date(2026, 3, 30)])
        self.assertEqual(list(df['status']), ['late', 'ontime', 'ontime', 'pending', 'early'])
        self.assertEqual(list(df['days_diff']), [-1, 2, 5, 0, 20])

        row = df.iloc[1]
        self.assertEqual(row['plan'], 25)
        self.assertEqual(row['stock'], 5)
        self.assertEqual(row['to_make'], 20)

    def test_no_demand(self):
        df = compute_date_compliance([], [])
        self.assertTrue(df.empty)
        self.assertIn('status', df.columns)


if __name__ == '__main__':
    unittest.main()
