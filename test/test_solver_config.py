import configparser
import unittest
from datetime import date

from optimize.material_master import MaterialMaster, MaterialEntry
from optimize.solver_config import SolverConfig


class TestSolverConfig(unittest.TestCase):
    def test_defaults_are_valid(self):
        config = SolverConfig()
        self.assertEqual(config.validate(), [])
        self.assertEqual(config.rest_weekdays, (6,))

    def test_from_config(self):
        parser = configparser.ConfigParser()
        parser.read_string("""
[solver]
parent_width = 1257
edge_trim = 12
max_cuts = 8
seed = 42

[schedule]
daily_capacity = 250
setup_penalty = 5
start_date = 2026-03-02
rest_weekdays = 5,6
""")
        config = SolverConfig.from_config(parser)

        self.assertEqual(config.parent_width, 1257)
        self.assertEqual(config.edge_trim, 12)
        self.assertEqual(config.max_cuts, 8)
        self.assertEqual(config.seed, 42)
        self.assertEqual(config.daily_capacity, 250)
        self.assertEqual(config.schedule_start_date, date(2026, 3, 2))
        self.assertEqual(config.rest_weekdays, (5, 6))
        self.assertEqual(config.parent_weight, 11)

    def test_blank_start_date_keeps_today(self):
        parser = configparser.ConfigParser()
        parser.read_string("[schedule]\nstart_date =\n")
        self.assertEqual(SolverConfig.from_config(parser).schedule_start_date, date.today())

    def test_validate(self):
        problems = SolverConfig(parent_width=1200, edge_trim=1200, parent_weight=-1, max_cuts=0).validate()
        self.assertEqual(len(problems), 3)
        self.assertTrue(any('edge_trim' in p for p in problems))


class TestMaterialMaster(unittest.TestCase):
    def test_lookup(self):
        master = MaterialMaster.from_records([
            {'code': ' 100436 ', 'description': 'BLAC A-36 1.8MM X 1200MM', 'width': '1213', 'rate': '14.5'},
            {'code': '103260', 'description': None, 'width': 1257, 'rate': None},
        ])
        self.assertEqual(len(master), 2)
        self.assertEqual(master.width_for('100436'), 1213)
        self.assertIn('103260', master)
        self.assertEqual(master.get('103260').description, '')
        self.assertIsNone(master.width_for('999999'))
        self.assertIsNone(master.get(None))

    def test_snapshot_is_read_only(self):
        entries = [MaterialEntry('100436', 'BLAC', 1213)]
        master = MaterialMaster(entries)
        entries.append(MaterialEntry('100437', 'BLAC', 1213))

        self.assertEqual(len(master), 1)
        self.assertNotIn('100437', master)
        with self.assertRaises(TypeError):
            master._entries['100437'] = entries[1]


if __name__ == '__main__':
    unittest.main()
