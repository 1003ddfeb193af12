from dataclasses import dataclass, field
from datetime import date

"""
[solver_config.py]
Run parameters for the slitting optimizer and the production calendar.
Defaults follow the line's standard setup; execute.py overrides them from
conf/config.ini ([solver] and [schedule] sections) and command-line flags.
"""

DEFAULT_PARENT_WIDTH = 1210.0   # mm
DEFAULT_EDGE_TRIM = 10.0        # mm, both edges together
DEFAULT_PARENT_WEIGHT = 11.0    # tons per parent coil
DEFAULT_TOLERANCE = 10.0        # % under/over production
DEFAULT_MAX_CUTS = 16           # knives per pattern
DEFAULT_DAILY_CAPACITY = 300.0  # tons per day
DEFAULT_SETUP_PENALTY = 10.0    # tons lost per pattern change
DEFAULT_LEAD_BUFFER_DAYS = 2
DEFAULT_EXTRA_WASTE_TOLERANCE = 0.02
DEFAULT_BEST_OF_ATTEMPTS = 10
DEFAULT_YIELD_EPSILON = 0.001
SUNDAY = 6


@dataclass(frozen=True)
class SolverConfig:
    parent_width: float = DEFAULT_PARENT_WIDTH
    edge_trim: float = DEFAULT_EDGE_TRIM
    parent_weight: float = DEFAULT_PARENT_WEIGHT
    tolerance_min: float = DEFAULT_TOLERANCE
    tolerance_max: float = DEFAULT_TOLERANCE
    max_cuts: int = DEFAULT_MAX_CUTS
    extra_waste_tolerance: float = DEFAULT_EXTRA_WASTE_TOLERANCE
    daily_capacity: float = DEFAULT_DAILY_CAPACITY
    setup_penalty: float = DEFAULT_SETUP_PENALTY
    lead_buffer_days: int = DEFAULT_LEAD_BUFFER_DAYS
    schedule_start_date: date = field(default_factory=date.today)
    rest_weekdays: tuple = (SUNDAY,)
    rest_day_factor: float = 0.5
    best_of_attempts: int = DEFAULT_BEST_OF_ATTEMPTS
    yield_epsilon: float = DEFAULT_YIELD_EPSILON
    seed: int = None

    def validate(self):
        """Returns a list of configuration problems (empty when the config is usable)."""
        problems = []
        if self.parent_width <= 0:
            problems.append(f"parent_width must be positive (got {self.parent_width})")
        if self.edge_trim < 0:
            problems.append(f"edge_trim cannot be negative (got {self.edge_trim})")
        elif self.parent_width > 0 and self.edge_trim >= self.parent_width:
            problems.append(f"edge_trim {self.edge_trim} leaves no usable width on a {self.parent_width}mm coil")
        if self.parent_weight <= 0:
            problems.append(f"parent_weight must be positive (got {self.parent_weight})")
        if self.daily_capacity <= 0:
            problems.append(f"daily_capacity must be positive (got {self.daily_capacity})")
        if self.setup_penalty < 0:
            problems.append(f"setup_penalty cannot be negative (got {self.setup_penalty})")
        if self.tolerance_min < 0 or self.tolerance_max < 0:
            problems.append("tolerances cannot be negative")
        if self.max_cuts < 1:
            problems.append(f"max_cuts must be at least 1 (got {self.max_cuts})")
        return problems

    @classmethod
    def from_config(cls, config):
        """Builds a SolverConfig from a ConfigParser holding [solver] / [schedule] sections."""
        kwargs = {}
        if config.has_section('solver'):
            s = config['solver']
            for key in ('parent_width', 'edge_trim', 'parent_weight', 'tolerance_min', 'tolerance_max',
                        'extra_waste_tolerance', 'yield_epsilon'):
                if key in s:
                    kwargs[key] = s.getfloat(key)
            for key in ('max_cuts', 'best_of_attempts', 'seed'):
                if key in s:
                    kwargs[key] = s.getint(key)
        if config.has_section('schedule'):
            s = config['schedule']
            for key in ('daily_capacity', 'setup_penalty', 'rest_day_factor'):
                if key in s:
                    kwargs[key] = s.getfloat(key)
            if 'lead_buffer_days' in s:
                kwargs['lead_buffer_days'] = s.getint('lead_buffer_days')
            if s.get('start_date', '').strip():
                kwargs['schedule_start_date'] = date.fromisoformat(s['start_date'].strip())
            if 'rest_weekdays' in s:
                kwargs['rest_weekdays'] = tuple(int(v) for v in s['rest_weekdays'].split(',') if v.strip())
        return cls(**kwargs)
