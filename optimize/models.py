from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

import pandas as pd

"""
[models.py]
Plain data records shared by the slitting optimizer and the production calendar.
Demand lines come from the ingestion layer, patterns and solve results from
CoilOptimize, daily plans from the schedulers.
"""

DEFAULT_COIL_CODE = 'DEFAULT'

# Failure codes carried by SolveError
INFEASIBLE = 'Infeasible'
EMPTY_PATTERN_POOL = 'EmptyPatternPool'
SCHEDULING_OVERFLOW = 'SchedulingOverflow'
INVALID_CONFIG = 'InvalidConfig'


@dataclass(frozen=True)
class DemandLine:
    width: float
    target_tons: float
    due_date: Optional[date] = None
    coil_code: str = DEFAULT_COIL_CODE
    coil_description: str = ''
    planned_consumption: Optional[float] = None
    reserved_stock: Optional[float] = None
    line_id: str = ''

    @property
    def group_code(self):
        return self.coil_code or DEFAULT_COIL_CODE


def demands_to_frame(demands):
    """Demand lines as a DataFrame (one row per line)."""
    columns = ['line_id', 'coil_code', 'coil_description', 'width', 'target_tons',
               'planned_consumption', 'reserved_stock', 'due_date']
    rows = [{
        'line_id': d.line_id,
        'coil_code': d.group_code,
        'coil_description': d.coil_description,
        'width': float(d.width),
        'target_tons': float(d.target_tons),
        'planned_consumption': d.planned_consumption,
        'reserved_stock': d.reserved_stock,
        'due_date': d.due_date,
    } for d in demands]
    return pd.DataFrame(rows, columns=columns)


@dataclass(frozen=True)
class Cut:
    width: float
    count: int
    weight_per_cut: float


@dataclass
class Pattern:
    pattern_id: int
    cuts: List[Cut]
    used_width: float
    waste_width: float
    yield_percentage: float
    assigned_coils: float = 0.0
    total_production_weight: float = 0.0

    @property
    def cut_count(self):
        return sum(c.count for c in self.cuts)

    @property
    def weight_per_coil(self):
        if self.assigned_coils <= 0:
            return 0.0
        return self.total_production_weight / self.assigned_coils

    @property
    def output_weight(self):
        return self.total_production_weight * self.yield_percentage / 100

    def describe(self):
        return ' + '.join(f"{c.count}x{c.width:g}" for c in self.cuts)


@dataclass
class SolveResult:
    patterns: List[Pattern]
    fulfillment: Dict[float, float]
    targets: Dict[float, float]
    total_coils_used: float
    global_yield: float
    global_waste: float
    unmet_demands: List[str]
    parent_width: float
    parent_weight: float
    baseline_coils: float = 0.0

    @property
    def input_tons(self):
        return sum(p.total_production_weight for p in self.patterns)

    @property
    def output_tons(self):
        return sum(p.output_weight for p in self.patterns)

    @property
    def pattern_result(self):
        rows = [{
            'pattern_id': p.pattern_id,
            'pattern': p.describe(),
            'used_width': p.used_width,
            'waste_width': p.waste_width,
            'yield_pct': round(p.yield_percentage, 2),
            'coils': round(p.assigned_coils, 3),
            'production_tons': round(p.total_production_weight, 3),
        } for p in self.patterns]
        return pd.DataFrame(rows, columns=['pattern_id', 'pattern', 'used_width', 'waste_width',
                                           'yield_pct', 'coils', 'production_tons'])

    @property
    def fulfillment_summary(self):
        df_target = pd.DataFrame.from_dict(self.targets, orient='index', columns=['target_tons'])
        df_target.index.name = 'width'
        df_prod = pd.DataFrame.from_dict(self.fulfillment, orient='index', columns=['produced_tons'])
        df_prod.index.name = 'width'
        df_summary = df_target.join(df_prod).fillna(0.0)
        df_summary['over_under_tons'] = df_summary['produced_tons'] - df_summary['target_tons']
        return df_summary.reset_index().sort_values('width', ascending=False)


@dataclass(frozen=True)
class SolveError:
    code: str
    message: str
    group_code: Optional[str] = None


@dataclass
class CoilGroupConfig:
    coil_code: str
    description: str
    detected_width: float
    width_source: str
    total_demand: float = 0.0


@dataclass
class CoilSummary:
    coil_code: str
    description: str
    total_input_tons: float
    total_output_tons: float
    yield_pct: float
    waste_pct: float
    parent_width: float


@dataclass
class ScheduledPattern:
    pattern: Pattern
    coils: int
    coil_code: str
    coil_description: str = ''

    @property
    def tons(self):
        return self.coils * self.pattern.weight_per_coil


@dataclass
class DailyPlan:
    day: date
    patterns: List[ScheduledPattern]
    total_tons: float
    daily_yield: float
    produced_items: Dict[float, float]
    setup_penalty_tons: float
    capacity: float
    capacity_used_percent: float
    forced: bool = False


@dataclass
class Schedule:
    days: List[DailyPlan] = field(default_factory=list)
    unplaced_units: int = 0
    warnings: List[str] = field(default_factory=list)
    error: Optional[SolveError] = None

    def __iter__(self):
        return iter(self.days)

    def __len__(self):
        return len(self.days)

    @property
    def total_tons(self):
        return sum(d.total_tons for d in self.days)

    def to_frame(self):
        rows = []
        for d in self.days:
            for sp in d.patterns:
                rows.append({
                    'date': d.day,
                    'coil_code': sp.coil_code,
                    'pattern_id': sp.pattern.pattern_id,
                    'pattern': sp.pattern.describe(),
                    'coils': sp.coils,
                    'tons': round(sp.tons, 3),
                    'day_capacity_pct': round(d.capacity_used_percent, 1),
                })
        return pd.DataFrame(rows, columns=['date', 'coil_code', 'pattern_id', 'pattern', 'coils',
                                           'tons', 'day_capacity_pct'])


@dataclass
class BatchResult:
    results: Dict[str, SolveResult] = field(default_factory=dict)
    errors: Dict[str, SolveError] = field(default_factory=dict)
    summary: List[CoilSummary] = field(default_factory=list)
    groups: List[CoilGroupConfig] = field(default_factory=list)
    total_global_input: float = 0.0
    total_global_output: float = 0.0
    total_global_yield: float = 0.0
    schedule: Schedule = field(default_factory=Schedule)

    @property
    def total_patterns(self):
        return sum(len(r.patterns) for r in self.results.values())

    @property
    def summary_frame(self):
        return pd.DataFrame([vars(s) for s in self.summary],
                            columns=['coil_code', 'description', 'total_input_tons', 'total_output_tons',
                                     'yield_pct', 'waste_pct', 'parent_width'])
