import csv
from datetime import date
from pathlib import Path

from optimize.models import DemandLine, DEFAULT_COIL_CODE

# project root (parent of the db directory)
PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_DEMANDS_CSV_PATH = PROJECT_ROOT / 'csv' / 'demands.csv'
DEFAULT_MATERIAL_MASTER_CSV_PATH = PROJECT_ROOT / 'csv' / 'material_master.csv'


def _optional_float(value):
    if value is None or str(value).strip() == '':
        return None
    return float(value)


def _optional_date(value):
    if value is None or str(value).strip() == '':
        return None
    return date.fromisoformat(str(value).strip()[:10])


def row_to_demand(row):
    """Demand CSV row -> DemandLine. target_tons falls back to plan - reserved stock."""
    planned = _optional_float(row.get('planned_consumption'))
    reserved = _optional_float(row.get('reserved_stock'))
    target = _optional_float(row.get('target_tons'))
    if target is None:
        target = max(0.0, (planned or 0.0) - (reserved or 0.0))
    return DemandLine(
        width=float(row['width']),
        target_tons=target,
        due_date=_optional_date(row.get('due_date')),
        coil_code=(row.get('coil_code') or '').strip() or DEFAULT_COIL_CODE,
        coil_description=(row.get('coil_description') or '').strip(),
        planned_consumption=planned,
        reserved_stock=reserved,
        line_id=(row.get('line_id') or '').strip(),
    )


class CsvGetters:
    def get_demands_csv(self, file_path=DEFAULT_DEMANDS_CSV_PATH):
        demands = []
        try:
            with open(file_path, mode='r', encoding='utf-8-sig') as infile:
                reader = csv.DictReader(infile)
                for row in reader:
                    if not (row.get('width') or '').strip():
                        continue
                    demands.append(row_to_demand(row))
            print(f"Successfully fetched {len(demands)} demand lines from {file_path}")
            return demands
        except FileNotFoundError:
            print(f"Error: The file {file_path} was not found.")
            return None
        except (KeyError, ValueError) as e:
            print(f"An error occurred while reading the CSV file {file_path}: {e}")
            return None

    def get_material_master_csv(self, file_path=DEFAULT_MATERIAL_MASTER_CSV_PATH):
        records = []
        try:
            with open(file_path, mode='r', encoding='utf-8-sig') as infile:
                reader = csv.DictReader(infile)
                for row in reader:
                    records.append({
                        'code': row['code'].strip(),
                        'description': row.get('description', '').strip(),
                        'width': float(row['width']),
                        'rate': float(row.get('rate') or 0),
                    })
            print(f"Successfully fetched {len(records)} material master rows from {file_path}")
            return records
        except FileNotFoundError:
            print(f"Error: The file {file_path} was not found.")
            return None
        except (KeyError, ValueError) as e:
            print(f"An error occurred while reading the CSV file {file_path}: {e}")
            return None
