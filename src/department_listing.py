"""
Department Activity Report CLI

Classifies the departments of active Copilot users across dated CSV extracts
(copilot_users_YYYYMMDD.csv) into fixed business categories and writes a
two-sheet Excel report: category counts per extract date, and the distinct
departments seen under each category.

Usage:
    python src/department_listing.py
    python src/department_listing.py --config config.yaml
"""

import sys
import re
import time
import argparse
import yaml
import pandas as pd
from pathlib import Path
from dataclasses import dataclass
from datetime import date, timedelta
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE


class ConfigError(Exception):
    pass


class AggregationError(Exception):
    pass


CATEGORIES = (
    'Content',
    'Customer Service',
    'Human Resources',
    'Finance',
    'payTV',
    'Marketing',
    'Communication & Sustainability',
    'Astro Audio',
    'Uncategorized',
)

UNCATEGORIZED = 'Uncategorized'

# First match wins, so order is significant.
CATEGORY_RULES = [
    (category, re.compile(pattern, re.IGNORECASE))
    for category, pattern in [
        ('Content', r'content|programming|editorial|broadcast|production|creative|media|post|studio|shaw|vod|tutor tv|magazine|video|visual|design|copywriting|rojak|thinker'),
        ('Customer Service', r'customer|call centre|ccc|service recovery|sales support|customer experience|relationship'),
        ('Human Resources', r'hr|employee|payroll|talent|learning|industrial relations|legal&hr|legal division|employee engagement'),
        ('Finance', r'finance|cfo|ap & ar|tax|reporting|treasury|corporate finance|account|admin'),
        ('payTV', r'paytv|pay tv|astro ria|astro prima|astro warna|njoy|sooka'),
        ('Marketing', r'marketing|promo|digital marketing|base marketing|product marketing|social media|retention|winback|liaison|trade'),
        ('Communication & Sustainability', r'communication|regulatory|corporate affairs|stakeholder|govt|strategy|sustainability|esg|public'),
        ('Astro Audio', r'audio|radio|gegar|ceria|amp|astro audio'),
    ]
]

FILE_PATTERN = re.compile(r'^copilot_users_(\d{8})\.csv$')

MONTH_NAMES = (
    'January', 'February', 'March', 'April', 'May', 'June',
    'July', 'August', 'September', 'October', 'November', 'December',
)

ORDINAL_SUFFIXES = {1: 'st', 2: 'nd', 3: 'rd'}

COUNTS_SHEET = 'Category Counts'
DEPARTMENTS_SHEET = 'Department List'

READ_CHUNKSIZE = 10_000


def load_config(config_path: str) -> dict:
    config_path = Path(config_path).resolve()
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        config = yaml.safe_load(f) or {}

    base_dir = config_path.parent

    required_sections = ['report', 'paths', 'columns']
    for section in required_sections:
        if section not in config:
            raise ConfigError(f"Missing required config section: '{section}'")

    required_paths = ['input_dir', 'output_dir', 'output_file']
    for key in required_paths:
        if key not in config['paths']:
            raise ConfigError(f"Missing required path: 'paths.{key}'")

    required_columns = ['department', 'activity']
    for key in required_columns:
        if key not in config['columns']:
            raise ConfigError(f"Missing required column mapping: 'columns.{key}'")

    activity = config['columns']['activity']
    if isinstance(activity, str):
        activity = [activity]
    if not activity:
        raise ConfigError("'columns.activity' must name at least one column")
    config['columns']['activity'] = list(activity)

    config['report'] = config['report'] or {}
    config['report']['name'] = str(config['report'].get('name') or 'Department Activity Report')

    resolved = {
        'input_dir': (base_dir / config['paths']['input_dir']).resolve(),
        'output_dir': (base_dir / config['paths']['output_dir']).resolve(),
        'output_file': config['paths']['output_file'],
    }
    config['_resolved_paths'] = resolved

    if not resolved['input_dir'].is_dir():
        raise ConfigError(f"Input directory not found: {resolved['input_dir']} (from paths.input_dir)")

    return config


def classify(department: str) -> str:
    if not department:
        return UNCATEGORIZED
    lower = department.lower()
    for category, pattern in CATEGORY_RULES:
        if pattern.search(lower):
            return category
    return UNCATEGORIZED


def format_date_label(code: str) -> str:
    """Render a YYYYMMDD date code as e.g. '1st August'.

    Only days 1, 2 and 3 take st/nd/rd; every other day takes 'th'.
    Month and day overflow roll over, as a calendar date would.
    """
    year = int(code[0:4])
    month = int(code[4:6])
    day = int(code[6:8])

    suffix = ORDINAL_SUFFIXES.get(day, 'th')
    carry, month_index = divmod(month - 1, 12)
    resolved = date(year + carry, month_index + 1, 1) + timedelta(days=day - 1)
    return f"{day}{suffix} {MONTH_NAMES[resolved.month - 1]}"


@dataclass(frozen=True)
class DepartmentRecord:
    department: str
    activity_present: bool
    date_code: str


class DepartmentAggregator:
    """Accumulates per-date category counts and the departments seen per category.

    One instance per run. Ingest every file, then seal() before reading the
    results; a sealed aggregator rejects further input.
    """

    def __init__(self):
        self.date_counts: dict[str, dict[str, int]] = {}
        self.departments: dict[str, set[str]] = {cat: set() for cat in CATEGORIES}
        self.sealed = False

    def ingest(self, date_code: str, records) -> dict[str, int]:
        if self.sealed:
            raise AggregationError(f"Cannot ingest {date_code}: aggregator is sealed")

        file_counts = dict.fromkeys(CATEGORIES, 0)
        for record in records:
            department = (record.department or '').strip()
            if not record.activity_present or not department:
                continue
            category = classify(department)
            self.departments[category].add(department)
            file_counts[category] += 1

        if date_code in self.date_counts:
            print(f"  WARNING: date {date_code} already ingested; replacing its counts", file=sys.stderr)
        self.date_counts[date_code] = file_counts
        return file_counts

    def seal(self):
        self.sealed = True

    def totals(self) -> dict[str, int]:
        totals = dict.fromkeys(CATEGORIES, 0)
        for counts in self.date_counts.values():
            for category, count in counts.items():
                totals[category] += count
        return totals


def build_category_count_table(date_counts: dict[str, dict[str, int]], date_order=None) -> list[list]:
    if date_order is None:
        date_order = sorted(date_counts)
    rows = [['Category', *[format_date_label(d) for d in date_order]]]
    for category in CATEGORIES:
        row = [category]
        for d in date_order:
            row.append(date_counts.get(d, {}).get(category, 0))
        rows.append(row)
    return rows


def build_department_list_table(index: dict[str, set[str]]) -> list[list]:
    rows = [['Category', 'Department']]
    for category in CATEGORIES:
        for department in sorted(index.get(category, ())):
            rows.append([category, department])
    return rows


def build_report_tables(aggregator: DepartmentAggregator) -> dict[str, list[list]]:
    return {
        COUNTS_SHEET: build_category_count_table(aggregator.date_counts),
        DEPARTMENTS_SHEET: build_department_list_table(aggregator.departments),
    }


def discover_input_files(input_dir: Path) -> list[tuple[str, Path]]:
    found = []
    for path in sorted(Path(input_dir).iterdir()):
        match = FILE_PATTERN.match(path.name)
        if match and path.is_file():
            found.append((match.group(1), path))
    return found


def read_department_records(path: Path, date_code: str, columns: dict, chunksize: int = READ_CHUNKSIZE):
    dept_col = columns['department']
    activity_cols = list(columns['activity'])
    wanted = list(dict.fromkeys([dept_col, *activity_cols]))

    with pd.read_csv(path, dtype=str, keep_default_na=False, chunksize=chunksize) as reader:
        for chunk in reader:
            chunk = chunk.reindex(columns=wanted, fill_value='').fillna('')
            department = chunk[dept_col].astype(str).str.strip()
            activity_present = (
                chunk[activity_cols].astype(str)
                .apply(lambda col: col.str.strip())
                .ne('')
                .any(axis=1)
            )
            for dept, active in zip(department, activity_present):
                yield DepartmentRecord(dept, bool(active), date_code)


def _cell_text(value):
    if isinstance(value, str):
        return ILLEGAL_CHARACTERS_RE.sub('', value)
    return value


def write_report(output_xlsx: Path, tables: dict[str, list[list]]):
    """Write each table as a sheet, replacing output_xlsx only if every sheet succeeds.

    Control characters openpyxl cannot store are dropped, and every string
    cell is written as text so values like '=1+1' never become formulas.
    """
    output_xlsx = Path(output_xlsx)
    partial_xlsx = output_xlsx.with_name(f".{output_xlsx.stem}.partial.xlsx")
    try:
        with pd.ExcelWriter(partial_xlsx, engine='openpyxl') as writer:
            for sheet_name, rows in tables.items():
                clean = [[_cell_text(v) for v in row] for row in rows]
                pd.DataFrame(clean[1:], columns=clean[0]).to_excel(writer, sheet_name=sheet_name, index=False)
                for row in writer.sheets[sheet_name].iter_rows():
                    for cell in row:
                        if cell.data_type == 'f':
                            cell.data_type = 's'
        partial_xlsx.replace(output_xlsx)
    except Exception:
        partial_xlsx.unlink(missing_ok=True)
        raise


def main(config: dict):
    paths = config['_resolved_paths']
    cols = config['columns']
    report_name = config['report']['name']

    paths['output_dir'].mkdir(parents=True, exist_ok=True)
    output_xlsx = paths['output_dir'] / paths['output_file']

    t_start = time.perf_counter()

    print("=" * 70)
    print(report_name.upper())
    print("=" * 70)

    files = discover_input_files(paths['input_dir'])
    if not files:
        print(f"\nNo matching CSV files found in {paths['input_dir']}")
        return None

    print(f"\nProcessing {len(files)} extract(s)...")
    aggregator = DepartmentAggregator()
    for date_code, path in files:
        print(f"  Processing {path.name}")
        counts = aggregator.ingest(date_code, read_department_records(path, date_code, cols))
        print(f"    Active users: {sum(counts.values()):,}")
    aggregator.seal()

    tables = build_report_tables(aggregator)
    print(f"\nWriting report ({len(aggregator.date_counts)} dates, "
          f"{len(tables[DEPARTMENTS_SHEET]) - 1:,} departments)...")
    write_report(output_xlsx, tables)

    t_end = time.perf_counter()

    totals = aggregator.totals()
    grand_total = sum(totals.values())
    print(f"\n{'='*70}")
    print("REPORT COMPLETE")
    print(f"{'='*70}")
    print(f"Active users (all dates): {grand_total:,}")
    print(f"\nCategories:")
    for category in CATEGORIES:
        count = totals[category]
        share = count / grand_total * 100 if grand_total else 0.0
        print(f"  {category:32s} {count:>8,} ({share:.1f}%)  "
              f"{len(aggregator.departments[category]):>4} depts")
    print(f"\nTiming: total {t_end - t_start:.1f}s")
    print(f"Excel file written to: {output_xlsx}")
    return output_xlsx


def cli():
    sys.stdout.reconfigure(encoding='utf-8')

    parser = argparse.ArgumentParser(
        description='Department Activity Report: categorize Copilot users by department across dated extracts'
    )
    parser.add_argument('--config', default='config.yaml', help='Path to report config YAML (default: ./config.yaml)')
    args = parser.parse_args()

    try:
        config = load_config(args.config)
        main(config)
    except (ConfigError, OSError, ValueError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        print(f"ERROR: {e}")
        sys.exit(1)


if __name__ == "__main__":
    cli()
