from pathlib import Path
import pytest
import yaml


ROOT = Path(__file__).parent.parent

DEPARTMENT_COL = "department"
ACTIVITY_COLS = [
    "Last activity date of Copilot.cloud.microsoft (UTC)",
    "Last activity date of Microsoft 365 Copilot (app) (UTC)",
]


def pytest_addoption(parser):
    parser.addoption(
        "--config-path",
        default=str(ROOT / "config.yaml"),
        help="Path to the report config.yaml to validate",
    )


@pytest.fixture(scope="session")
def config_path(request):
    return Path(request.config.getoption("--config-path")).resolve()


@pytest.fixture(scope="session")
def report_config(config_path):
    with open(config_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


@pytest.fixture
def columns():
    return {"department": DEPARTMENT_COL, "activity": list(ACTIVITY_COLS)}


@pytest.fixture
def input_dir(tmp_path):
    path = tmp_path / "msFiles"
    path.mkdir()
    return path


@pytest.fixture
def write_extract(input_dir):
    """Write a copilot_users_<date>.csv extract from (department, activity1, activity2) rows."""

    def _write(date_code, rows, header=None, name=None):
        header = header or [DEPARTMENT_COL, *ACTIVITY_COLS]
        path = input_dir / (name or f"copilot_users_{date_code}.csv")
        lines = [",".join(f'"{h}"' for h in header)]
        for row in rows:
            lines.append(",".join(f'"{v}"' for v in row))
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write


@pytest.fixture
def run_config(tmp_path, input_dir):
    config = {
        "report": {"name": "Test Department Analysis"},
        "paths": {
            "input_dir": input_dir.name,
            "output_dir": "result",
            "output_file": "department_analysis.xlsx",
        },
        "columns": {"department": DEPARTMENT_COL, "activity": list(ACTIVITY_COLS)},
    }
    path = tmp_path / "config.yaml"
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(config, f)
    return path
