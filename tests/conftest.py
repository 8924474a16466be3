from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from csv_aggregator.core.config import Settings
from csv_aggregator.main import create_app
from csv_aggregator.services.aggregation_service import AggregationService
from csv_aggregator.services.job_service import JobRegistry

HEADER = "Department Name,Date,Number of Sales"

EXAMPLE_ROWS = [
    "Sales,2023-01-15,150",
    "Marketing,2023-01-15,75",
    "Sales,2023-01-16,200",
]


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        upload_dir=str(tmp_path / "uploads"),
        result_dir=str(tmp_path / "results"),
        max_workers=2,
        max_queued_jobs=10,
        batch_size=1000,
    )


@pytest.fixture()
def registry() -> JobRegistry:
    return JobRegistry()


@pytest.fixture()
def service(settings, registry):
    svc = AggregationService.from_settings(settings, registry)
    yield svc
    svc.shutdown(wait=True)


@pytest.fixture()
def client(settings, service):
    app = create_app(settings, service)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def write_csv(tmp_path):
    """Write raw CSV lines (header included when given) and return the path."""

    def _write(filename: str, rows: list, header: str = HEADER) -> Path:
        path = tmp_path / "inputs" / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        lines = ([header] if header is not None else []) + list(rows)
        path.write_text("".join(f"{line}\n" for line in lines), encoding="utf-8")
        return path

    return _write
