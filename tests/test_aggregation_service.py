import threading
from pathlib import Path

import pytest

from csv_aggregator.core.exceptions import CapacityError
from csv_aggregator.models.job import JobState
from csv_aggregator.services import aggregation_service as aggregation_module
from csv_aggregator.services.aggregation_service import AggregationService
from csv_aggregator.services.csv_parser import ParsedRecord
from csv_aggregator.services.job_service import JobRegistry

from conftest import EXAMPLE_ROWS

WAIT = 10


class RecordingRegistry(JobRegistry):
    def __init__(self):
        super().__init__()
        self.progress = []

    def update_progress(self, job_id, records_accepted):
        self.progress.append(records_accepted)
        super().update_progress(job_id, records_accepted)


def _gated_parser(gate: threading.Event, count: int = 5):
    """Stand-in for iter_records that holds its worker until ``gate`` is set."""

    def fake_iter_records(stream, encoding="utf-8"):
        gate.wait(WAIT)
        for _ in range(count):
            yield ParsedRecord("Sales", "2024-01-01", "1")

    return fake_iter_records


@pytest.fixture()
def make_service(tmp_path):
    services = []

    def _make(**kwargs):
        kwargs.setdefault("upload_dir", tmp_path / "uploads")
        kwargs.setdefault("result_dir", tmp_path / "results")
        kwargs.setdefault("registry", JobRegistry())
        svc = AggregationService(**kwargs)
        services.append(svc)
        return svc

    yield _make
    for svc in services:
        svc.shutdown(wait=True)


def test_example_file_is_aggregated(service, write_csv):
    path = write_csv("sales.csv", EXAMPLE_ROWS)

    job_id = service.submit(path)
    job = service.wait(job_id, timeout=WAIT)

    assert job.status == JobState.COMPLETED
    assert job.category_count == 2
    assert job.records_accepted == 3
    assert job.processing_time >= 0
    assert job.download_url == f"/download/result_{job_id}.csv"
    assert job.error is None

    result = service.result_location(f"result_{job_id}.csv")
    assert result.read_text(encoding="utf-8") == (
        "Department Name,Total Number of Sales\n"
        "Marketing,75\n"
        "Sales,350\n"
    )


def test_input_is_removed_after_success(service, write_csv):
    path = write_csv("sales.csv", EXAMPLE_ROWS)

    service.wait(service.submit(path), timeout=WAIT)

    assert not path.exists()


def test_header_only_file_completes_empty(service, write_csv):
    path = write_csv("empty.csv", [])

    job_id = service.submit(path)
    job = service.wait(job_id, timeout=WAIT)

    assert job.status == JobState.COMPLETED
    assert job.category_count == 0
    assert job.records_accepted == 0
    result = service.result_location(f"result_{job_id}.csv")
    assert result.read_text(encoding="utf-8") == "Department Name,Total Number of Sales\n"


@pytest.mark.parametrize("bad_row", ["IT,2023-01-17", "IT,2023-01-17,5,extra"])
def test_wrong_field_count_fails_whole_job(service, write_csv, bad_row):
    path = write_csv("bad.csv", EXAMPLE_ROWS + [bad_row] + EXAMPLE_ROWS)

    job_id = service.submit(path)
    job = service.wait(job_id, timeout=WAIT)

    assert job.status == JobState.FAILED
    assert "wrong number of fields" in job.error
    assert job.records_accepted == 0
    assert job.download_url is None
    assert not service.result_location(f"result_{job_id}.csv").exists()
    assert path.exists()


def test_non_numeric_counts_are_dropped(service, write_csv):
    path = write_csv("mixed.csv", EXAMPLE_ROWS + ["Sales,2023-01-17,lots", "HR,2023-01-17,"])

    job_id = service.submit(path)
    job = service.wait(job_id, timeout=WAIT)

    assert job.status == JobState.COMPLETED
    assert job.records_accepted == 3
    assert job.category_count == 2


def test_missing_file_fails_with_access_error(service, tmp_path):
    job_id = service.submit(tmp_path / "does-not-exist.csv")
    job = service.wait(job_id, timeout=WAIT)

    assert job.status == JobState.FAILED
    assert job.error.startswith("Failed to open file")


def test_empty_file_fails_on_header(service, write_csv):
    path = write_csv("blank.csv", [], header=None)

    job = service.wait(service.submit(path), timeout=WAIT)

    assert job.status == JobState.FAILED
    assert job.error == "Failed to read header: EOF"


def test_unknown_job_is_not_found(service, write_csv):
    service.wait(service.submit(write_csv("sales.csv", EXAMPLE_ROWS)), timeout=WAIT)

    assert service.query("never-issued") is None


def test_concurrent_submits_get_distinct_ids(service, write_csv):
    path = write_csv("shared.csv", EXAMPLE_ROWS)
    ids = []

    threads = [threading.Thread(target=lambda: ids.append(service.submit(path))) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(set(ids)) == 2
    for job_id in ids:
        assert service.wait(job_id, timeout=WAIT).status.is_terminal


def test_progress_is_checkpointed_every_batch(make_service, write_csv):
    registry = RecordingRegistry()
    svc = make_service(registry=registry, batch_size=3)
    path = write_csv("ten.csv", [f"Sales,2024-01-01,{i}" for i in range(10)])

    job = svc.wait(svc.submit(path), timeout=WAIT)

    assert registry.progress == [3, 6, 9]
    assert job.records_accepted == 10
    assert job.status == JobState.COMPLETED


def test_progress_is_visible_while_processing(make_service, write_csv):
    gate = threading.Event()
    checkpointed = threading.Event()

    class SignallingRegistry(JobRegistry):
        def update_progress(self, job_id, records_accepted):
            super().update_progress(job_id, records_accepted)
            checkpointed.set()
            gate.wait(WAIT)

    svc = make_service(registry=SignallingRegistry(), batch_size=2)
    path = write_csv("four.csv", ["Sales,2024-01-01,1"] * 4)

    job_id = svc.submit(path)
    assert checkpointed.wait(WAIT)

    job = svc.query(job_id)
    assert job.status == JobState.PROCESSING
    assert job.records_accepted == 2

    gate.set()
    assert svc.wait(job_id, timeout=WAIT).records_accepted == 4


def test_failed_input_is_kept_by_default(service, write_csv):
    path = write_csv("bad.csv", ["too,few"])

    service.wait(service.submit(path), timeout=WAIT)

    assert path.exists()


def test_always_cleanup_removes_failed_input(make_service, write_csv):
    svc = make_service(input_cleanup="always")
    path = write_csv("bad.csv", ["too,few"])

    job = svc.wait(svc.submit(path), timeout=WAIT)

    assert job.status == JobState.FAILED
    assert not path.exists()


def test_never_cleanup_keeps_successful_input(make_service, write_csv):
    svc = make_service(input_cleanup="never")
    path = write_csv("sales.csv", EXAMPLE_ROWS)

    job = svc.wait(svc.submit(path), timeout=WAIT)

    assert job.status == JobState.COMPLETED
    assert path.exists()


def test_submit_rejects_when_pool_is_full(make_service, write_csv, monkeypatch):
    gate = threading.Event()
    monkeypatch.setattr(aggregation_module, "iter_records", _gated_parser(gate))
    svc = make_service(max_workers=1, max_queued_jobs=0, input_cleanup="never")
    path = write_csv("sales.csv", EXAMPLE_ROWS)

    first = svc.submit(path)
    with pytest.raises(CapacityError):
        svc.submit(path)

    gate.set()
    assert svc.wait(first, timeout=WAIT).status == JobState.COMPLETED

    second = svc.submit(path)
    assert svc.wait(second, timeout=WAIT).status == JobState.COMPLETED


def test_rejected_submission_creates_no_job(make_service, write_csv, monkeypatch):
    gate = threading.Event()
    monkeypatch.setattr(aggregation_module, "iter_records", _gated_parser(gate))
    registry = JobRegistry()
    svc = make_service(registry=registry, max_workers=1, max_queued_jobs=0)
    path = write_csv("sales.csv", EXAMPLE_ROWS)

    svc.submit(path)
    with pytest.raises(CapacityError):
        svc.submit(path)

    assert len(registry) == 1
    gate.set()


def test_blocking_submit_times_out_when_full(make_service, write_csv, monkeypatch):
    gate = threading.Event()
    monkeypatch.setattr(aggregation_module, "iter_records", _gated_parser(gate))
    svc = make_service(max_workers=1, max_queued_jobs=0, block_when_full=True, submit_timeout_seconds=0.1)
    path = write_csv("sales.csv", EXAMPLE_ROWS)

    svc.submit(path)
    with pytest.raises(CapacityError):
        svc.submit(path)

    gate.set()


def test_queued_jobs_wait_for_a_worker(make_service, write_csv, monkeypatch):
    gate = threading.Event()
    monkeypatch.setattr(aggregation_module, "iter_records", _gated_parser(gate))
    svc = make_service(max_workers=1, max_queued_jobs=2, input_cleanup="never")
    path = write_csv("sales.csv", EXAMPLE_ROWS)

    ids = [svc.submit(path) for _ in range(3)]
    assert all(svc.query(job_id).status == JobState.PROCESSING for job_id in ids)

    gate.set()
    assert all(svc.wait(job_id, timeout=WAIT).status == JobState.COMPLETED for job_id in ids)


def test_cancel_running_job(make_service, write_csv, monkeypatch):
    gate = threading.Event()
    monkeypatch.setattr(aggregation_module, "iter_records", _gated_parser(gate))
    svc = make_service(batch_size=1)
    path = write_csv("sales.csv", EXAMPLE_ROWS)

    job_id = svc.submit(path)
    assert svc.cancel(job_id) is True
    gate.set()

    job = svc.wait(job_id, timeout=WAIT)
    assert job.status == JobState.FAILED
    assert job.error == "Job cancelled"
    assert path.exists()


def test_cancel_finished_or_unknown_job(service, write_csv):
    job_id = service.submit(write_csv("sales.csv", EXAMPLE_ROWS))
    service.wait(job_id, timeout=WAIT)

    assert service.cancel(job_id) is False
    assert service.cancel("never-issued") is False


def test_result_location_joins_result_dir(service, settings):
    assert service.result_location("result_x.csv") == Path(settings.result_dir) / "result_x.csv"


def test_submit_after_shutdown_fails(make_service, write_csv):
    registry = JobRegistry()
    svc = make_service(registry=registry)
    svc.shutdown(wait=True)

    with pytest.raises(RuntimeError):
        svc.submit(write_csv("sales.csv", EXAMPLE_ROWS))

    assert len(registry) == 1
    assert registry.get_active_jobs_count() == 0


def test_creates_directories(tmp_path):
    svc = AggregationService(JobRegistry(), tmp_path / "up", tmp_path / "res")
    svc.shutdown()

    assert (tmp_path / "up").is_dir()
    assert (tmp_path / "res").is_dir()


@pytest.mark.parametrize("kwargs", [{"max_workers": 0}, {"max_queued_jobs": -1}, {"input_cleanup": "sometimes"}])
def test_rejects_invalid_configuration(tmp_path, kwargs):
    with pytest.raises(ValueError):
        AggregationService(JobRegistry(), tmp_path / "up", tmp_path / "res", **kwargs)


def test_oversized_count_row_is_dropped(service, write_csv):
    path = write_csv("huge.csv", EXAMPLE_ROWS + ["Sales,2023-01-17," + "9" * 5000])

    job = service.wait(service.submit(path), timeout=WAIT)

    assert job.status == JobState.COMPLETED
    assert job.records_accepted == 3
    assert job.category_count == 2


def test_very_long_category_is_aggregated(service, write_csv):
    category = "X" * 200000
    path = write_csv("long.csv", EXAMPLE_ROWS + [f"{category},2023-01-17,1"])

    job_id = service.submit(path)
    job = service.wait(job_id, timeout=WAIT)

    assert job.status == JobState.COMPLETED
    assert job.records_accepted == 4
    assert job.category_count == 3
    result = service.result_location(f"result_{job_id}.csv").read_text(encoding="utf-8")
    assert f"{category},1\n" in result


def test_cancel_after_completion_is_reported_as_not_cancelled(make_service, write_csv):
    completed = threading.Event()
    release = threading.Event()

    class PausingRegistry(JobRegistry):
        def mark_completed(self, job_id, *args, **kwargs):
            super().mark_completed(job_id, *args, **kwargs)
            completed.set()
            release.wait(WAIT)

    svc = make_service(registry=PausingRegistry())
    job_id = svc.submit(write_csv("sales.csv", EXAMPLE_ROWS))
    assert completed.wait(WAIT)

    try:
        assert svc.cancel(job_id) is False
    finally:
        release.set()

    assert svc.wait(job_id, timeout=WAIT).status == JobState.COMPLETED
