import threading

from csv_upload import UploadStatus, run_bulk_upload


def course_records(count: int) -> list[dict[str, str]]:
    return [
        {"course_name": f"Course {i}", "university_name": "Uni", "location": "UK", "degree_type": "Bachelor"}
        for i in range(1, count + 1)
    ]


def test_run_bulk_upload_inserts_in_input_order() -> None:
    inserted: list[str] = []

    status = run_bulk_upload(course_records(3), lambda record: inserted.append(record["course_name"]))

    assert inserted == ["Course 1", "Course 2", "Course 3"]
    assert status == UploadStatus(total=3, processed=3, success=3, failed=0)


def test_run_bulk_upload_counts_failures_and_continues() -> None:
    def insert(record: dict[str, str]) -> None:
        if record["course_name"] == "Course 2":
            raise RuntimeError("duplicate key")

    status = run_bulk_upload(course_records(4), insert)

    assert status.success == 3
    assert status.failed == 1
    assert status.processed == status.total == 4


def test_run_bulk_upload_reports_monotonic_progress() -> None:
    snapshots: list[UploadStatus] = []

    def insert(record: dict[str, str]) -> None:
        if record["course_name"].endswith("1"):
            raise ValueError("bad row")

    run_bulk_upload(course_records(3), insert, on_progress=snapshots.append)

    assert [s.processed for s in snapshots] == [1, 2, 3]
    assert snapshots[0].failed == 1 and snapshots[0].success == 0
    assert snapshots[-1].fraction == 1.0
    for snapshot in snapshots:
        assert snapshot.success + snapshot.failed == snapshot.processed
    # Snapshots are copies, not the live counter.
    assert len({id(s) for s in snapshots}) == 3


def test_run_bulk_upload_calls_on_complete_even_when_everything_fails() -> None:
    calls: list[str] = []

    def insert(_: dict[str, str]) -> None:
        raise ConnectionError("store unavailable")

    status = run_bulk_upload(course_records(2), insert, on_complete=lambda: calls.append("refresh"))

    assert calls == ["refresh"]
    assert status.failed == 2
    assert status.success == 0


def test_run_bulk_upload_empty_batch() -> None:
    calls: list[str] = []

    status = run_bulk_upload([], lambda _: None, on_complete=lambda: calls.append("done"))

    assert status == UploadStatus()
    assert status.fraction == 0.0
    assert calls == ["done"]


def test_run_bulk_upload_with_worker_pool_keeps_accounting() -> None:
    lock = threading.Lock()
    seen: list[str] = []
    snapshots: list[UploadStatus] = []

    def insert(record: dict[str, str]) -> None:
        with lock:
            seen.append(record["course_name"])
        if int(record["course_name"].split()[-1]) % 5 == 0:
            raise RuntimeError("rejected")

    status = run_bulk_upload(course_records(20), insert, on_progress=snapshots.append, max_workers=4)

    assert sorted(seen) == sorted(r["course_name"] for r in course_records(20))
    assert status.total == status.processed == 20
    assert status.failed == 4
    assert status.success == 16
    assert [s.processed for s in snapshots] == list(range(1, 21))


def test_upload_status_as_dict() -> None:
    status = UploadStatus(total=5, processed=4, success=3, failed=1)
    assert status.as_dict() == {"total": 5, "processed": 4, "success": 3, "failed": 1}
    assert status.fraction == 0.8
