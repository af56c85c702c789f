from __future__ import annotations

import csv
import logging
import re
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterable


logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 5 * 1024 * 1024

CsvRecord = dict[str, str]


class CsvUploadError(ValueError):
    pass


class UploadFileError(CsvUploadError):
    pass


class EmptyInputError(CsvUploadError):
    def __init__(self) -> None:
        super().__init__("CSV file must contain a header row and at least one data row")


class MissingColumnError(CsvUploadError):
    def __init__(self, column: str) -> None:
        self.column = column
        super().__init__(f"Missing required column: {column}")


class RowShapeError(CsvUploadError):
    def __init__(self, row: int, found: int, expected: int) -> None:
        self.row = row
        self.found = found
        self.expected = expected
        super().__init__(f"Row {row} has {found} columns but should have {expected}")


class MissingValueError(CsvUploadError):
    def __init__(self, column: str, row: int) -> None:
        self.column = column
        self.row = row
        super().__init__(f"Missing required value for {column} in row {row}")


@dataclass(frozen=True)
class UploadSchema:
    name: str
    required: tuple[str, ...]
    optional: tuple[str, ...] = ()
    defaults: dict[str, str] = field(default_factory=dict)

    @property
    def columns(self) -> tuple[str, ...]:
        return self.required + self.optional


COURSE_SCHEMA = UploadSchema(
    name="courses",
    required=("course_name", "university_name", "location"),
    optional=("tuition_fee", "duration", "degree_type", "description"),
    defaults={"degree_type": "Bachelor"},
)

AGENCY_SCHEMA = UploadSchema(
    name="agencies",
    required=("name", "location", "description", "contact_email"),
    optional=("trust_score", "price", "contact_phone", "website", "business_hours"),
    defaults={"trust_score": "0", "price": "0", "contact_phone": "", "website": "", "business_hours": ""},
)


def validate_upload_file(filename: str, size: int) -> None:
    if not (filename or "").lower().endswith(".csv"):
        raise UploadFileError("Please upload a CSV file")
    if size > MAX_UPLOAD_BYTES:
        raise UploadFileError("File size must be less than 5MB")


def _split_lines(content: str) -> list[str]:
    text = content[1:] if content.startswith("\ufeff") else content
    return [line for line in re.split(r"\r?\n", text) if line.strip()]


def parse_csv_line(line: str, row_number: int = 1) -> list[str]:
    # One line at a time so an unbalanced quote can never swallow the next row.
    # Spaces after a delimiter are skipped so `a, "b, c"` keeps its quoting.
    try:
        tokens = next(csv.reader([line], skipinitialspace=True), [])
    except csv.Error as exc:
        raise CsvUploadError(f"Row {row_number} could not be read: {exc}") from exc
    return [token.strip() for token in tokens]


def parse_csv(content: str, schema: UploadSchema) -> list[CsvRecord]:
    lines = _split_lines(content)
    if len(lines) < 2:
        raise EmptyInputError()

    headers = [header.lower() for header in parse_csv_line(lines[0], 1)]
    for column in schema.required:
        if column not in headers:
            raise MissingColumnError(column)

    records: list[CsvRecord] = []
    for row_number, line in enumerate(lines[1:], start=2):
        values = parse_csv_line(line, row_number)
        if len(values) < len(headers):
            values.extend([""] * (len(headers) - len(values)))
        if len(values) != len(headers):
            raise RowShapeError(row_number, len(values), len(headers))

        record: CsvRecord = {}
        for header, value in zip(headers, values):
            if header in schema.required and not value:
                raise MissingValueError(header, row_number)
            record[header] = value or schema.defaults.get(header, "")

        for column, default in schema.defaults.items():
            if column not in headers:
                record[column] = default
        records.append(record)
    return records


def parse_course_csv(content: str) -> list[CsvRecord]:
    return parse_csv(content, COURSE_SCHEMA)


def parse_agency_csv(content: str) -> list[CsvRecord]:
    return parse_csv(content, AGENCY_SCHEMA)


@dataclass
class UploadStatus:
    total: int = 0
    processed: int = 0
    success: int = 0
    failed: int = 0

    @property
    def fraction(self) -> float:
        return self.processed / self.total if self.total else 0.0

    def as_dict(self) -> dict[str, int]:
        return {"total": self.total, "processed": self.processed, "success": self.success, "failed": self.failed}


def _record_outcome(status: UploadStatus, ok: bool) -> None:
    status.processed += 1
    if ok:
        status.success += 1
    else:
        status.failed += 1


def _attempt(insert: Callable[[CsvRecord], Any], index: int, record: CsvRecord) -> bool:
    try:
        insert(record)
    except Exception as exc:
        logger.warning("Bulk upload record %d failed: %s", index, exc)
        return False
    return True


def run_bulk_upload(
    records: Iterable[CsvRecord],
    insert: Callable[[CsvRecord], Any],
    on_progress: Callable[[UploadStatus], None] | None = None,
    on_complete: Callable[[], None] | None = None,
    max_workers: int = 1,
) -> UploadStatus:
    """Insert each record on its own and count the outcomes.

    With ``max_workers`` of 1 records are attempted strictly in input order.
    Larger values run a bounded pool; outcomes are folded into the status from
    the calling thread, so counters stay consistent either way. A failing
    record never stops the batch.
    """
    items = list(records)
    status = UploadStatus(total=len(items))
    logger.info("Bulk upload started: %d record(s), %d worker(s)", status.total, max_workers)

    if max_workers <= 1:
        for index, record in enumerate(items, start=1):
            _record_outcome(status, _attempt(insert, index, record))
            if on_progress:
                on_progress(replace(status))
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = [pool.submit(_attempt, insert, index, record) for index, record in enumerate(items, start=1)]
            for future in as_completed(futures):
                _record_outcome(status, future.result())
                if on_progress:
                    on_progress(replace(status))

    logger.info("Bulk upload finished: %d succeeded, %d failed", status.success, status.failed)
    if on_complete:
        on_complete()
    return status
