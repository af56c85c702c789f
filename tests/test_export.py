import json

from csv_upload import UploadStatus, parse_course_csv
from export import build_trust_report_pdf, build_upload_summary_json, course_template_csv
from records import AgencyRecord
from trust import TrustScoreMetrics


def test_build_trust_report_pdf_returns_pdf_bytes() -> None:
    agency = AgencyRecord(
        id="a1",
        name="Maple Leaf Study Advisors",
        location="Toronto, Canada",
        specializations=["Visa Assistance", "Housing"],
        is_verified=True,
    )
    metrics = TrustScoreMetrics(average_rating=4.5, total_reviews=2, service_count=2, is_verified=True)

    pdf = build_trust_report_pdf(agency, metrics, 75)

    assert pdf.startswith(b"%PDF")
    assert len(pdf) > 500


def test_build_upload_summary_json() -> None:
    status = UploadStatus(total=3, processed=3, success=2, failed=1)

    payload = json.loads(build_upload_summary_json("courses", status, ["Row 3 rejected"]))

    assert payload["kind"] == "courses"
    assert payload["success"] == 2
    assert payload["failed"] == 1
    assert payload["errors"] == ["Row 3 rejected"]
    assert "generated_at" in payload


def test_course_template_csv_parses_cleanly() -> None:
    template = course_template_csv()

    assert template.splitlines()[0] == "course_name,university_name,location,tuition_fee,duration,degree_type,description"
    records = parse_course_csv(template)
    assert len(records) == 2
    assert records[0]["university_name"] == "University of Toronto"
