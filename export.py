from __future__ import annotations

import csv
import io
import json
from datetime import datetime, timezone
from typing import Any

from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer

from csv_upload import COURSE_SCHEMA, UploadStatus
from records import AgencyRecord
from trust import RATING_WEIGHT, SERVICE_CAP, SERVICE_POINTS, VERIFICATION_POINTS, TrustScoreMetrics


COURSE_TEMPLATE_ROWS = [
    {
        "course_name": "Computer Science",
        "university_name": "University of Toronto",
        "location": "Toronto, Canada",
        "tuition_fee": "$45,000 per year",
        "duration": "4 years",
        "degree_type": "Bachelor",
        "description": "A comprehensive program covering software engineering, algorithms and data systems.",
    },
    {
        "course_name": "Business Administration",
        "university_name": "University of Melbourne",
        "location": "Melbourne, Australia",
        "tuition_fee": "AUD 42,000 per year",
        "duration": "2 years",
        "degree_type": "Master",
        "description": "An MBA focused on leadership, strategy and international business.",
    },
]


def _safe_text(value: Any) -> str:
    if value is None or value == "":
        return "-"
    return str(value)


def build_trust_report_pdf(agency: AgencyRecord, metrics: TrustScoreMetrics, score: int) -> bytes:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4, title=f"{agency.name} Trust Report")
    styles = getSampleStyleSheet()
    normal = styles["BodyText"]
    heading = styles["Heading2"]

    story = []
    story.append(Paragraph(f"{agency.name} - Trust Score Report", styles["Title"]))
    story.append(Paragraph(f"Generated: {datetime.now(timezone.utc).isoformat(timespec='seconds')}", normal))
    story.append(Spacer(1, 12))

    story.append(Paragraph("Agency", heading))
    story.append(Paragraph(f"Location: {_safe_text(agency.location)}", normal))
    story.append(Paragraph(f"Status: {_safe_text(agency.status)}", normal))
    story.append(Paragraph(f"Contact: {_safe_text(agency.contact_email)}", normal))
    story.append(Paragraph(f"Website: {_safe_text(agency.website)}", normal))
    story.append(Spacer(1, 8))

    story.append(Paragraph(f"Trust score: {score}/100", heading))
    rating_points = metrics.average_rating / 5 * RATING_WEIGHT
    service_points = min(metrics.service_count * SERVICE_POINTS, SERVICE_CAP)
    verification_points = VERIFICATION_POINTS if metrics.is_verified else 0
    story.append(
        Paragraph(
            f"Reviews: {metrics.average_rating:.1f}/5 average over {metrics.total_reviews} approved "
            f"reviews ({rating_points:.1f} of {RATING_WEIGHT} points)",
            normal,
        )
    )
    story.append(
        Paragraph(
            f"Services: {metrics.service_count} listed ({service_points} of {SERVICE_CAP} points)",
            normal,
        )
    )
    story.append(
        Paragraph(
            f"Verification: {'verified' if metrics.is_verified else 'not verified'} "
            f"({verification_points} of {VERIFICATION_POINTS} points)",
            normal,
        )
    )

    if agency.specializations:
        story.append(Spacer(1, 8))
        story.append(Paragraph("Services offered", heading))
        for name in agency.specializations:
            story.append(Paragraph(f"- {name}", normal))

    story.append(Spacer(1, 12))
    story.append(Paragraph("Scores are recalculated whenever reviews, services or verification change.", normal))

    doc.build(story)
    buffer.seek(0)
    return buffer.read()


def build_upload_summary_json(kind: str, status: UploadStatus, errors: list[str] | None = None) -> bytes:
    payload = {
        "kind": kind,
        "generated_at": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        **status.as_dict(),
        "errors": list(errors or []),
    }
    return json.dumps(payload, indent=2, ensure_ascii=True).encode("utf-8")


def course_template_csv() -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(COURSE_SCHEMA.columns), lineterminator="\n")
    writer.writeheader()
    writer.writerows(COURSE_TEMPLATE_ROWS)
    return buffer.getvalue()
