from __future__ import annotations

import logging
from datetime import date
from pathlib import Path

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from auth import hash_password
from csv_upload import parse_agency_csv
from db import get_setting
from models import Agency, BlogPost, BuddyFormField, Profile
from store import add_service, insert_agency, recompute_agency_trust, submit_review


logger = logging.getLogger(__name__)

DEFAULT_SERVICES = {
    "Global Pathways Education": ["University Selection", "Visa Assistance", "Scholarship Guidance"],
    "Maple Leaf Study Advisors": ["Visa Assistance", "Accommodation Support", "Test Preparation"],
    "Southern Cross Education": ["University Selection", "Application Support"],
    "1st Choice Overseas": ["Visa Assistance"],
}

DEFAULT_REVIEWS = {
    "Global Pathways Education": [(5, "Helped me get into my first choice university."), (4, "Very responsive team.")],
    "Maple Leaf Study Advisors": [(4, "Visa process was smooth.")],
    "Southern Cross Education": [(3, "Good advice but slow replies.")],
}

DEFAULT_BLOG_POSTS = [
    {
        "title": "How to Choose the Right Study Abroad Agency",
        "excerpt": "Five questions to ask before you sign with an agency.",
        "content": "Check their verification status, read approved student reviews and ask which universities they partner with.",
        "author": "AgencyCompass Team",
        "category": "Guides",
    },
    {
        "title": "Student Visa Checklist for Canada",
        "excerpt": "Documents you need before your study permit appointment.",
        "content": "Prepare your letter of acceptance, proof of funds, passport and biometrics appointment early.",
        "author": "AgencyCompass Team",
        "category": "Visas",
    },
]

DEFAULT_BUDDY_FIELDS = [
    {"field_name": "full_name", "field_label": "Full name", "field_type": "text", "is_required": True},
    {"field_name": "email", "field_label": "Email", "field_type": "text", "is_required": True},
    {
        "field_name": "destination_country",
        "field_label": "Destination country",
        "field_type": "select",
        "is_required": True,
        "options": ["United Kingdom", "United States", "Canada", "Australia", "Germany"],
    },
    {"field_name": "university", "field_label": "University", "field_type": "text", "is_required": False},
    {"field_name": "field_of_study", "field_label": "Field of study", "field_type": "text", "is_required": False},
    {
        "field_name": "intake",
        "field_label": "Intake",
        "field_type": "select",
        "is_required": False,
        "options": ["Fall 2026", "Spring 2027", "Fall 2027"],
    },
    {"field_name": "about_me", "field_label": "About me", "field_type": "textarea", "is_required": False},
]


def seed_default_profiles(db: Session) -> None:
    accounts = [
        (
            get_setting("AGENCYCOMPASS_SUPERADMIN_EMAIL", "superadmin@agencycompass.local"),
            get_setting("AGENCYCOMPASS_SUPERADMIN_PASSWORD", "SuperAdmin123!"),
            True,
            True,
        ),
        (
            get_setting("AGENCYCOMPASS_ADMIN_EMAIL", "agency@agencycompass.local"),
            get_setting("AGENCYCOMPASS_ADMIN_PASSWORD", "Agency123!"),
            True,
            False,
        ),
    ]
    for email, password, is_admin, is_super_admin in accounts:
        email = email.strip().lower()
        if db.scalar(select(Profile).where(Profile.email == email)):
            continue
        db.add(
            Profile(
                email=email,
                password_hash=hash_password(password),
                is_admin=is_admin,
                is_super_admin=is_super_admin,
            )
        )
        logger.info("Seeded profile %s", email)
    db.flush()


def seed_agencies_if_empty(db: Session, sample_csv_path: str = "data/agencies.sample.csv") -> int:
    total = db.scalar(select(func.count()).select_from(Agency))
    if total and total > 0:
        return 0

    path = Path(sample_csv_path)
    content = path.read_text(encoding="utf-8") if path.exists() else _default_agency_csv()

    owner_email = (get_setting("AGENCYCOMPASS_ADMIN_EMAIL", "agency@agencycompass.local") or "").strip().lower()
    owner = db.scalar(select(Profile).where(Profile.email == owner_email))

    inserted = 0
    for record in parse_agency_csv(content):
        agency = insert_agency(db, record, owner.id if owner else None)
        agency.status = "approved"
        agency.is_verified = agency.name in DEFAULT_REVIEWS
        for service_name in DEFAULT_SERVICES.get(agency.name, []):
            add_service(db, agency.id, service_name)
        for rating, comment in DEFAULT_REVIEWS.get(agency.name, []):
            review = submit_review(db, agency.id, rating, comment, author_name="Demo Student")
            review.status = "approved"
        db.flush()
        recompute_agency_trust(db, agency.id)
        inserted += 1
    logger.info("Seeded %d agencies", inserted)
    return inserted


def seed_blog_posts_if_empty(db: Session) -> None:
    if db.scalar(select(func.count()).select_from(BlogPost)):
        return
    for payload in DEFAULT_BLOG_POSTS:
        db.add(BlogPost(published_on=date.today(), **payload))


def seed_buddy_form_fields_if_empty(db: Session) -> None:
    if db.scalar(select(func.count()).select_from(BuddyFormField)):
        return
    for order, payload in enumerate(DEFAULT_BUDDY_FIELDS, start=1):
        db.add(BuddyFormField(order=order, options=payload.get("options", []), **{k: v for k, v in payload.items() if k != "options"}))


def seed_all(db: Session) -> None:
    seed_default_profiles(db)
    seed_agencies_if_empty(db)
    seed_blog_posts_if_empty(db)
    seed_buddy_form_fields_if_empty(db)


def _default_agency_csv() -> str:
    return """name,location,description,contact_email,price,contact_phone,website,business_hours
Global Pathways Education,"London, United Kingdom",Placement support for UK and European universities.,hello@globalpathways.example,1500,+44 20 7946 0000,https://globalpathways.example,Mon-Fri 9:00-17:00
Maple Leaf Study Advisors,"Toronto, Canada","Study permits, college admissions and settling-in help for Canada.",contact@mapleleaf.example,1200,+1 416 555 0100,https://mapleleaf.example,Mon-Sat 10:00-18:00
Southern Cross Education,"Sydney, Australia",Australian university and TAFE applications.,info@southerncross.example,900,,,
1st Choice Overseas,"Mumbai, India",Visa filing for students heading to the US and UK.,team@firstchoice.example,500,,,
"""
