from __future__ import annotations

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from auth import authenticate_profile, can_access, profile_role
from models import Agency, Base, BlogPost, BuddyFormField
from seed import seed_all
from store import list_approved_agencies


@pytest.fixture
def db(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for name in ("AGENCYCOMPASS_SUPERADMIN_EMAIL", "AGENCYCOMPASS_SUPERADMIN_PASSWORD", "AGENCYCOMPASS_ADMIN_EMAIL", "AGENCYCOMPASS_ADMIN_PASSWORD"):
        monkeypatch.delenv(name, raising=False)
    engine = create_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(engine)
    with Session(engine, expire_on_commit=False) as session:
        yield session
    engine.dispose()


def test_seed_all_builds_ranked_directory(db: Session) -> None:
    seed_all(db)
    db.flush()

    records = list_approved_agencies(db)

    assert [r.name for r in records] == [
        "Global Pathways Education",
        "Maple Leaf Study Advisors",
        "Southern Cross Education",
        "1st Choice Overseas",
    ]
    assert [r.trust_score for r in records] == [80, 75, 60, 5]
    assert records[0].rating == 4.5
    assert db.scalar(select(func.count()).select_from(BlogPost)) == 2
    assert db.scalar(select(func.count()).select_from(BuddyFormField)) == 7


def test_seed_all_is_idempotent(db: Session) -> None:
    seed_all(db)
    seed_all(db)

    assert db.scalar(select(func.count()).select_from(Agency)) == 4


def test_seeded_profiles_can_sign_in(db: Session) -> None:
    seed_all(db)

    super_admin = authenticate_profile(db, "SuperAdmin@AgencyCompass.local", "SuperAdmin123!")
    agency_admin = authenticate_profile(db, "agency@agencycompass.local", "Agency123!")

    assert profile_role(super_admin) == "super_admin"
    assert profile_role(agency_admin) == "admin"
    assert can_access(agency_admin, "admin")
    assert not can_access(agency_admin, "super_admin")
    assert authenticate_profile(db, "agency@agencycompass.local", "wrong") is None
