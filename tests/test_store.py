from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from csv_upload import parse_agency_csv, parse_course_csv
from models import Agency, AuditLog, Base
from store import (
    PLACEHOLDER_IMAGE,
    SqlChatStore,
    add_photo,
    add_service,
    create_agency,
    delete_review,
    delete_service,
    get_agency,
    insert_agency,
    insert_course,
    list_approved_agencies,
    list_buddy_form_fields,
    list_courses,
    list_reviews,
    recompute_agency_trust,
    override_trust_score,
    respond_to_review,
    save_blog_post,
    save_buddy,
    save_buddy_form_field,
    search_buddies,
    set_agency_status,
    set_agency_verification,
    set_cover_photo,
    set_review_status,
    slugify,
    submit_review,
)


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False})
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine) -> Iterator[Session]:
    with Session(engine, expire_on_commit=False) as session:
        yield session


def new_agency(db: Session, name: str = "Global Pathways", **extra) -> Agency:
    payload = {"name": name, "location": "London, UK", "description": "UK admissions", "contact_email": "hi@example.com"}
    payload.update(extra)
    return create_agency(db, payload)


def test_create_agency_requires_name_and_location(db: Session) -> None:
    with pytest.raises(ValueError):
        create_agency(db, {"name": "", "location": "London"})
    with pytest.raises(ValueError):
        create_agency(db, {"name": "Global", "location": "  "})


def test_create_agency_starts_pending_with_unique_slug(db: Session) -> None:
    first = new_agency(db, "Global Pathways!")
    second = new_agency(db, "Global Pathways")

    assert first.status == "pending"
    assert first.slug == "global-pathways"
    assert second.slug.startswith("global-pathways-")
    assert slugify("  ") == "agency"


def test_insert_agency_from_csv_record(db: Session) -> None:
    record = parse_agency_csv(
        "name,location,description,contact_email,price\nMaple Leaf,Toronto,Canada visas,maple@example.com,1200"
    )[0]

    agency = insert_agency(db, record)
    db.flush()

    assert agency.status == "pending"
    assert agency.price == 1200
    assert agency.trust_score == 0
    assert agency.contact_phone == ""
    actions = db.scalars(select(AuditLog.action)).all()
    assert actions == ["agency_imported"]


def test_trust_score_follows_reviews_services_and_verification(db: Session) -> None:
    agency = new_agency(db)
    first_service = add_service(db, agency.id, "Visa Assistance")
    add_service(db, agency.id, "University Selection")
    assert agency.trust_score == 10

    four = submit_review(db, agency.id, 4, "Helpful")
    five = submit_review(db, agency.id, 5, "Excellent")
    assert agency.trust_score == 10

    assert set_review_status(db, four.id, "approved") == 50
    assert set_review_status(db, five.id, "approved") == 55
    assert agency.rating == 4.5

    assert set_agency_verification(db, agency.id, True) == 75

    delete_service(db, first_service.id)
    assert agency.trust_score == 70

    assert delete_review(db, five.id) == 65
    assert agency.rating == 4.0
    assert get_agency(db, agency.id).trust_score == 65


def test_recompute_trust_read_failure_is_reported_not_raised(db: Session, monkeypatch) -> None:
    agency = new_agency(db)
    add_service(db, agency.id, "Visa Assistance")
    errors: list[Exception] = []

    def unavailable(*args, **kwargs):
        raise OperationalError("SELECT reviews", {}, ConnectionError("database gone"))

    monkeypatch.setattr(db, "scalars", unavailable)

    assert recompute_agency_trust(db, agency.id, on_error=errors.append) is None
    assert recompute_agency_trust(db, agency.id) is None
    assert agency.trust_score == 5
    assert len(errors) == 1
    assert isinstance(errors[0], OperationalError)


def test_rejected_reviews_do_not_count(db: Session) -> None:
    agency = new_agency(db)
    review = submit_review(db, agency.id, 1, "Bad")

    assert set_review_status(db, review.id, "rejected") == 0
    assert agency.rating == 0.0


def test_submit_review_validates_rating(db: Session) -> None:
    agency = new_agency(db)
    with pytest.raises(ValueError):
        submit_review(db, agency.id, 6, "Too good")
    assert submit_review(db, agency.id, 3, "  fine  ").comment == "fine"


def test_override_trust_score_is_clamped(db: Session) -> None:
    agency = new_agency(db)
    override_trust_score(db, agency.id, 140)
    assert agency.trust_score == 100


def test_set_agency_status_validates(db: Session) -> None:
    agency = new_agency(db)
    with pytest.raises(ValueError):
        set_agency_status(db, agency.id, "archived")
    set_agency_status(db, agency.id, "approved")
    assert agency.status == "approved"


def test_list_approved_agencies_maps_services_and_cover_photo(db: Session) -> None:
    shown = new_agency(db, "Shown")
    hidden = new_agency(db, "Hidden")
    bare = new_agency(db, "Bare", image_url="https://img.example/logo.png")
    empty = new_agency(db, "Empty")
    for agency in (shown, bare, empty):
        set_agency_status(db, agency.id, "approved")
    add_service(db, shown.id, "Scholarship Guidance")
    add_photo(db, shown.id, "https://img.example/first.jpg")
    second = add_photo(db, shown.id, "https://img.example/second.jpg")
    set_cover_photo(db, second.id)
    db.flush()
    db.expire_all()

    records = {record.name: record for record in list_approved_agencies(db)}

    assert set(records) == {"Shown", "Bare", "Empty"}
    assert hidden.name not in records
    assert records["Shown"].specializations == ["Scholarship Guidance"]
    assert records["Shown"].image_url == "https://img.example/second.jpg"
    assert records["Bare"].image_url == "https://img.example/logo.png"
    assert records["Empty"].image_url == PLACEHOLDER_IMAGE


def test_respond_to_review_updates_existing_response(db: Session) -> None:
    agency = new_agency(db)
    review = submit_review(db, agency.id, 5, "Great")

    respond_to_review(db, review.id, "Thank you!")
    respond_to_review(db, review.id, "Thanks again!")
    db.expire_all()

    reviews = list_reviews(db, agency.id)
    assert reviews[0].response.content == "Thanks again!"
    with pytest.raises(ValueError):
        respond_to_review(db, review.id, "  ")


def test_insert_course_from_parsed_csv(db: Session) -> None:
    agency = new_agency(db)
    records = parse_course_csv("course_name,university_name,location\nLaw,LSE,London\nArt,RCA,London")

    for record in records:
        insert_course(db, record, agency.id)

    courses = list_courses(db, agency.id)
    assert [c.course_name for c in courses] == ["Law", "Art"]
    assert all(c.degree_type == "Bachelor" for c in courses)


def test_save_blog_post_requires_fields_and_updates(db: Session) -> None:
    with pytest.raises(ValueError) as excinfo:
        save_blog_post(db, {"title": "Visas", "content": ""})
    assert "content" in str(excinfo.value)
    assert "author" in str(excinfo.value)

    post = save_blog_post(db, {"title": "Visas", "content": "Body", "author": "Team", "category": "Guides"})
    assert post.published_on is not None
    updated = save_blog_post(db, {"title": "Visas 2026", "content": "Body", "author": "Team", "category": "Guides"}, post.id)
    assert updated.id == post.id
    assert updated.title == "Visas 2026"


def test_search_buddies(db: Session) -> None:
    save_buddy(db, {"full_name": "Ana", "destination_country": "Canada", "university": "University of Toronto", "intake": "Fall 2026"})
    save_buddy(db, {"full_name": "Ben", "destination_country": "Canada", "university": "McGill University", "intake": "Spring 2027"})
    save_buddy(db, {"full_name": "Cai", "destination_country": "Australia", "university": "Monash"})

    assert sorted(b.full_name for b in search_buddies(db, {"destination_country": "Canada"})) == ["Ana", "Ben"]
    assert [b.full_name for b in search_buddies(db, {"destination_country": "Canada", "university": "toronto"})] == ["Ana"]
    assert [b.full_name for b in search_buddies(db, {"intake": "Spring 2027", "field_of_study": " "})] == ["Ben"]
    assert len(search_buddies(db, {})) == 3
    with pytest.raises(ValueError):
        save_buddy(db, {"full_name": ""})


def test_buddy_form_fields_are_ordered(db: Session) -> None:
    save_buddy_form_field(db, {"field_name": "intake", "field_label": "Intake", "field_type": "select", "options": ["Fall", " ", "Spring"], "order": 2})
    save_buddy_form_field(db, {"field_name": "full_name", "field_label": "Full name", "order": 1, "is_required": True})

    fields = list_buddy_form_fields(db)

    assert [f.field_name for f in fields] == ["full_name", "intake"]
    assert fields[1].options == ["Fall", "Spring"]
    assert fields[0].field_type == "text"


def test_sql_chat_store_round_trip(engine) -> None:
    @contextmanager
    def scope() -> Iterator[Session]:
        session = Session(engine, expire_on_commit=False)
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    store = SqlChatStore(scope)
    session_id = store.create_session()
    assert store.has_messages(session_id) is False

    for index in range(8):
        store.insert_message(session_id, "user" if index % 2 == 0 else "bot", f"message {index}")

    assert store.has_messages(session_id) is True
    assert [m.text for m in store.list_messages(session_id)][:2] == ["message 0", "message 1"]
    recent = store.list_messages(session_id, limit=6)
    assert [m.text for m in recent] == [f"message {i}" for i in range(2, 8)]
    assert recent[0].session_id == session_id

    store.delete_session(session_id)
    assert store.list_messages(session_id) == []
