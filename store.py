from __future__ import annotations

import logging
import re
import uuid
from contextlib import AbstractContextManager
from datetime import date
from typing import Any, Callable

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from chat import ChatMessageRecord
from csv_upload import CsvRecord
from models import (
    Agency,
    AgencyPhoto,
    AgencyService,
    AuditLog,
    BlogPost,
    Buddy,
    BuddyFormField,
    ChatMessage,
    ChatSession,
    Course,
    Review,
    ReviewResponse,
)
from records import AgencyRecord, agency_from_row, review_from_row, service_from_row
from trust import approved_average, refresh_trust_score


logger = logging.getLogger(__name__)

AGENCY_STATUSES = ("pending", "approved", "rejected")
REVIEW_STATUSES = ("pending", "approved", "rejected")
BLOG_REQUIRED_FIELDS = ("title", "content", "author", "category")
BUDDY_FIELDS = (
    "full_name",
    "email",
    "destination_country",
    "university",
    "field_of_study",
    "intake",
    "about_me",
    "interests",
)
BUDDY_SEARCH_LIMIT = 20
PLACEHOLDER_IMAGE = "https://images.unsplash.com/photo-1522071820081-009f0129c71c?auto=format&fit=crop&q=80"

TrustErrorHook = Callable[[Exception], None] | None


def _uuid(value: str | uuid.UUID) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


def _parse_int(value: Any, default: int = 0) -> int:
    text = str(value if value is not None else "").strip()
    if not text:
        return default
    try:
        return int(float(text))
    except ValueError:
        return default


def record_audit(db: Session, action: str, details: dict[str, Any], user_id: str | uuid.UUID | None = None) -> None:
    db.add(AuditLog(user_id=_uuid(user_id) if user_id else None, action=action, details_json=details))


# Agencies


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (name or "").lower()).strip("-")
    return slug or "agency"


def _unique_slug(db: Session, name: str) -> str:
    base = slugify(name)
    slug = base
    while db.scalar(select(func.count()).select_from(Agency).where(Agency.slug == slug)):
        slug = f"{base}-{uuid.uuid4().hex[:6]}"
    return slug


def list_approved_agencies(db: Session) -> list[AgencyRecord]:
    rows = db.scalars(
        select(Agency)
        .options(selectinload(Agency.services), selectinload(Agency.photos))
        .where(Agency.status == "approved")
        .order_by(Agency.trust_score.desc())
    ).all()
    output = []
    for row in rows:
        record = agency_from_row(row, [service.name for service in row.services])
        record.image_url = cover_photo_url(row)
        output.append(record)
    return output


def list_agencies(db: Session, status: str = "all") -> list[Agency]:
    query = select(Agency).order_by(Agency.created_at.desc())
    if status != "all":
        query = query.where(Agency.status == status)
    return list(db.scalars(query).all())


def list_owned_agencies(db: Session, owner_id: str | uuid.UUID) -> list[Agency]:
    return list(db.scalars(select(Agency).where(Agency.owner_id == _uuid(owner_id)).order_by(Agency.name)).all())


def get_agency(db: Session, agency_id: str | uuid.UUID) -> Agency | None:
    return db.get(Agency, _uuid(agency_id))


def get_agency_by_slug(db: Session, slug: str) -> Agency | None:
    return db.scalar(
        select(Agency)
        .options(selectinload(Agency.services), selectinload(Agency.photos))
        .where(Agency.slug == slug)
    )


def cover_photo_url(agency: Agency) -> str:
    photos = sorted(agency.photos or [], key=lambda p: (not p.is_cover, p.created_at is None, p.created_at))
    if photos:
        return photos[0].url
    return agency.image_url or PLACEHOLDER_IMAGE


def create_agency(db: Session, payload: dict[str, Any], owner_id: str | uuid.UUID | None = None) -> Agency:
    name = str(payload.get("name") or "").strip()
    location = str(payload.get("location") or "").strip()
    if not name or not location:
        raise ValueError("Agency name and location are required")

    agency = Agency(
        owner_id=_uuid(owner_id) if owner_id else None,
        name=name,
        slug=_unique_slug(db, name),
        location=location,
        description=str(payload.get("description") or "").strip(),
        contact_email=str(payload.get("contact_email") or "").strip(),
        contact_phone=str(payload.get("contact_phone") or "").strip(),
        website=str(payload.get("website") or "").strip(),
        business_hours=str(payload.get("business_hours") or "").strip(),
        price=_parse_int(payload.get("price")),
        trust_score=min(100, max(0, _parse_int(payload.get("trust_score")))),
        image_url=payload.get("image_url") or None,
        status="pending",
    )
    db.add(agency)
    db.flush()
    return agency


def insert_agency(db: Session, record: CsvRecord, owner_id: str | uuid.UUID | None = None) -> Agency:
    agency = create_agency(db, record, owner_id)
    record_audit(db, "agency_imported", {"agency_id": str(agency.id), "name": agency.name}, owner_id)
    logger.info("Imported agency %s (%s)", agency.name, agency.id)
    return agency


def update_agency_details(db: Session, agency_id: str | uuid.UUID, changes: dict[str, Any]) -> Agency | None:
    editable = {"name", "location", "description", "contact_email", "contact_phone", "website", "business_hours", "price", "image_url", "brochure_url"}
    agency = get_agency(db, agency_id)
    if not agency:
        return None
    for key, value in changes.items():
        if key not in editable:
            continue
        setattr(agency, key, _parse_int(value) if key == "price" else value)
    return agency


def set_agency_status(db: Session, agency_id: str | uuid.UUID, status: str, actor_id: str | None = None) -> None:
    if status not in AGENCY_STATUSES:
        raise ValueError(f"Unknown agency status: {status}")
    agency = get_agency(db, agency_id)
    if not agency:
        return
    agency.status = status
    logger.info("Agency %s marked %s", agency.id, status)
    record_audit(db, "agency_status_updated", {"agency_id": str(agency.id), "status": status}, actor_id)


def set_agency_verification(
    db: Session,
    agency_id: str | uuid.UUID,
    is_verified: bool,
    actor_id: str | None = None,
    on_error: TrustErrorHook = None,
) -> int | None:
    agency = get_agency(db, agency_id)
    if not agency:
        return None
    agency.is_verified = bool(is_verified)
    record_audit(db, "agency_verification_updated", {"agency_id": str(agency.id), "is_verified": bool(is_verified)}, actor_id)
    db.flush()
    return recompute_agency_trust(db, agency.id, on_error)


def override_trust_score(db: Session, agency_id: str | uuid.UUID, score: int, actor_id: str | None = None) -> None:
    agency = get_agency(db, agency_id)
    if not agency:
        return
    agency.trust_score = min(100, max(0, int(score)))
    record_audit(db, "trust_score_overridden", {"agency_id": str(agency.id), "trust_score": agency.trust_score}, actor_id)


# Trust score


def recompute_agency_trust(db: Session, agency_id: str | uuid.UUID, on_error: TrustErrorHook = None) -> int | None:
    agency = get_agency(db, agency_id)
    if not agency:
        return None

    try:
        review_rows = db.scalars(select(Review).where(Review.agency_id == agency.id)).all()
        service_rows = db.scalars(select(AgencyService).where(AgencyService.agency_id == agency.id)).all()
    except SQLAlchemyError as exc:
        logger.warning("Trust score inputs could not be read for agency %s: %s", agency.id, exc)
        if on_error:
            on_error(exc)
        return None
    reviews = [review_from_row(row) for row in review_rows]
    services = [service_from_row(row) for row in service_rows]
    record = agency_from_row(agency, [service.name for service in services])
    average, _ = approved_average(reviews)

    def persist(_: str, score: int) -> None:
        with db.begin_nested():
            agency.trust_score = score
            agency.rating = round(average, 2)
            db.flush()

    return refresh_trust_score(record, reviews, services, persist, on_error)


# Services and photos


def add_service(db: Session, agency_id: str | uuid.UUID, name: str, description: str = "", on_error: TrustErrorHook = None) -> AgencyService:
    if not (name or "").strip():
        raise ValueError("Service name is required")
    service = AgencyService(agency_id=_uuid(agency_id), name=name.strip(), description=(description or "").strip())
    db.add(service)
    db.flush()
    recompute_agency_trust(db, agency_id, on_error)
    return service


def delete_service(db: Session, service_id: str | uuid.UUID, on_error: TrustErrorHook = None) -> None:
    service = db.get(AgencyService, _uuid(service_id))
    if not service:
        return
    agency_id = service.agency_id
    db.delete(service)
    db.flush()
    recompute_agency_trust(db, agency_id, on_error)


def add_photo(db: Session, agency_id: str | uuid.UUID, url: str, caption: str = "", is_cover: bool = False) -> AgencyPhoto:
    photo = AgencyPhoto(agency_id=_uuid(agency_id), url=url, caption=caption, is_cover=False)
    db.add(photo)
    db.flush()
    if is_cover:
        set_cover_photo(db, photo.id)
    return photo


def delete_photo(db: Session, photo_id: str | uuid.UUID) -> None:
    db.execute(delete(AgencyPhoto).where(AgencyPhoto.id == _uuid(photo_id)))


def set_cover_photo(db: Session, photo_id: str | uuid.UUID) -> None:
    photo = db.get(AgencyPhoto, _uuid(photo_id))
    if not photo:
        return
    for other in db.scalars(select(AgencyPhoto).where(AgencyPhoto.agency_id == photo.agency_id)).all():
        other.is_cover = other.id == photo.id


# Reviews


def list_reviews(db: Session, agency_id: str | uuid.UUID, status: str | None = None) -> list[Review]:
    query = (
        select(Review)
        .options(selectinload(Review.response))
        .where(Review.agency_id == _uuid(agency_id))
        .order_by(Review.created_at.desc())
    )
    if status:
        query = query.where(Review.status == status)
    return list(db.scalars(query).all())


def submit_review(
    db: Session,
    agency_id: str | uuid.UUID,
    rating: int,
    comment: str,
    author_name: str = "",
    user_id: str | uuid.UUID | None = None,
) -> Review:
    if not 1 <= int(rating) <= 5:
        raise ValueError("Rating must be between 1 and 5")
    review = Review(
        agency_id=_uuid(agency_id),
        user_id=_uuid(user_id) if user_id else None,
        author_name=(author_name or "").strip(),
        rating=int(rating),
        comment=(comment or "").strip(),
        status="pending",
    )
    db.add(review)
    db.flush()
    return review


def set_review_status(db: Session, review_id: str | uuid.UUID, status: str, on_error: TrustErrorHook = None) -> int | None:
    if status not in REVIEW_STATUSES:
        raise ValueError(f"Unknown review status: {status}")
    review = db.get(Review, _uuid(review_id))
    if not review:
        return None
    review.status = status
    db.flush()
    return recompute_agency_trust(db, review.agency_id, on_error)


def delete_review(db: Session, review_id: str | uuid.UUID, on_error: TrustErrorHook = None) -> int | None:
    review = db.get(Review, _uuid(review_id))
    if not review:
        return None
    agency_id = review.agency_id
    db.delete(review)
    db.flush()
    return recompute_agency_trust(db, agency_id, on_error)


def respond_to_review(db: Session, review_id: str | uuid.UUID, content: str) -> ReviewResponse:
    if not (content or "").strip():
        raise ValueError("Response content is required")
    response = db.scalar(select(ReviewResponse).where(ReviewResponse.review_id == _uuid(review_id)))
    if response:
        response.content = content.strip()
    else:
        response = ReviewResponse(review_id=_uuid(review_id), content=content.strip())
        db.add(response)
    db.flush()
    return response


# Courses


def insert_course(db: Session, record: CsvRecord, agency_id: str | uuid.UUID | None = None) -> Course:
    course = Course(
        agency_id=_uuid(agency_id) if agency_id else None,
        course_name=record["course_name"],
        university_name=record["university_name"],
        location=record["location"],
        tuition_fee=record.get("tuition_fee", ""),
        duration=record.get("duration", ""),
        degree_type=record.get("degree_type") or "Bachelor",
        description=record.get("description", ""),
    )
    db.add(course)
    db.flush()
    return course


def list_courses(db: Session, agency_id: str | uuid.UUID | None = None) -> list[Course]:
    query = select(Course).order_by(Course.university_name, Course.course_name)
    if agency_id:
        query = query.where(Course.agency_id == _uuid(agency_id))
    return list(db.scalars(query).all())


# Blog


def list_blog_posts(db: Session, category: str | None = None) -> list[BlogPost]:
    query = select(BlogPost).order_by(BlogPost.published_on.desc(), BlogPost.created_at.desc())
    if category:
        query = query.where(BlogPost.category == category)
    return list(db.scalars(query).all())


def save_blog_post(db: Session, payload: dict[str, Any], post_id: str | uuid.UUID | None = None) -> BlogPost:
    missing = [name for name in BLOG_REQUIRED_FIELDS if not str(payload.get(name) or "").strip()]
    if missing:
        raise ValueError(f"Please fill in all required fields: {', '.join(missing)}")

    post = db.get(BlogPost, _uuid(post_id)) if post_id else None
    if post is None:
        post = BlogPost(title="", content="", author="", category="")
        db.add(post)
    post.title = payload["title"].strip()
    post.excerpt = str(payload.get("excerpt") or "").strip()
    post.content = payload["content"]
    post.author = payload["author"].strip()
    post.category = payload["category"].strip()
    post.image_url = payload.get("image_url") or None
    published_on = payload.get("published_on")
    post.published_on = published_on if isinstance(published_on, date) else date.today()
    db.flush()
    return post


def delete_blog_post(db: Session, post_id: str | uuid.UUID) -> None:
    db.execute(delete(BlogPost).where(BlogPost.id == _uuid(post_id)))


# Buddies


def search_buddies(db: Session, criteria: dict[str, Any]) -> list[Buddy]:
    cleaned = {key: str(value).strip() for key, value in criteria.items() if value is not None and str(value).strip()}
    query = select(Buddy).order_by(Buddy.created_at.desc())
    if not cleaned:
        return list(db.scalars(query.limit(BUDDY_SEARCH_LIMIT)).all())

    for key in ("destination_country", "field_of_study", "intake"):
        if key in cleaned:
            query = query.where(getattr(Buddy, key) == cleaned[key])
    if "university" in cleaned:
        query = query.where(Buddy.university.ilike(f"%{cleaned['university']}%"))
    return list(db.scalars(query).all())


def save_buddy(db: Session, payload: dict[str, Any], buddy_id: str | uuid.UUID | None = None) -> Buddy:
    if not str(payload.get("full_name") or "").strip():
        raise ValueError("Full name is required")
    buddy = db.get(Buddy, _uuid(buddy_id)) if buddy_id else None
    if buddy is None:
        buddy = Buddy(full_name="")
        db.add(buddy)
    for key in BUDDY_FIELDS:
        setattr(buddy, key, str(payload.get(key) or "").strip())
    buddy.profile_image_url = payload.get("profile_image_url") or None
    db.flush()
    return buddy


def delete_buddy(db: Session, buddy_id: str | uuid.UUID) -> None:
    db.execute(delete(Buddy).where(Buddy.id == _uuid(buddy_id)))


def list_buddy_form_fields(db: Session) -> list[BuddyFormField]:
    return list(db.scalars(select(BuddyFormField).order_by(BuddyFormField.order)).all())


def save_buddy_form_field(db: Session, payload: dict[str, Any], field_id: str | uuid.UUID | None = None) -> BuddyFormField:
    name = str(payload.get("field_name") or "").strip()
    label = str(payload.get("field_label") or "").strip()
    if not name or not label:
        raise ValueError("Field name and label are required")
    field = db.get(BuddyFormField, _uuid(field_id)) if field_id else None
    if field is None:
        field = BuddyFormField(field_name=name, field_label=label)
        db.add(field)
    field.field_name = name
    field.field_label = label
    field.field_type = payload.get("field_type") or "text"
    field.field_placeholder = payload.get("field_placeholder") or None
    field.is_required = bool(payload.get("is_required"))
    field.options = [str(item).strip() for item in payload.get("options") or [] if str(item).strip()]
    field.order = _parse_int(payload.get("order"))
    db.flush()
    return field


def delete_buddy_form_field(db: Session, field_id: str | uuid.UUID) -> None:
    db.execute(delete(BuddyFormField).where(BuddyFormField.id == _uuid(field_id)))


# Chat


def _message_record(row: ChatMessage) -> ChatMessageRecord:
    return ChatMessageRecord(
        id=row.id,
        session_id=str(row.session_id),
        type=row.type,
        text=row.text,
        created_at=row.created_at,
    )


class SqlChatStore:
    """Chat persistence where every call runs in its own short session."""

    def __init__(self, session_scope: Callable[[], AbstractContextManager[Session]]):
        self._session_scope = session_scope

    def create_session(self, user_id: str | None = None) -> str:
        with self._session_scope() as db:
            session = ChatSession(user_id=_uuid(user_id) if user_id else None)
            db.add(session)
            db.flush()
            return str(session.id)

    def has_messages(self, session_id: str) -> bool:
        with self._session_scope() as db:
            count = db.scalar(
                select(func.count()).select_from(ChatMessage).where(ChatMessage.session_id == _uuid(session_id))
            )
            return bool(count)

    def insert_message(self, session_id: str, message_type: str, text: str) -> ChatMessageRecord:
        with self._session_scope() as db:
            row = ChatMessage(session_id=_uuid(session_id), type=message_type, text=text)
            db.add(row)
            db.flush()
            db.refresh(row)
            return _message_record(row)

    def list_messages(self, session_id: str, limit: int | None = None) -> list[ChatMessageRecord]:
        with self._session_scope() as db:
            query = select(ChatMessage).where(ChatMessage.session_id == _uuid(session_id))
            if limit is None:
                rows = db.scalars(query.order_by(ChatMessage.id)).all()
                return [_message_record(row) for row in rows]
            rows = db.scalars(query.order_by(ChatMessage.id.desc()).limit(limit)).all()
            return [_message_record(row) for row in reversed(rows)]

    def delete_session(self, session_id: str) -> None:
        with self._session_scope() as db:
            db.execute(delete(ChatMessage).where(ChatMessage.session_id == _uuid(session_id)))
            db.execute(delete(ChatSession).where(ChatSession.id == _uuid(session_id)))
