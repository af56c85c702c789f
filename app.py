from __future__ import annotations

import logging
from typing import Any, Callable

import pandas as pd
import streamlit as st
from sqlalchemy.exc import SQLAlchemyError

from auth import authenticate_profile, can_access, get_profile_by_id, profile_role
from chat import ChatService
from csv_upload import (
    CsvRecord,
    CsvUploadError,
    UploadStatus,
    parse_agency_csv,
    parse_course_csv,
    run_bulk_upload,
    validate_upload_file,
)
from db import db_session, get_setting, init_schema
from export import build_trust_report_pdf, build_upload_summary_json, course_template_csv
from listings import PAGE_SIZE, FilterState, build_listing, next_page_index
from llm import GeminiTextGenerator
from logging_setup import configure_logging
from records import agency_from_row, review_from_row, service_from_row
from seed import seed_all
from store import (
    BUDDY_FIELDS,
    SqlChatStore,
    add_photo,
    add_service,
    cover_photo_url,
    create_agency,
    delete_blog_post,
    delete_buddy,
    delete_buddy_form_field,
    delete_photo,
    delete_review,
    delete_service,
    get_agency,
    get_agency_by_slug,
    insert_agency,
    insert_course,
    list_agencies,
    list_approved_agencies,
    list_blog_posts,
    list_buddy_form_fields,
    list_courses,
    list_owned_agencies,
    list_reviews,
    override_trust_score,
    recompute_agency_trust,
    record_audit,
    respond_to_review,
    save_blog_post,
    save_buddy,
    save_buddy_form_field,
    search_buddies,
    set_agency_status,
    set_agency_verification,
    set_cover_photo,
    set_review_status,
    submit_review,
    update_agency_details,
)
from trust import build_metrics, calculate_trust_score
from ui import (
    inject_css,
    render_agency_card,
    render_chat_message,
    render_error_fallback,
    render_hero,
    render_trust_metrics,
    render_upload_progress,
    render_upload_result,
    t,
)


logger = logging.getLogger(__name__)

st.set_page_config(page_title="AgencyCompass", layout="wide")
inject_css()

LANGUAGE = "en"
PAGES = ["nav_directory", "nav_buddies", "nav_blog", "nav_chat", "nav_agency_admin", "nav_super_admin"]
GRID_COLUMNS = 3


@st.cache_resource
def bootstrap() -> None:
    init_schema()
    with db_session() as db:
        seed_all(db)


def upload_workers() -> int:
    raw = get_setting("AGENCYCOMPASS_UPLOAD_WORKERS", "1")
    try:
        return max(1, int(raw))
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid AGENCYCOMPASS_UPLOAD_WORKERS=%r", raw)
        return 1


@st.cache_data(ttl=30)
def load_directory() -> list:
    with db_session() as db:
        return list_approved_agencies(db)


def _trust_error_collector() -> tuple[Callable[[Exception], None], list[str]]:
    errors: list[str] = []

    def on_error(exc: Exception) -> None:
        errors.append(str(exc))

    return on_error, errors


def _show_trust_errors(errors: list[str]) -> None:
    if errors:
        st.warning("Saved, but the trust score could not be refreshed. It will update on the next change.")


# Auth


def get_current_user() -> dict[str, Any] | None:
    auth_payload = st.session_state.get("auth_user")
    if not auth_payload:
        return None

    with db_session() as db:
        profile = get_profile_by_id(db, auth_payload["id"])
        if not profile:
            st.session_state.pop("auth_user", None)
            return None
        return {"id": str(profile.id), "role": profile_role(profile), "email": profile.email, "profile": profile}


def render_login(required_role: str) -> dict[str, Any] | None:
    user = get_current_user()
    if user and can_access(user["profile"], required_role):
        st.sidebar.success(f"Signed in as {user['email']}")
        if st.sidebar.button(t(LANGUAGE, "logout"), key=f"logout_{required_role}"):
            st.session_state.pop("auth_user", None)
            st.rerun()
        return user

    st.subheader(t(LANGUAGE, "login"))
    with st.form(f"login_{required_role}"):
        email = st.text_input("Email")
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button(t(LANGUAGE, "login"))

    if submitted:
        with db_session() as db:
            found = authenticate_profile(db, email, password)
            if not found or not can_access(found, required_role):
                st.error("Invalid credentials or insufficient access")
            else:
                st.session_state["auth_user"] = {"id": str(found.id)}
                logger.info("Profile %s signed in", found.email)
                st.rerun()
    return None


# Directory


def _directory_filters(agencies: list) -> FilterState:
    all_services = sorted({name for agency in agencies for name in agency.specializations})
    col1, col2, col3 = st.columns([3, 1, 1])
    search_query = col1.text_input(t(LANGUAGE, "search"), key="directory_search")
    min_rating = col2.selectbox(t(LANGUAGE, "min_rating"), [0, 1, 2, 3, 4], key="directory_min_rating")
    max_price = col3.text_input(t(LANGUAGE, "max_price"), key="directory_max_price")
    col4, col5, col6 = st.columns([3, 2, 1])
    specializations = col4.multiselect(t(LANGUAGE, "specializations"), all_services, key="directory_services")
    location = col5.text_input(t(LANGUAGE, "location"), key="directory_location")
    verified_only = col6.checkbox(t(LANGUAGE, "verified_only"), key="directory_verified")
    return FilterState(
        search_query=search_query,
        min_rating=min_rating,
        max_price=max_price,
        specializations=tuple(specializations),
        verified_only=verified_only,
        location=location,
    )


def render_directory_page() -> None:
    render_hero(LANGUAGE)
    agencies = load_directory()
    filters = _directory_filters(agencies)

    page_number = next_page_index(
        st.session_state.get("directory_filter_state"),
        filters,
        st.session_state.get("directory_page", 1),
    )
    st.session_state["directory_filter_state"] = filters

    page = build_listing(agencies, filters, page_number)
    st.session_state["directory_page"] = page.number

    if not page.items:
        st.info(t(LANGUAGE, "no_results"))
        return

    st.caption(f"{page.total_items} agencies | page {page.number} of {page.total_pages} | {PAGE_SIZE} per page")
    columns = st.columns(GRID_COLUMNS)
    for index, agency in enumerate(page.items):
        with columns[index % GRID_COLUMNS]:
            render_agency_card(agency, LANGUAGE)
            if st.button("View details", key=f"view_{agency.id}"):
                st.session_state["selected_agency_slug"] = agency.slug
                st.rerun()

    prev_col, _, next_col = st.columns([1, 4, 1])
    if prev_col.button("Previous", disabled=page.number <= 1):
        st.session_state["directory_page"] = page.number - 1
        st.rerun()
    if next_col.button("Next", disabled=page.number >= page.total_pages):
        st.session_state["directory_page"] = page.number + 1
        st.rerun()


def render_agency_detail(slug: str) -> None:
    if st.button("Back to agencies"):
        st.session_state.pop("selected_agency_slug", None)
        st.rerun()

    with db_session() as db:
        agency = get_agency_by_slug(db, slug)
        if not agency or agency.status != "approved":
            st.warning("This agency is not available.")
            return
        record = agency_from_row(agency, [service.name for service in agency.services])
        record.image_url = cover_photo_url(agency)
        services = [(service.name, service.description) for service in agency.services]
        photos = [(photo.url, photo.caption) for photo in agency.photos]
        approved = list_reviews(db, agency.id, status="approved")
        reviews = [
            (review.author_name or "Student", review.rating, review.comment, review.response.content if review.response else None)
            for review in approved
        ]
        metrics = build_metrics(
            [review_from_row(review) for review in approved],
            [service_from_row(service) for service in agency.services],
            record.is_verified,
        )
        courses = [
            {"Course": c.course_name, "University": c.university_name, "Location": c.location, "Tuition": c.tuition_fee, "Duration": c.duration, "Degree": c.degree_type}
            for c in list_courses(db, agency.id)
        ]

    st.image(record.image_url, use_container_width=True)
    st.title(record.name)
    st.caption(f"{record.location} | {record.rating:.1f} stars | {t(LANGUAGE, 'trust_score')} {record.trust_score}/100")
    if record.is_verified:
        st.success(t(LANGUAGE, "verified"))
    st.write(record.description)

    contact_col, hours_col = st.columns(2)
    with contact_col:
        st.markdown("**Contact**")
        st.write(record.contact_email or "-")
        st.write(record.contact_phone or "-")
        if record.website:
            st.markdown(f"[{record.website}]({record.website})")
    with hours_col:
        st.markdown("**Business hours**")
        st.write(record.business_hours or "-")

    if services:
        st.markdown("### Services")
        for name, description in services:
            st.markdown(f"- **{name}** {description}")

    if photos:
        st.markdown("### Photos")
        photo_columns = st.columns(GRID_COLUMNS)
        for index, (url, caption) in enumerate(photos):
            photo_columns[index % GRID_COLUMNS].image(url, caption=caption or None)

    if courses:
        st.markdown("### Courses")
        st.dataframe(pd.DataFrame(courses), use_container_width=True, hide_index=True)

    st.download_button(
        t(LANGUAGE, "download_report"),
        data=build_trust_report_pdf(record, metrics, calculate_trust_score(metrics)),
        file_name=f"{record.slug}_trust_report.pdf",
        mime="application/pdf",
        key=f"report_{record.id}",
    )

    st.markdown(f"### {t(LANGUAGE, 'reviews')}")
    if not reviews:
        st.caption("No reviews yet.")
    for author, rating, comment, response in reviews:
        st.markdown(f"**{author}** {'★' * rating}")
        st.write(comment)
        if response:
            st.info(f"Agency response: {response}")

    with st.form(f"review_{record.id}"):
        st.markdown(f"**{t(LANGUAGE, 'write_review')}**")
        author_name = st.text_input("Your name")
        rating = st.slider("Rating", 1, 5, 5)
        comment = st.text_area("Comment")
        submitted = st.form_submit_button("Submit review")
    if submitted:
        user = get_current_user()
        try:
            with db_session() as db:
                submit_review(db, record.id, rating, comment, author_name, user["id"] if user else None)
            st.success(t(LANGUAGE, "review_pending"))
        except ValueError as exc:
            st.error(str(exc))
        except SQLAlchemyError as exc:
            logger.error("Review submission failed: %s", exc)
            st.error("Could not submit your review. Please try again.")


# Buddies, blog, chat


def render_buddies_page() -> None:
    st.title(t(LANGUAGE, "nav_buddies"))
    with db_session() as db:
        fields = [
            {"name": f.field_name, "label": f.field_label, "type": f.field_type, "required": f.is_required, "options": list(f.options or []), "placeholder": f.field_placeholder}
            for f in list_buddy_form_fields(db)
        ]

    search_tab, join_tab = st.tabs(["Search", "Join as a buddy"])
    with search_tab:
        with st.form("buddy_search"):
            col1, col2 = st.columns(2)
            criteria = {
                "destination_country": col1.text_input("Destination country"),
                "university": col2.text_input("University"),
                "field_of_study": col1.text_input("Field of study"),
                "intake": col2.text_input("Intake"),
            }
            st.form_submit_button("Search")
        with db_session() as db:
            buddies = [
                {"Name": b.full_name, "Country": b.destination_country, "University": b.university, "Field": b.field_of_study, "Intake": b.intake, "About": b.about_me}
                for b in search_buddies(db, criteria)
            ]
        if buddies:
            st.dataframe(pd.DataFrame(buddies), use_container_width=True, hide_index=True)
        else:
            st.info("No buddies found. Try fewer criteria.")

    with join_tab:
        with st.form("buddy_join"):
            payload: dict[str, Any] = {}
            for field in fields:
                label = field["label"] + (" *" if field["required"] else "")
                if field["type"] == "select" and field["options"]:
                    payload[field["name"]] = st.selectbox(label, [""] + field["options"])
                elif field["type"] == "textarea":
                    payload[field["name"]] = st.text_area(label, placeholder=field["placeholder"] or "")
                else:
                    payload[field["name"]] = st.text_input(label, placeholder=field["placeholder"] or "")
            joined = st.form_submit_button("Join")
        if joined:
            missing = [f["label"] for f in fields if f["required"] and not str(payload.get(f["name"]) or "").strip()]
            if missing:
                st.error(f"Please fill in: {', '.join(missing)}")
            else:
                try:
                    with db_session() as db:
                        save_buddy(db, payload)
                    st.success("You're listed! Other students can now find you.")
                except ValueError as exc:
                    st.error(str(exc))
                except SQLAlchemyError as exc:
                    logger.error("Buddy registration failed: %s", exc)
                    st.error("Could not save your profile. Please try again.")


def render_blog_page() -> None:
    st.title(t(LANGUAGE, "nav_blog"))
    with db_session() as db:
        posts = [(p.title, p.excerpt, p.content, p.author, p.category, p.published_on, p.image_url) for p in list_blog_posts(db)]
    categories = sorted({post[4] for post in posts})
    chosen = st.selectbox("Category", ["All"] + categories)
    for title, excerpt, content, author, category, published_on, image_url in posts:
        if chosen != "All" and category != chosen:
            continue
        with st.container(border=True):
            if image_url:
                st.image(image_url, use_container_width=True)
            st.subheader(title)
            st.caption(f"{category} | {author} | {published_on:%d %b %Y}")
            st.write(excerpt)
            with st.expander("Read more"):
                st.markdown(content)


def get_chat_service() -> ChatService | None:
    service = st.session_state.get("chat_service")
    if service is not None:
        return service
    try:
        generator = GeminiTextGenerator()
    except RuntimeError as exc:
        logger.warning("Chat assistant unavailable: %s", exc)
        return None
    user = st.session_state.get("auth_user")
    service = ChatService(SqlChatStore(db_session), generator, user_id=user["id"] if user else None)
    st.session_state["chat_service"] = service
    return service


def render_chat_page() -> None:
    st.title(t(LANGUAGE, "nav_chat"))
    service = get_chat_service()
    if service is None:
        st.warning("The study abroad guide is not configured. Set GOOGLE_API_KEY to enable it.")
        return

    if "chat_messages" not in st.session_state:
        session_id = service.initialize_session()
        st.session_state["chat_messages"] = service.get_messages(session_id)
        st.session_state["chat_unsubscribe"] = service.subscribe(session_id, st.session_state["chat_messages"].append)

    for message in st.session_state["chat_messages"]:
        render_chat_message(message)

    question = st.chat_input(t(LANGUAGE, "chat_placeholder"))
    if question and question.strip():
        with st.spinner("Thinking..."):
            service.send_message(question.strip())
        st.rerun()

    if st.button(t(LANGUAGE, "clear_chat")):
        unsubscribe = st.session_state.pop("chat_unsubscribe", None)
        if unsubscribe:
            unsubscribe()
        service.delete_history()
        st.session_state.pop("chat_messages", None)
        st.rerun()


# Bulk upload


def render_bulk_upload(
    kind: str,
    key: str,
    parse: Callable[[str], list[CsvRecord]],
    insert: Callable[[CsvRecord], Any],
    on_complete: Callable[[], None] | None = None,
) -> UploadStatus | None:
    file = st.file_uploader("CSV file", type=["csv"], key=f"{key}_file")
    if file is None:
        return None

    try:
        validate_upload_file(file.name, file.size)
        records = parse(file.getvalue().decode("utf-8-sig"))
    except (CsvUploadError, UnicodeDecodeError) as exc:
        st.error(str(exc))
        return None

    st.caption(f"{len(records)} {kind} ready to upload")
    st.dataframe(pd.DataFrame(records).head(20), use_container_width=True, hide_index=True)
    if not st.button(f"Upload {len(records)} {kind}", key=f"{key}_submit"):
        return None

    placeholder = st.empty()
    status = run_bulk_upload(
        records,
        insert,
        on_progress=lambda snapshot: render_upload_progress(placeholder, snapshot),
        on_complete=on_complete,
        max_workers=upload_workers(),
    )
    render_upload_result(kind, status)
    st.download_button(
        t(LANGUAGE, "download_summary"),
        data=build_upload_summary_json(kind, status),
        file_name=f"{kind}_upload_summary.json",
        mime="application/json",
        key=f"{key}_summary",
    )
    return status


def _audit_upload(kind: str, user: dict[str, Any], status: UploadStatus) -> None:
    with db_session() as db:
        record_audit(db, "bulk_upload_completed", {"kind": kind, **status.as_dict()}, user["id"])


# Agency admin


def render_agency_admin(user: dict[str, Any]) -> None:
    st.title(t(LANGUAGE, "nav_agency_admin"))
    with db_session() as db:
        owned = [(str(a.id), a.name, a.status) for a in list_owned_agencies(db, user["id"])]

    with st.expander("Register a new agency", expanded=not owned):
        with st.form("agency_create"):
            payload = {
                "name": st.text_input("Agency name *"),
                "location": st.text_input("Location *"),
                "description": st.text_area("Description"),
                "contact_email": st.text_input("Contact email"),
                "contact_phone": st.text_input("Contact phone"),
                "website": st.text_input("Website"),
                "business_hours": st.text_input("Business hours"),
                "price": st.number_input("Starting price", min_value=0, step=100),
            }
            created = st.form_submit_button("Submit for approval")
        if created:
            try:
                with db_session() as db:
                    create_agency(db, payload, user["id"])
                st.success("Agency submitted. A super admin will review it shortly.")
                st.rerun()
            except ValueError as exc:
                st.error(str(exc))
            except SQLAlchemyError as exc:
                logger.error("Agency registration failed: %s", exc)
                st.error("Could not register the agency. Please try again.")

    if not owned:
        return

    labels = {agency_id: f"{name} ({status})" for agency_id, name, status in owned}
    agency_id = st.selectbox("Agency", list(labels), format_func=labels.get, key="admin_agency_id")

    details_tab, services_tab, photos_tab, reviews_tab, courses_tab, trust_tab = st.tabs(
        ["Details", "Services", "Photos", "Reviews", "Courses", "Trust score"]
    )
    with details_tab:
        _agency_details_form(agency_id)
    with services_tab:
        _agency_services(agency_id)
    with photos_tab:
        _agency_photos(agency_id)
    with reviews_tab:
        _agency_reviews(agency_id)
    with courses_tab:
        _agency_courses(agency_id, user)
    with trust_tab:
        _agency_trust(agency_id)


def _agency_details_form(agency_id: str) -> None:
    with db_session() as db:
        agency = get_agency(db, agency_id)
    with st.form(f"details_{agency_id}"):
        changes = {
            "name": st.text_input("Name", value=agency.name),
            "location": st.text_input("Location", value=agency.location),
            "description": st.text_area("Description", value=agency.description),
            "contact_email": st.text_input("Contact email", value=agency.contact_email),
            "contact_phone": st.text_input("Contact phone", value=agency.contact_phone),
            "website": st.text_input("Website", value=agency.website),
            "business_hours": st.text_input("Business hours", value=agency.business_hours),
            "price": st.number_input("Starting price", min_value=0, step=100, value=int(agency.price)),
            "brochure_url": st.text_input("Brochure URL", value=agency.brochure_url or ""),
        }
        saved = st.form_submit_button("Save details")
    if saved:
        with db_session() as db:
            update_agency_details(db, agency_id, changes)
        load_directory.clear()
        st.success("Details saved.")


def _agency_services(agency_id: str) -> None:
    with db_session() as db:
        services = [(str(s.id), s.name, s.description) for s in get_agency(db, agency_id).services]
    for service_id, name, description in services:
        col1, col2 = st.columns([5, 1])
        col1.markdown(f"**{name}** {description}")
        if col2.button("Remove", key=f"remove_service_{service_id}"):
            on_error, errors = _trust_error_collector()
            with db_session() as db:
                delete_service(db, service_id, on_error)
            _show_trust_errors(errors)
            load_directory.clear()
            st.rerun()

    with st.form(f"service_{agency_id}", clear_on_submit=True):
        name = st.text_input("Service name")
        description = st.text_input("Description")
        added = st.form_submit_button("Add service")
    if added:
        on_error, errors = _trust_error_collector()
        try:
            with db_session() as db:
                add_service(db, agency_id, name, description, on_error)
        except ValueError as exc:
            st.error(str(exc))
            return
        _show_trust_errors(errors)
        load_directory.clear()
        st.rerun()


def _agency_photos(agency_id: str) -> None:
    with db_session() as db:
        photos = [(str(p.id), p.url, p.caption, p.is_cover) for p in get_agency(db, agency_id).photos]
    columns = st.columns(GRID_COLUMNS)
    for index, (photo_id, url, caption, is_cover) in enumerate(photos):
        with columns[index % GRID_COLUMNS]:
            st.image(url, caption=("Cover - " if is_cover else "") + (caption or ""))
            if not is_cover and st.button("Make cover", key=f"cover_{photo_id}"):
                with db_session() as db:
                    set_cover_photo(db, photo_id)
                load_directory.clear()
                st.rerun()
            if st.button("Delete", key=f"delete_photo_{photo_id}"):
                with db_session() as db:
                    delete_photo(db, photo_id)
                load_directory.clear()
                st.rerun()

    with st.form(f"photo_{agency_id}", clear_on_submit=True):
        url = st.text_input("Image URL")
        caption = st.text_input("Caption")
        is_cover = st.checkbox("Use as cover photo")
        added = st.form_submit_button("Add photo")
    if added and url.strip():
        with db_session() as db:
            add_photo(db, agency_id, url.strip(), caption, is_cover)
        load_directory.clear()
        st.rerun()


def _agency_reviews(agency_id: str) -> None:
    with db_session() as db:
        reviews = [
            (str(r.id), r.author_name or "Student", r.rating, r.comment, r.status, r.response.content if r.response else "")
            for r in list_reviews(db, agency_id)
        ]
    if not reviews:
        st.caption("No reviews yet.")
    for review_id, author, rating, comment, status, response in reviews:
        with st.container(border=True):
            st.markdown(f"**{author}** {'★' * rating} `{status}`")
            st.write(comment)
            col1, col2, col3 = st.columns(3)
            action = None
            if status != "approved" and col1.button("Approve", key=f"approve_{review_id}"):
                action = "approved"
            if status != "rejected" and col2.button("Reject", key=f"reject_{review_id}"):
                action = "rejected"
            remove = col3.button("Delete", key=f"delete_review_{review_id}")
            if action or remove:
                on_error, errors = _trust_error_collector()
                with db_session() as db:
                    if remove:
                        delete_review(db, review_id, on_error)
                    else:
                        set_review_status(db, review_id, action, on_error)
                _show_trust_errors(errors)
                load_directory.clear()
                st.rerun()

            with st.form(f"respond_{review_id}"):
                reply = st.text_area("Response", value=response)
                sent = st.form_submit_button("Save response")
            if sent:
                try:
                    with db_session() as db:
                        respond_to_review(db, review_id, reply)
                    st.success("Response saved.")
                except ValueError as exc:
                    st.error(str(exc))


def _agency_courses(agency_id: str, user: dict[str, Any]) -> None:
    st.download_button(
        t(LANGUAGE, "download_template"),
        data=course_template_csv(),
        file_name="course_template.csv",
        mime="text/csv",
    )

    def insert(record: CsvRecord) -> None:
        with db_session() as db:
            insert_course(db, record, agency_id)

    st.markdown(f"#### {t(LANGUAGE, 'upload_courses')}")
    status = render_bulk_upload("courses", f"courses_{agency_id}", parse_course_csv, insert)
    if status is not None:
        _audit_upload("courses", user, status)

    with db_session() as db:
        courses = [
            {"Course": c.course_name, "University": c.university_name, "Location": c.location, "Tuition": c.tuition_fee, "Duration": c.duration, "Degree": c.degree_type}
            for c in list_courses(db, agency_id)
        ]
    if courses:
        st.dataframe(pd.DataFrame(courses), use_container_width=True, hide_index=True)


def _agency_trust(agency_id: str) -> None:
    on_error, errors = _trust_error_collector()
    with db_session() as db:
        if st.session_state.get("trust_refreshed_for") != agency_id:
            recompute_agency_trust(db, agency_id, on_error)
            st.session_state["trust_refreshed_for"] = agency_id
        agency = get_agency(db, agency_id)
        record = agency_from_row(agency, [s.name for s in agency.services])
        reviews = [review_from_row(r) for r in list_reviews(db, agency_id)]
        services = [service_from_row(s) for s in agency.services]
    metrics = build_metrics(reviews, services, record.is_verified)
    score = calculate_trust_score(metrics)
    _show_trust_errors(errors)
    render_trust_metrics(metrics, score)
    st.caption("Trust score = average rating (50) + services (5 each, up to 30) + verification (20).")
    st.download_button(
        t(LANGUAGE, "download_report"),
        data=build_trust_report_pdf(record, metrics, score),
        file_name=f"{record.slug or 'agency'}_trust_report.pdf",
        mime="application/pdf",
    )


# Super admin


def render_super_admin(user: dict[str, Any]) -> None:
    st.title(t(LANGUAGE, "nav_super_admin"))
    agencies_tab, upload_tab, blog_tab, buddies_tab, form_tab = st.tabs(
        ["Agencies", "Bulk upload", "Blog", "Buddies", "Buddy form"]
    )
    with agencies_tab:
        _super_admin_agencies(user)
    with upload_tab:
        _super_admin_upload(user)
    with blog_tab:
        _super_admin_blog()
    with buddies_tab:
        _super_admin_buddies()
    with form_tab:
        _super_admin_buddy_form()


def _super_admin_agencies(user: dict[str, Any]) -> None:
    status_filter = st.selectbox("Status", ["all", "pending", "approved", "rejected"], key="super_status_filter")
    with db_session() as db:
        agencies = [
            {"id": str(a.id), "name": a.name, "location": a.location, "status": a.status, "verified": a.is_verified, "trust_score": a.trust_score, "rating": a.rating}
            for a in list_agencies(db, status_filter)
        ]
    if not agencies:
        st.info("No agencies found.")
        return

    df = pd.DataFrame(agencies)
    st.dataframe(df.drop(columns=["id"]), use_container_width=True, hide_index=True)

    labels = {a["id"]: f"{a['name']} ({a['status']})" for a in agencies}
    agency_id = st.selectbox("Select agency", list(labels), format_func=labels.get, key="super_agency_id")
    target = next(a for a in agencies if a["id"] == agency_id)

    col1, col2, col3 = st.columns(3)
    if col1.button("Approve", disabled=target["status"] == "approved"):
        with db_session() as db:
            set_agency_status(db, agency_id, "approved", user["id"])
        load_directory.clear()
        st.rerun()
    if col2.button("Reject", disabled=target["status"] == "rejected"):
        with db_session() as db:
            set_agency_status(db, agency_id, "rejected", user["id"])
        load_directory.clear()
        st.rerun()
    verify_label = "Remove verification" if target["verified"] else "Mark verified"
    if col3.button(verify_label):
        on_error, errors = _trust_error_collector()
        with db_session() as db:
            set_agency_verification(db, agency_id, not target["verified"], user["id"], on_error)
        _show_trust_errors(errors)
        load_directory.clear()
        st.rerun()

    with st.form("trust_override"):
        score = st.number_input("Trust score override", min_value=0, max_value=100, value=int(target["trust_score"]))
        overridden = st.form_submit_button("Set trust score")
    if overridden:
        with db_session() as db:
            override_trust_score(db, agency_id, int(score), user["id"])
        load_directory.clear()
        st.success("Trust score updated. It will be recalculated on the next review, service or verification change.")


def _super_admin_upload(user: dict[str, Any]) -> None:
    st.markdown(f"#### {t(LANGUAGE, 'upload_agencies')}")
    st.caption("Required columns: name, location, description, contact_email. Imported agencies start as pending.")

    def insert(record: CsvRecord) -> None:
        with db_session() as db:
            insert_agency(db, record, user["id"])

    status = render_bulk_upload("agencies", "agencies", parse_agency_csv, insert, on_complete=load_directory.clear)
    if status is not None:
        _audit_upload("agencies", user, status)


def _super_admin_blog() -> None:
    with db_session() as db:
        posts = [(str(p.id), p.title, p.excerpt, p.content, p.author, p.category, p.image_url or "") for p in list_blog_posts(db)]
    options = {"": "New post"} | {post_id: title for post_id, title, *_ in posts}
    post_id = st.selectbox("Post", list(options), format_func=options.get, key="super_blog_post")
    current = next((p for p in posts if p[0] == post_id), ("", "", "", "", "", "", ""))

    with st.form("blog_post"):
        payload = {
            "title": st.text_input("Title *", value=current[1]),
            "excerpt": st.text_area("Excerpt", value=current[2]),
            "content": st.text_area("Content *", value=current[3], height=240),
            "author": st.text_input("Author *", value=current[4]),
            "category": st.text_input("Category *", value=current[5]),
            "image_url": st.text_input("Image URL", value=current[6]),
        }
        saved = st.form_submit_button("Save post")
    if saved:
        try:
            with db_session() as db:
                save_blog_post(db, payload, post_id or None)
            st.success("Post saved.")
            st.rerun()
        except ValueError as exc:
            st.error(str(exc))
        except SQLAlchemyError as exc:
            logger.error("Blog post save failed: %s", exc)
            st.error("Could not save the post. Please try again.")

    if post_id and st.button("Delete post"):
        with db_session() as db:
            delete_blog_post(db, post_id)
        st.rerun()


def _super_admin_buddies() -> None:
    with db_session() as db:
        buddies = [{"id": str(b.id), **{key: getattr(b, key) for key in BUDDY_FIELDS}} for b in search_buddies(db, {})]
    if not buddies:
        st.info("No buddies registered yet.")
        return
    st.dataframe(pd.DataFrame(buddies).drop(columns=["id"]), use_container_width=True, hide_index=True)
    labels = {b["id"]: f"{b['full_name']} ({b['email']})" for b in buddies}
    buddy_id = st.selectbox("Buddy", list(labels), format_func=labels.get, key="super_buddy_id")
    if st.button("Remove buddy"):
        with db_session() as db:
            delete_buddy(db, buddy_id)
        st.rerun()


def _super_admin_buddy_form() -> None:
    with db_session() as db:
        fields = [
            (str(f.id), f.field_name, f.field_label, f.field_type, f.field_placeholder or "", f.is_required, ", ".join(f.options or []), f.order)
            for f in list_buddy_form_fields(db)
        ]
    if fields:
        st.dataframe(
            pd.DataFrame(fields, columns=["id", "name", "label", "type", "placeholder", "required", "options", "order"]).drop(columns=["id"]),
            use_container_width=True,
            hide_index=True,
        )

    options = {"": "New field"} | {field[0]: field[2] for field in fields}
    field_id = st.selectbox("Field", list(options), format_func=options.get, key="super_buddy_field")
    current = next((f for f in fields if f[0] == field_id), ("", "", "", "text", "", False, "", len(fields) + 1))

    with st.form("buddy_field"):
        field_types = ["text", "textarea", "select"]
        payload = {
            "field_name": st.text_input("Field name", value=current[1]),
            "field_label": st.text_input("Label", value=current[2]),
            "field_type": st.selectbox("Type", field_types, index=field_types.index(current[3]) if current[3] in field_types else 0),
            "field_placeholder": st.text_input("Placeholder", value=current[4]),
            "is_required": st.checkbox("Required", value=current[5]),
            "options": st.text_input("Options (comma-separated)", value=current[6]).split(","),
            "order": st.number_input("Order", min_value=0, value=int(current[7]), step=1),
        }
        saved = st.form_submit_button("Save field")
    if saved:
        try:
            with db_session() as db:
                save_buddy_form_field(db, payload, field_id or None)
            st.rerun()
        except ValueError as exc:
            st.error(str(exc))

    if field_id and st.button("Delete field"):
        with db_session() as db:
            delete_buddy_form_field(db, field_id)
        st.rerun()


# Shell


def render_app() -> None:
    bootstrap()
    page = st.sidebar.radio("Navigate", PAGES, format_func=lambda key: t(LANGUAGE, key), key="nav_page")

    if page == "nav_directory":
        slug = st.session_state.get("selected_agency_slug")
        if slug:
            render_agency_detail(slug)
        else:
            render_directory_page()
    elif page == "nav_buddies":
        render_buddies_page()
    elif page == "nav_blog":
        render_blog_page()
    elif page == "nav_chat":
        render_chat_page()
    elif page == "nav_agency_admin":
        user = render_login("admin")
        if user:
            render_agency_admin(user)
    else:
        user = render_login("super_admin")
        if user:
            render_super_admin(user)


def main() -> None:
    configure_logging()
    try:
        render_app()
    except Exception as exc:
        logger.exception("Unhandled error while rendering page")
        retry, reload_app = render_error_fallback(LANGUAGE, exc)
        if reload_app:
            st.session_state.clear()
            st.cache_data.clear()
            st.rerun()
        if retry:
            st.rerun()


if __name__ == "__main__":
    main()
