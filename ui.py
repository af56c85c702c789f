from __future__ import annotations

from html import escape

import streamlit as st

from chat import ChatMessageRecord
from csv_upload import UploadStatus
from records import AgencyRecord
from trust import TrustScoreMetrics


I18N = {
    "en": {
        "app_title": "AgencyCompass - Find Trusted Study Abroad Agencies",
        "subtitle": "Compare verified education agencies, read student reviews and plan your move overseas.",
        "nav_directory": "Agencies",
        "nav_buddies": "Find a Buddy",
        "nav_blog": "Blog",
        "nav_chat": "Ask the Guide",
        "nav_agency_admin": "My Agency",
        "nav_super_admin": "Super Admin",
        "search": "Search agencies, locations or services",
        "min_rating": "Minimum rating",
        "max_price": "Maximum price",
        "specializations": "Services",
        "verified_only": "Verified agencies only",
        "location": "Location",
        "no_results": "No agencies match these filters yet. Try widening your search.",
        "verified": "Verified",
        "trust_score": "Trust score",
        "reviews": "Reviews",
        "write_review": "Write a review",
        "review_pending": "Thanks! Your review will appear once it has been approved.",
        "upload_courses": "Bulk upload courses",
        "upload_agencies": "Bulk upload agencies",
        "download_template": "Download CSV template",
        "download_report": "Download trust report (PDF)",
        "download_summary": "Download upload summary (JSON)",
        "chat_placeholder": "Ask about universities, visas, scholarships...",
        "clear_chat": "Clear conversation",
        "login": "Sign in",
        "logout": "Sign out",
        "error_title": "Something went wrong",
        "error_body": "The page hit an unexpected error. You can try again or reload the app.",
        "try_again": "Try again",
        "reload": "Reload app",
    },
}


@st.cache_data
def get_i18n(language: str) -> dict[str, str]:
    return I18N.get(language, I18N["en"])


def t(language: str, key: str) -> str:
    return get_i18n(language).get(key, key)


def inject_css() -> None:
    st.markdown(
        """
        <style>
            :root {
                --primary-blue: #0D47A1;
                --primary-orange: #FF7A00;
                --text-main: #1b2f4b;
                --text-muted: #4d6581;
                --surface: #ffffff;
                --surface-soft: #f5f9ff;
                --border: #d1def1;
                --success: #15803d;
            }
            [data-testid="stAppViewContainer"] {
                background: linear-gradient(180deg, #ffffff 0%, #f4f8ff 100%);
                color: var(--text-main);
            }
            [data-testid="stSidebar"] {
                background: linear-gradient(180deg, #1e40af, var(--primary-blue));
            }
            [data-testid="stSidebar"] * {
                color: #eaf3ff !important;
            }
            .ac-hero {
                background: linear-gradient(132deg, #0D47A1 0%, #1E5CCB 54%, #FF7A00 100%);
                border-radius: 18px;
                color: #ffffff;
                padding: 1.4rem 1.6rem;
                margin-bottom: 1rem;
            }
            .ac-hero h1 {
                color: #ffffff !important;
                font-size: 1.7rem;
                margin: 0 0 0.3rem 0;
            }
            .ac-card {
                background: var(--surface);
                border: 1px solid var(--border);
                border-radius: 14px;
                padding: 0.9rem;
                margin-bottom: 0.9rem;
                box-shadow: 0 6px 18px rgba(13, 71, 161, 0.06);
            }
            .ac-card img {
                width: 100%;
                height: 150px;
                object-fit: cover;
                border-radius: 10px;
            }
            .ac-card-title {
                font-weight: 700;
                font-size: 1.05rem;
                margin: 0.5rem 0 0.1rem 0;
            }
            .ac-muted {
                color: var(--text-muted);
                font-size: 0.88rem;
            }
            .ac-chip {
                display: inline-block;
                background: var(--surface-soft);
                border: 1px solid var(--border);
                border-radius: 999px;
                padding: 0.1rem 0.55rem;
                margin: 0.15rem 0.2rem 0 0;
                font-size: 0.78rem;
            }
            .ac-chip.verified {
                background: #dcfce7;
                border-color: #86efac;
                color: var(--success);
            }
            .ac-meter {
                margin: 0.35rem 0 0.6rem 0;
            }
            .ac-meter-head {
                display: flex;
                justify-content: space-between;
                font-size: 0.85rem;
            }
            .ac-meter-track {
                background: #e6eefb;
                border-radius: 999px;
                height: 8px;
                overflow: hidden;
            }
            .ac-meter-fill {
                background: linear-gradient(90deg, var(--primary-blue), var(--primary-orange));
                height: 100%;
            }
            .ac-message {
                border-radius: 12px;
                padding: 0.6rem 0.8rem;
                margin-bottom: 0.5rem;
                max-width: 85%;
            }
            .ac-message.bot {
                background: var(--surface-soft);
                border: 1px solid var(--border);
            }
            .ac-message.user {
                background: var(--primary-blue);
                color: #ffffff;
                margin-left: auto;
            }
        </style>
        """,
        unsafe_allow_html=True,
    )


def render_hero(language: str) -> None:
    st.markdown(
        f"""
        <div class="ac-hero">
            <h1>{escape(t(language, "app_title"))}</h1>
            <div>{escape(t(language, "subtitle"))}</div>
        </div>
        """,
        unsafe_allow_html=True,
    )


def render_meter(label: str, pct: float, value_text: str | None = None) -> None:
    pct = max(0.0, min(1.0, pct))
    pct_text = value_text or f"{int(round(pct * 100))}%"
    st.markdown(
        f"""
        <div class="ac-meter">
            <div class="ac-meter-head">
                <span>{escape(label)}</span>
                <span>{escape(pct_text)}</span>
            </div>
            <div class="ac-meter-track">
                <div class="ac-meter-fill" style="width: {pct * 100:.1f}%;"></div>
            </div>
        </div>
        """,
        unsafe_allow_html=True,
    )


def render_agency_card(agency: AgencyRecord, language: str) -> None:
    chips = [f"<span class='ac-chip'>{escape(name)}</span>" for name in agency.specializations[:4]]
    if agency.is_verified:
        chips.insert(0, f"<span class='ac-chip verified'>{escape(t(language, 'verified'))}</span>")
    price = f"From ${agency.price:,}" if agency.price else "Contact for pricing"
    st.markdown(
        f"""
        <div class="ac-card">
            <img src="{escape(agency.image_url)}" alt="{escape(agency.name)}" />
            <div class="ac-card-title">{escape(agency.name)}</div>
            <div class="ac-muted">{escape(agency.location)} | {agency.rating:.1f} stars | {escape(price)}</div>
            <div>{''.join(chips)}</div>
        </div>
        """,
        unsafe_allow_html=True,
    )
    render_meter(t(language, "trust_score"), agency.trust_score / 100, f"{agency.trust_score}/100")


def render_trust_metrics(metrics: TrustScoreMetrics, score: int) -> None:
    render_meter("Trust score", score / 100, f"{score}/100")
    col1, col2, col3 = st.columns(3)
    col1.metric("Average rating", f"{metrics.average_rating:.1f}", help=f"{metrics.total_reviews} approved reviews")
    col2.metric("Services", metrics.service_count)
    col3.metric("Verified", "Yes" if metrics.is_verified else "No")


def render_upload_progress(placeholder, status: UploadStatus) -> None:
    placeholder.progress(
        status.fraction,
        text=f"Processed {status.processed}/{status.total} | {status.success} succeeded | {status.failed} failed",
    )


def render_upload_result(kind: str, status: UploadStatus) -> None:
    if status.failed:
        st.warning(f"Successfully uploaded {status.success} {kind}. Failed to upload {status.failed} {kind}.")
    else:
        st.success(f"Successfully uploaded {status.success} {kind}.")


def render_chat_message(message: ChatMessageRecord) -> None:
    role = "user" if message.type == "user" else "assistant"
    with st.chat_message(role):
        st.markdown(message.text)


def render_error_fallback(language: str, error: Exception) -> tuple[bool, bool]:
    st.error(t(language, "error_title"))
    st.write(t(language, "error_body"))
    with st.expander("Details"):
        st.code(f"{type(error).__name__}: {error}")
    col1, col2 = st.columns(2)
    retry = col1.button(t(language, "try_again"), key="error_try_again")
    reload_app = col2.button(t(language, "reload"), key="error_reload")
    return retry, reload_app
