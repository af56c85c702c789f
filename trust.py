from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Sequence

from records import AgencyRecord, ReviewRecord, ServiceRecord


logger = logging.getLogger(__name__)

RATING_WEIGHT = 50
SERVICE_POINTS = 5
SERVICE_CAP = 30
VERIFICATION_POINTS = 20


@dataclass
class TrustScoreMetrics:
    average_rating: float
    total_reviews: int
    service_count: int
    is_verified: bool


def approved_average(reviews: Sequence[ReviewRecord]) -> tuple[float, int]:
    approved = [r for r in reviews if r.status == "approved"]
    if not approved:
        return 0.0, 0
    return sum(r.rating for r in approved) / len(approved), len(approved)


def build_metrics(reviews: Sequence[ReviewRecord], services: Sequence[ServiceRecord], is_verified: bool) -> TrustScoreMetrics:
    average, count = approved_average(reviews)
    return TrustScoreMetrics(
        average_rating=average,
        total_reviews=count,
        service_count=len(services),
        is_verified=bool(is_verified),
    )


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_trust_score(metrics: TrustScoreMetrics) -> int:
    """Weighted 0-100 score: rating up to 50, services up to 30, verification 20."""
    rating_score = (metrics.average_rating / 5) * RATING_WEIGHT
    services_score = min(metrics.service_count * SERVICE_POINTS, SERVICE_CAP)
    verification_score = VERIFICATION_POINTS if metrics.is_verified else 0
    return _round_half_up(rating_score + services_score + verification_score)


def refresh_trust_score(
    agency: AgencyRecord,
    reviews: Sequence[ReviewRecord],
    services: Sequence[ServiceRecord],
    persist: Callable[[str, int], None],
    on_error: Callable[[Exception], None] | None = None,
) -> int | None:
    """Recompute and store an agency's trust score, best effort.

    On success the agency record is updated in place so callers can redraw
    without reloading. On failure the previous score stays as it was, the
    error is logged and handed to ``on_error``; nothing is raised.
    """
    try:
        metrics = build_metrics(reviews, services, agency.is_verified)
        score = calculate_trust_score(metrics)
        persist(agency.id, score)
    except Exception as exc:
        logger.warning("Trust score refresh failed for agency %s: %s", agency.id, exc)
        if on_error:
            on_error(exc)
        return None

    agency.trust_score = score
    return score
