import pytest

from records import AgencyRecord, ReviewRecord, ServiceRecord
from trust import (
    TrustScoreMetrics,
    approved_average,
    build_metrics,
    calculate_trust_score,
    refresh_trust_score,
)


def reviews(*ratings: int, status: str = "approved") -> list[ReviewRecord]:
    return [ReviewRecord(rating=r, status=status) for r in ratings]


def services(count: int) -> list[ServiceRecord]:
    return [ServiceRecord(name=f"Service {i}") for i in range(count)]


def agency(**overrides) -> AgencyRecord:
    data = {"id": "agency-1", "name": "Global Ed", "trust_score": 42}
    data.update(overrides)
    return AgencyRecord(**data)


def test_calculate_trust_score_example() -> None:
    metrics = build_metrics(reviews(4, 5, 3), services(2), is_verified=True)

    # 4.0 / 5 * 50 = 40, services 10, verification 20
    assert metrics == TrustScoreMetrics(average_rating=4.0, total_reviews=3, service_count=2, is_verified=True)
    assert calculate_trust_score(metrics) == 70


def test_calculate_trust_score_empty_agency_is_zero() -> None:
    assert calculate_trust_score(build_metrics([], [], False)) == 0


def test_calculate_trust_score_maximum_is_100() -> None:
    metrics = build_metrics(reviews(5, 5), services(10), True)
    assert calculate_trust_score(metrics) == 100


def test_services_contribution_is_capped_at_30() -> None:
    six = calculate_trust_score(build_metrics([], services(6), False))
    twelve = calculate_trust_score(build_metrics([], services(12), False))
    assert six == twelve == 30


def test_only_approved_reviews_count() -> None:
    mixed = reviews(5) + reviews(1, 1, status="pending") + reviews(1, status="rejected")

    average, count = approved_average(mixed)

    assert average == 5.0
    assert count == 1


def test_score_rounds_to_nearest_integer() -> None:
    assert calculate_trust_score(build_metrics(reviews(5, 4, 4), [], False)) == 43
    assert calculate_trust_score(build_metrics(reviews(4, 4, 3), [], False)) == 37
    assert calculate_trust_score(TrustScoreMetrics(4.5, 2, 3, False)) == 60


@pytest.mark.parametrize("rating_sum,count,service_count,verified", [(0, 0, 0, False), (7, 2, 3, True), (23, 5, 9, False), (1, 1, 1, True)])
def test_trust_score_stays_in_range(rating_sum: int, count: int, service_count: int, verified: bool) -> None:
    average = rating_sum / count if count else 0.0
    score = calculate_trust_score(TrustScoreMetrics(average, count, service_count, verified))
    assert isinstance(score, int)
    assert 0 <= score <= 100


@pytest.mark.parametrize("verified", [False, True])
@pytest.mark.parametrize("service_count", range(0, 9))
def test_trust_score_never_drops_as_rating_rises(service_count: int, verified: bool) -> None:
    ratings = [step / 10 for step in range(0, 51)]
    scores = [calculate_trust_score(TrustScoreMetrics(r, 1, service_count, verified)) for r in ratings]
    assert scores == sorted(scores)


@pytest.mark.parametrize("verified", [False, True])
@pytest.mark.parametrize("average", [0.0, 1.5, 2.5, 3.3, 4.7, 5.0])
def test_trust_score_never_drops_as_services_grow(average: float, verified: bool) -> None:
    scores = [calculate_trust_score(TrustScoreMetrics(average, 1, count, verified)) for count in range(0, 9)]
    assert scores == sorted(scores)
    assert scores[6] == scores[7] == scores[8]


@pytest.mark.parametrize("service_count", range(0, 9))
@pytest.mark.parametrize("average", [0.0, 2.2, 3.5, 5.0])
def test_verification_always_raises_score(average: float, service_count: int) -> None:
    unverified = calculate_trust_score(TrustScoreMetrics(average, 1, service_count, False))
    verified = calculate_trust_score(TrustScoreMetrics(average, 1, service_count, True))
    assert verified > unverified


def test_refresh_trust_score_persists_and_updates_record() -> None:
    target = agency(is_verified=True)
    writes: list[tuple[str, int]] = []

    score = refresh_trust_score(target, reviews(5), services(1), lambda agency_id, value: writes.append((agency_id, value)))

    assert score == 75
    assert writes == [("agency-1", 75)]
    assert target.trust_score == 75


def test_refresh_trust_score_failure_keeps_previous_score() -> None:
    target = agency()
    diagnostics: list[Exception] = []

    def persist(_: str, __: int) -> None:
        raise ConnectionError("network down")

    score = refresh_trust_score(target, reviews(5), services(2), persist, on_error=diagnostics.append)

    assert score is None
    assert target.trust_score == 42
    assert len(diagnostics) == 1
    assert isinstance(diagnostics[0], ConnectionError)


def test_refresh_trust_score_failure_without_hook_does_not_raise() -> None:
    def persist(_: str, __: int) -> None:
        raise RuntimeError("boom")

    assert refresh_trust_score(agency(), [], [], persist) is None
