import pytest

from listings import (
    PAGE_SIZE,
    FilterState,
    build_listing,
    filter_agencies,
    next_page_index,
    paginate,
    sort_agencies,
)
from records import AgencyRecord


def make_agency(name: str, **overrides) -> AgencyRecord:
    data = {
        "id": name.lower().replace(" ", "-"),
        "name": name,
        "location": "London, UK",
        "description": "Study abroad support",
        "rating": 4.0,
        "price": 1000,
        "specializations": ["Visa Assistance"],
        "is_verified": False,
    }
    data.update(overrides)
    return AgencyRecord(**data)


@pytest.fixture
def agencies() -> list[AgencyRecord]:
    return [
        make_agency("Maple Leaf", location="Toronto, Canada", rating=4.6, price=1200, specializations=["Accommodation"], is_verified=True),
        make_agency("global pathways", description="UK university placements", rating=3.2, price=800),
        make_agency("Southern Cross", location="Sydney, Australia", rating=4.9, price=2500, specializations=["Test Preparation", "Visa Assistance"]),
        make_agency("1st Choice", rating=2.0, price=300, specializations=[]),
    ]


def names(items: list[AgencyRecord]) -> list[str]:
    return [a.name for a in items]


def test_empty_filter_keeps_everything(agencies: list[AgencyRecord]) -> None:
    assert len(filter_agencies(agencies, FilterState())) == 4


@pytest.mark.parametrize(
    "query,expected",
    [
        ("maple", ["Maple Leaf"]),
        ("CANADA", ["Maple Leaf"]),
        ("placements", ["global pathways"]),
        ("test prep", ["Southern Cross"]),
        ("nothing-matches", []),
    ],
)
def test_search_matches_name_location_description_and_services(agencies: list[AgencyRecord], query: str, expected: list[str]) -> None:
    assert names(filter_agencies(agencies, FilterState(search_query=query))) == expected


def test_min_rating_filter(agencies: list[AgencyRecord]) -> None:
    result = filter_agencies(agencies, FilterState(min_rating=4))
    assert sorted(names(result)) == ["Maple Leaf", "Southern Cross"]


def test_max_price_filter_ignores_non_numeric_input(agencies: list[AgencyRecord]) -> None:
    assert sorted(names(filter_agencies(agencies, FilterState(max_price="1000")))) == ["1st Choice", "global pathways"]
    assert len(filter_agencies(agencies, FilterState(max_price="cheap"))) == 4
    assert len(filter_agencies(agencies, FilterState(max_price="  "))) == 4


def test_specialization_filter_needs_any_overlap(agencies: list[AgencyRecord]) -> None:
    result = filter_agencies(agencies, FilterState(specializations=("Visa Assistance", "Accommodation")))
    assert sorted(names(result)) == ["Maple Leaf", "Southern Cross", "global pathways"]


def test_verified_only_and_location(agencies: list[AgencyRecord]) -> None:
    assert names(filter_agencies(agencies, FilterState(verified_only=True))) == ["Maple Leaf"]
    assert names(filter_agencies(agencies, FilterState(location="sydney"))) == ["Southern Cross"]


def test_filters_combine(agencies: list[AgencyRecord]) -> None:
    state = FilterState(search_query="uk", min_rating=3, max_price="900")
    assert names(filter_agencies(agencies, state)) == ["global pathways"]


def test_sort_puts_digit_names_last_and_ignores_case(agencies: list[AgencyRecord]) -> None:
    assert names(sort_agencies(agencies)) == ["global pathways", "Maple Leaf", "Southern Cross", "1st Choice"]


def test_sort_orders_digit_group_alphabetically() -> None:
    items = [make_agency("2 Go Study"), make_agency("Zed"), make_agency("10 Stars"), make_agency("alpha")]
    assert names(sort_agencies(items)) == ["alpha", "Zed", "10 Stars", "2 Go Study"]


def test_paginate_uses_page_size_and_clamps() -> None:
    items = [make_agency(f"Agency {i:02d}") for i in range(30)]

    first = paginate(items, 1)
    last = paginate(items, 3)
    beyond = paginate(items, 99)
    before = paginate(items, 0)

    assert len(first.items) == PAGE_SIZE == 12
    assert first.total_pages == 3
    assert len(last.items) == 6
    assert beyond.number == 3
    assert before.number == 1


def test_paginate_empty_has_one_page() -> None:
    page = paginate([], 4)
    assert page.items == []
    assert page.number == 1
    assert page.total_pages == 1


def test_next_page_index_resets_on_filter_change() -> None:
    before = FilterState(search_query="uk")
    assert next_page_index(before, FilterState(search_query="uk"), 3) == 3
    assert next_page_index(before, FilterState(search_query="uk", verified_only=True), 3) == 1
    assert next_page_index(None, before, 3) == 1


def test_build_listing_filters_sorts_and_pages(agencies: list[AgencyRecord]) -> None:
    page = build_listing(agencies, FilterState(min_rating=3))
    assert names(page.items) == ["global pathways", "Maple Leaf", "Southern Cross"]
    assert page.total_items == 3
