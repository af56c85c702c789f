from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Sequence

from records import AgencyRecord


PAGE_SIZE = 12


@dataclass(frozen=True)
class FilterState:
    search_query: str = ""
    min_rating: float = 0
    max_price: str = ""
    specializations: tuple[str, ...] = field(default_factory=tuple)
    verified_only: bool = False
    location: str = ""


@dataclass
class Page:
    items: list[AgencyRecord]
    number: int
    total_pages: int
    total_items: int


def _price_cap(max_price: str) -> float | None:
    value = (max_price or "").strip()
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def matches_search(agency: AgencyRecord, query: str) -> bool:
    needle = (query or "").strip().lower()
    if not needle:
        return True
    hay = [agency.name, agency.location, agency.description]
    if any(needle in (text or "").lower() for text in hay):
        return True
    return any(needle in item.lower() for item in agency.specializations)


def filter_agencies(agencies: Sequence[AgencyRecord], filters: FilterState) -> list[AgencyRecord]:
    price_cap = _price_cap(filters.max_price)
    wanted = set(filters.specializations)
    location = (filters.location or "").strip().lower()

    output: list[AgencyRecord] = []
    for agency in agencies:
        if not matches_search(agency, filters.search_query):
            continue
        if filters.min_rating > 0 and agency.rating < filters.min_rating:
            continue
        if price_cap is not None and agency.price > price_cap:
            continue
        if wanted and not (wanted & set(agency.specializations)):
            continue
        if filters.verified_only and agency.is_verified is not True:
            continue
        if location and location not in (agency.location or "").lower():
            continue
        output.append(agency)
    return output


def listing_sort_key(agency: AgencyRecord) -> tuple[bool, str, str]:
    name = (agency.name or "").strip()
    # Names starting with a digit always trail alphabetic names.
    return (name[:1].isdigit(), name.casefold(), name)


def sort_agencies(agencies: Sequence[AgencyRecord]) -> list[AgencyRecord]:
    return sorted(agencies, key=listing_sort_key)


def paginate(items: Sequence[AgencyRecord], page: int, page_size: int = PAGE_SIZE) -> Page:
    total_pages = max(1, math.ceil(len(items) / page_size))
    number = min(max(1, page), total_pages)
    start = (number - 1) * page_size
    return Page(items=list(items[start:start + page_size]), number=number, total_pages=total_pages, total_items=len(items))


def next_page_index(previous: FilterState | None, current: FilterState, page: int) -> int:
    if previous is None or previous != current:
        return 1
    return page


def build_listing(agencies: Sequence[AgencyRecord], filters: FilterState, page: int = 1) -> Page:
    return paginate(sort_agencies(filter_agencies(agencies, filters)), page)
