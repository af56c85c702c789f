from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any


@dataclass
class ServiceRecord:
    name: str
    description: str = ""
    id: str | None = None


@dataclass
class ReviewRecord:
    rating: int
    status: str
    id: str | None = None
    comment: str = ""


@dataclass
class AgencyRecord:
    id: str
    name: str
    slug: str = ""
    location: str = ""
    description: str = ""
    rating: float = 0.0
    trust_score: int = 0
    price: int = 0
    specializations: list[str] = field(default_factory=list)
    is_verified: bool = False
    status: str = "pending"
    contact_email: str = ""
    contact_phone: str = ""
    website: str = ""
    business_hours: str = ""
    image_url: str = ""


def _field(row: Any, name: str, default: Any = None) -> Any:
    if isinstance(row, dict):
        value = row.get(name, default)
    else:
        value = getattr(row, name, default)
    return default if value is None else value


def _to_float(value: Any, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return float(value)
    return float(value)


def _to_int(value: Any, default: int = 0) -> int:
    if value is None or value == "":
        return default
    return int(float(value))


def _id_text(value: Any) -> str | None:
    return str(value) if value is not None else None


def service_from_row(row: Any) -> ServiceRecord:
    return ServiceRecord(
        name=str(_field(row, "name", "")),
        description=str(_field(row, "description", "")),
        id=_id_text(_field(row, "id")),
    )


def review_from_row(row: Any) -> ReviewRecord:
    return ReviewRecord(
        rating=_to_int(_field(row, "rating", 0)),
        status=str(_field(row, "status", "pending")),
        id=_id_text(_field(row, "id")),
        comment=str(_field(row, "comment", "")),
    )


def agency_from_row(row: Any, specializations: list[str] | None = None) -> AgencyRecord:
    """Map a store row (ORM object or dict payload) onto an AgencyRecord.

    Specializations come from the agency's service names. They are taken from
    the explicit argument, then a ``specializations`` field, then the
    ``services`` relationship when the row carries one.
    """
    if specializations is None:
        specializations = list(_field(row, "specializations", []) or [])
        if not specializations:
            services = _field(row, "services", []) or []
            specializations = [service_from_row(item).name for item in services]

    return AgencyRecord(
        id=str(_field(row, "id", "")),
        name=str(_field(row, "name", "")),
        slug=str(_field(row, "slug", "")),
        location=str(_field(row, "location", "")),
        description=str(_field(row, "description", "")),
        rating=_to_float(_field(row, "rating", 0.0)),
        trust_score=_to_int(_field(row, "trust_score", 0)),
        price=_to_int(_field(row, "price", 0)),
        specializations=[str(item) for item in specializations if str(item).strip()],
        is_verified=bool(_field(row, "is_verified", False)),
        status=str(_field(row, "status", "pending")),
        contact_email=str(_field(row, "contact_email", "")),
        contact_phone=str(_field(row, "contact_phone", "")),
        website=str(_field(row, "website", "")),
        business_hours=str(_field(row, "business_hours", "")),
        image_url=str(_field(row, "image_url", "")),
    )
