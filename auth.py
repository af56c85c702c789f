from __future__ import annotations

import uuid
from typing import Optional

import bcrypt
from sqlalchemy import select
from sqlalchemy.orm import Session

from models import Profile


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


def authenticate_profile(db: Session, email: str, password: str) -> Optional[Profile]:
    profile = db.scalar(select(Profile).where(Profile.email == email.strip().lower()))
    if not profile or not profile.password_hash:
        return None
    if not verify_password(password, profile.password_hash):
        return None
    return profile


def get_profile_by_id(db: Session, profile_id: str | uuid.UUID) -> Optional[Profile]:
    return db.get(Profile, uuid.UUID(str(profile_id)))


def profile_role(profile: Profile) -> str:
    if profile.is_super_admin:
        return "super_admin"
    if profile.is_admin:
        return "admin"
    return "student"


def can_access(profile: Optional[Profile], required_role: str) -> bool:
    if profile is None:
        return False
    if required_role == "super_admin":
        return bool(profile.is_super_admin)
    if required_role == "admin":
        return bool(profile.is_admin or profile.is_super_admin)
    return True
