"""
SQLAlchemy models for the membership API.
"""
from gtc_api.models.member import (
    Member,
    MemberStatus,
    MemberType,
    Salutation,
    LocationType,
    VALID_STATUS_TRANSITIONS,
    APPLICATION_STATUSES,
)

__all__ = [
    "Member",
    "MemberStatus",
    "MemberType",
    "Salutation",
    "LocationType",
    "VALID_STATUS_TRANSITIONS",
    "APPLICATION_STATUSES",
]
