"""
Member model and the membership lifecycle.

A member record starts life as an application (status APPLIED, no
membership number) and is assigned a sequential membership number when the
application is accepted.
"""
from typing import Optional
from enum import Enum
from sqlalchemy import String, Integer, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column
from gtc_api.models.base import BaseModel


class MemberStatus(str, Enum):
    """Lifecycle stage of a member."""
    APPLIED = "APPLIED"
    APPROVED = "APPROVED"
    DECLINED = "DECLINED"
    INVOICED = "INVOICED"
    PAID = "PAID"
    CURRENT = "CURRENT"
    LAPSED = "LAPSED"
    REMOVED = "REMOVED"


class MemberType(str, Enum):
    """Membership category."""
    FULL = "FULL"
    ASSOCIATE = "ASSOCIATE"
    AFFILIATE = "AFFILIATE"
    STUDENT = "STUDENT"
    HONORARY = "HONORARY"
    LIFE = "LIFE"


class Salutation(str, Enum):
    MR = "MR"
    MRS = "MRS"
    MISS = "MISS"
    MS = "MS"
    MX = "MX"
    DR = "DR"
    PROF = "PROF"
    REV = "REV"


class LocationType(str, Enum):
    """Where a contact number reaches the member."""
    HOME = "HOME"
    WORK = "WORK"
    MOBILE = "MOBILE"


# Valid status transitions (from -> to allowed statuses).
# None is the initial state of a record that has never had a status.
VALID_STATUS_TRANSITIONS: dict[Optional[MemberStatus], frozenset[MemberStatus]] = {
    None: frozenset({MemberStatus.APPLIED}),
    MemberStatus.APPLIED: frozenset({MemberStatus.APPROVED, MemberStatus.DECLINED}),
    MemberStatus.APPROVED: frozenset({MemberStatus.INVOICED}),
    MemberStatus.DECLINED: frozenset({MemberStatus.APPLIED}),
    MemberStatus.INVOICED: frozenset({MemberStatus.PAID}),
    MemberStatus.PAID: frozenset({MemberStatus.CURRENT}),
    MemberStatus.CURRENT: frozenset({MemberStatus.LAPSED, MemberStatus.REMOVED}),
    MemberStatus.LAPSED: frozenset({MemberStatus.APPLIED, MemberStatus.REMOVED}),
    MemberStatus.REMOVED: frozenset({MemberStatus.APPLIED}),
}

# Statuses shown on the applications dashboard
APPLICATION_STATUSES = (
    MemberStatus.APPLIED,
    MemberStatus.APPROVED,
    MemberStatus.INVOICED,
    MemberStatus.PAID,
    MemberStatus.DECLINED,
)


def _enum_column(enum_cls, name: str, nullable: bool = True):
    return mapped_column(
        SQLEnum(
            enum_cls,
            name=name,
            create_constraint=True,
            values_callable=lambda x: [e.value for e in x]
        ),
        nullable=nullable
    )


class Member(BaseModel):
    """
    Member record.

    ``membership_number`` is deliberately not unique at the storage layer:
    the CSV reconciliation run reports duplicated numbers instead of
    failing on them.
    """
    __tablename__ = "members"

    membership_number: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        index=True
    )

    type: Mapped[Optional[MemberType]] = _enum_column(MemberType, "membertype")
    status: Mapped[Optional[MemberStatus]] = _enum_column(MemberStatus, "memberstatus")
    salutation: Mapped[Optional[Salutation]] = _enum_column(Salutation, "salutation")

    # Member identity
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)

    # Address fields
    address_line_1: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    address_line_2: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    county: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    postcode: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    country: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Contact
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    phone_type: Mapped[Optional[LocationType]] = _enum_column(LocationType, "locationtype")

    def can_transition_to(self, new_status: MemberStatus) -> bool:
        """Check if transition to new_status is valid."""
        if self.status == new_status:
            return True
        allowed = VALID_STATUS_TRANSITIONS.get(self.status, frozenset())
        return new_status in allowed

    def __repr__(self) -> str:
        status = self.status.value if self.status else None
        return f"<Member #{self.membership_number} {self.first_name} {self.last_name} ({status})>"
