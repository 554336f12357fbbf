"""
Member lifecycle operations.

Every single-record mutation goes through here: the status transition is
checked against ``VALID_STATUS_TRANSITIONS``, the record is validated, and
only then is it written through the record store.
"""
import logging
from typing import Optional

from gtc_api.core.exceptions import (
    Forbidden,
    IllegalTransition,
    MemberNotFound,
    ValidationFailed,
)
from gtc_api.models.member import Member, MemberStatus, VALID_STATUS_TRANSITIONS
from gtc_api.services.numbering import MembershipNumberService
from gtc_api.services.store import MemberStore
from gtc_api.services.validation import validate_member, validate_members

logger = logging.getLogger(__name__)


def _label(status: Optional[MemberStatus]) -> str:
    return status.value if status is not None else "none"


def check_transition(current: Optional[MemberStatus], requested: Optional[MemberStatus]) -> None:
    """Raise IllegalTransition unless ``current -> requested`` is allowed.

    Leaving the status unchanged is always allowed.
    """
    if current == requested:
        return

    allowed = VALID_STATUS_TRANSITIONS.get(current, frozenset())
    if requested not in allowed:
        raise IllegalTransition(
            f"Cannot transition from '{_label(current)}' to '{_label(requested)}'. "
            f"Allowed: {sorted(s.value for s in allowed)}"
        )


async def create_member(
    store: MemberStore,
    numbering: MembershipNumberService,
    member: Member,
) -> Member:
    """Create a member, assigning the next membership number if none was given."""
    check_transition(None, member.status)

    if member.membership_number is None:
        member.membership_number = await numbering.get_next_member_number()

    validate_member(member, enforce=True)

    if await store.find_by_member_number(member.membership_number):
        raise ValidationFailed(
            [f"A member already exists with membership number {member.membership_number}"]
        )

    created = await store.create(member)
    logger.info(f"Created member {created.id} (#{created.membership_number})")
    return created


async def update_member(store: MemberStore, member_id: str, new_member: Member) -> Member:
    """Administrator update of a member record by id."""
    existing = await store.get_by_id(member_id)

    check_transition(existing.status, new_member.status)

    new_member.id = existing.id
    validate_member(new_member, enforce=True)

    if new_member.membership_number != existing.membership_number:
        holders = await store.find_by_member_number(new_member.membership_number)
        if any(holder.id != existing.id for holder in holders):
            raise ValidationFailed(
                [f"A member already exists with membership number {new_member.membership_number}"]
            )

    return await store.update(existing, new_member)


async def update_own_member(
    store: MemberStore,
    membership_number: Optional[int],
    new_member: Member,
) -> Member:
    """
    Self-service update by the authenticated member.

    Members may edit their own details but never their status or type; any
    attempt to change either is refused outright.
    """
    if membership_number is None:
        raise MemberNotFound("No membership number is associated with this user")

    existing = await store.get_by_member_number(membership_number)
    if existing is None:
        raise MemberNotFound(f"No member with membership number {membership_number}")

    if existing.status != new_member.status:
        raise Forbidden("You can not update your own membership status.")
    if existing.type != new_member.type:
        raise Forbidden("You can not change your own membership type.")

    new_member.id = existing.id
    new_member.created_date = existing.created_date
    new_member.status = existing.status
    new_member.type = existing.type
    new_member.membership_number = existing.membership_number

    validate_member(new_member, enforce=True)

    return await store.update(existing, new_member)


async def accept_application(
    store: MemberStore,
    numbering: MembershipNumberService,
    member_id: str,
) -> Member:
    """
    Accept an application: assign the next membership number and approve.

    The number is not reserved, so if the write fails it is simply never
    used.
    """
    applied = await store.get_by_id(member_id)
    if applied.status != MemberStatus.APPLIED:
        raise IllegalTransition(
            f"Only applications can be accepted; member {applied.id} is '{_label(applied.status)}'"
        )
    check_transition(applied.status, MemberStatus.APPROVED)

    approved = applied.clone()
    approved.membership_number = await numbering.get_next_member_number()
    approved.status = MemberStatus.APPROVED

    accepted = await store.update(applied, approved)
    logger.info(f"Accepted application {accepted.id} as member #{accepted.membership_number}")
    return accepted


async def cleanup_members(store: MemberStore) -> list[list[str]]:
    """Trim stored email addresses and report records failing validation."""
    members = await store.get_all()
    for member in members:
        if member.email and member.email != member.email.strip():
            trimmed = member.clone()
            trimmed.email = member.email.strip()
            await store.update(member, trimmed)
    return validate_members(members)


async def verify_member(store: MemberStore, membership_number: int, last_name: str) -> bool:
    """True if the number belongs to a CURRENT member with that last name."""
    member = await store.get_by_member_number(membership_number)
    if member is None or member.last_name is None:
        return False
    return (
        member.last_name.lower() == last_name.lower()
        and member.status == MemberStatus.CURRENT
    )
