"""
FastAPI dependencies: services wired to the request's session, and
authentication/authorization of the caller.
"""
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from gtc_api.core.config import Settings, get_settings
from gtc_api.core.exceptions import MemberNotFound
from gtc_api.core.security import ApplicationRole, Principal, principal_from_token
from gtc_api.db.base import get_db
from gtc_api.services.csv_import import MemberImporter
from gtc_api.services.email import EmailService, ImportNotifier
from gtc_api.services.mailchimp import MailchimpClient
from gtc_api.services.numbering import MembershipNumberService
from gtc_api.services.store import MemberStore

bearer_scheme = HTTPBearer(auto_error=False)


def get_member_store(db: AsyncSession = Depends(get_db)) -> MemberStore:
    return MemberStore(db)


def get_numbering_service(
    store: MemberStore = Depends(get_member_store),
    settings: Settings = Depends(get_settings),
) -> MembershipNumberService:
    return MembershipNumberService(store, floor=settings.MEMBERSHIP_NUMBER_FLOOR)


def get_email_service(settings: Settings = Depends(get_settings)) -> EmailService:
    return EmailService(settings)


def get_import_notifier(
    email_service: EmailService = Depends(get_email_service),
    settings: Settings = Depends(get_settings),
) -> ImportNotifier:
    return ImportNotifier(email_service, settings.IMPORT_NOTIFICATION_RECIPIENTS)


def get_member_importer(
    store: MemberStore = Depends(get_member_store),
    notifier: ImportNotifier = Depends(get_import_notifier),
) -> MemberImporter:
    return MemberImporter(store, notifier)


def get_mailchimp_client(settings: Settings = Depends(get_settings)) -> MailchimpClient:
    return MailchimpClient(settings)


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> Principal:
    """Authenticate the bearer token."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    principal = principal_from_token(settings, credentials.credentials)
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not authenticate",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal


def require_roles(*roles: ApplicationRole):
    """Dependency factory: the caller must hold at least one of ``roles``."""

    async def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        if not principal.has_any_role(*roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient role"
            )
        return principal

    return dependency


def get_current_membership_number(principal: Principal = Depends(get_current_principal)) -> int:
    """Membership number of the authenticated member."""
    membership_number = principal.membership_number
    if membership_number is None:
        raise MemberNotFound(f"Could not find membership number for this user: {principal.user_id}")
    return membership_number
