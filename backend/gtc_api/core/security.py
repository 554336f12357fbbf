"""
Security utilities for bearer-token authentication.

Tokens carry the caller's role set and membership number inside an
``app_metadata`` claim, mirroring the identity provider's user profile.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Any
from jose import jwt, JWTError

from gtc_api.core.config import Settings


class ApplicationRole(str, Enum):
    """Roles granted to a user by the identity provider."""
    ADMIN = "ADMIN"
    MEMBERSHIP_MANAGE = "MEMBERSHIP_MANAGE"
    MEMBERSHIP_READ = "MEMBERSHIP_READ"
    MEMBER = "MEMBER"


@dataclass
class Principal:
    """The authenticated caller."""
    user_id: str
    email: Optional[str] = None
    roles: list[ApplicationRole] = field(default_factory=list)
    app_metadata: dict[str, Any] = field(default_factory=dict)

    def has_any_role(self, *roles: ApplicationRole) -> bool:
        # ADMIN implies every other role
        if ApplicationRole.ADMIN in self.roles:
            return True
        return any(role in self.roles for role in roles)

    @property
    def membership_number(self) -> Optional[int]:
        value = self.app_metadata.get("membershipNumber")
        if value is None:
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None


def create_access_token(
    settings: Settings,
    subject: str,
    roles: Optional[list[str]] = None,
    membership_number: Optional[int] = None,
    email: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a JWT access token."""
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )

    app_metadata: dict[str, Any] = {"roles": list(roles or [])}
    if membership_number is not None:
        app_metadata["membershipNumber"] = membership_number

    to_encode = {
        "exp": expire,
        "sub": str(subject),
        "iat": datetime.now(timezone.utc),
        "email": email,
        "app_metadata": app_metadata,
    }

    return jwt.encode(
        to_encode,
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM
    )


def decode_token(settings: Settings, token: str) -> Optional[dict]:
    """Decode and validate a JWT token."""
    try:
        return jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM]
        )
    except JWTError:
        return None


def principal_from_token(settings: Settings, token: str) -> Optional[Principal]:
    """Build a Principal from a token, or None if the token is invalid."""
    payload = decode_token(settings, token)
    if payload is None or not payload.get("sub"):
        return None

    app_metadata = payload.get("app_metadata") or {}
    roles = []
    for raw in app_metadata.get("roles", []):
        try:
            roles.append(ApplicationRole(str(raw).upper()))
        except ValueError:
            # Roles from other applications share the same claim
            continue

    return Principal(
        user_id=payload["sub"],
        email=payload.get("email"),
        roles=roles,
        app_metadata=app_metadata,
    )
