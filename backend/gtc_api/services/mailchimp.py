"""
Mailchimp mailing-list client.

Only the list-member endpoints are used: reading a member's subscription
state and creating/updating a subscription with merge fields. Mailchimp is
best-effort: a 404 means "not subscribed", and a failure never aborts the
member operation that triggered it.
"""
import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional

import httpx

from gtc_api.core.config import Settings
from gtc_api.core.exceptions import ExternalServiceError
from gtc_api.models.member import Member, MemberStatus
from gtc_api.services.store import MemberStore

logger = logging.getLogger(__name__)


class MailchimpStatus(str, Enum):
    SUBSCRIBED = "SUBSCRIBED"
    UNSUBSCRIBED = "UNSUBSCRIBED"
    CLEANED = "CLEANED"
    PENDING = "PENDING"
    TRANSACTIONAL = "TRANSACTIONAL"
    ARCHIVED = "ARCHIVED"
    NOT_SUBSCRIBED = "NOT_SUBSCRIBED"
    UNKNOWN = "UNKNOWN"


@dataclass
class MailchimpInfo:
    status: MailchimpStatus
    last_changed: Optional[datetime] = None
    unsubscribe_reason: Optional[str] = None


@dataclass
class MailchimpBatch:
    """Progress of a batch operation submitted to Mailchimp."""
    id: str
    status: str
    total_operations: int = 0
    finished_operations: int = 0
    errored_operations: int = 0
    submitted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


def subscriber_hash(email: str) -> str:
    """Mailchimp keys list members by the MD5 of the lowercased address."""
    return hashlib.md5(email.strip().lower().encode("utf-8")).hexdigest()


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def _batch_from_payload(payload: dict[str, Any]) -> MailchimpBatch:
    return MailchimpBatch(
        id=payload.get("id", ""),
        status=payload.get("status", ""),
        total_operations=payload.get("total_operations", 0),
        finished_operations=payload.get("finished_operations", 0),
        errored_operations=payload.get("errored_operations", 0),
        submitted_at=_parse_timestamp(payload.get("submitted_at")),
        completed_at=_parse_timestamp(payload.get("completed_at")),
    )


def _info_from_payload(payload: dict[str, Any]) -> MailchimpInfo:
    try:
        status = MailchimpStatus(str(payload.get("status", "")).upper())
    except ValueError:
        status = MailchimpStatus.UNKNOWN
    return MailchimpInfo(
        status=status,
        last_changed=_parse_timestamp(payload.get("last_changed")),
        unsubscribe_reason=payload.get("unsubscribe_reason"),
    )


class MailchimpClient:

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.api_key = settings.MAILCHIMP_API_KEY
        self.list_id = settings.MAILCHIMP_LIST_ID
        self.timeout = settings.MAILCHIMP_TIMEOUT
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.list_id)

    @property
    def base_url(self) -> str:
        # API keys end in the datacenter, e.g. "abc123-us6"
        datacenter = self.api_key.rsplit("-", 1)[-1] if self.api_key and "-" in self.api_key else "us1"
        return f"https://{datacenter}.api.mailchimp.com/3.0"

    def _member_url(self, email: str) -> str:
        return f"{self.base_url}/lists/{self.list_id}/members/{subscriber_hash(email)}"

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        auth = ("gtc", self.api_key or "")
        if self._client is not None:
            return await self._client.request(method, url, auth=auth, **kwargs)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.request(method, url, auth=auth, **kwargs)

    async def get_status(self, email: Optional[str]) -> MailchimpInfo:
        """Subscription state for an address. Never raises."""
        if not email:
            return MailchimpInfo(status=MailchimpStatus.NOT_SUBSCRIBED)
        if not self.configured:
            logger.warning("Mailchimp is not configured, status unknown")
            return MailchimpInfo(status=MailchimpStatus.UNKNOWN)

        try:
            response = await self._request(
                "GET",
                self._member_url(email),
                params={"fields": "status,unsubscribe_reason,last_changed"},
            )
        except httpx.HTTPError as e:
            logger.warning(f"Mailchimp status lookup failed for {email}: {e}")
            return MailchimpInfo(status=MailchimpStatus.UNKNOWN)

        if response.status_code == 404:
            return MailchimpInfo(status=MailchimpStatus.NOT_SUBSCRIBED)
        if response.is_error:
            logger.warning(
                f"Mailchimp status lookup for {email} returned {response.status_code}"
            )
            return MailchimpInfo(status=MailchimpStatus.UNKNOWN)

        return _info_from_payload(response.json())

    async def subscribe(
        self,
        email: Optional[str],
        first_name: Optional[str],
        last_name: Optional[str],
        metadata: Optional[dict[str, Any]] = None,
        create: bool = True,
    ) -> MailchimpInfo:
        """
        Subscribe an address, or update an existing subscription.

        With ``create`` the member is added if missing (PUT); otherwise only
        an existing list member is updated (PATCH).
        """
        if not email:
            raise ExternalServiceError("Member has no email address to subscribe")
        if not self.configured:
            raise ExternalServiceError("Mailchimp is not configured")

        merge_fields: dict[str, Any] = {"FNAME": first_name or "", "LNAME": last_name or ""}
        if metadata:
            merge_fields.update(metadata)

        body: dict[str, Any] = {"status": "subscribed", "merge_fields": merge_fields}
        if create:
            body["email_address"] = email
            body["status_if_new"] = "subscribed"

        try:
            response = await self._request(
                "PUT" if create else "PATCH",
                self._member_url(email),
                json=body,
            )
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"Mailchimp request failed: {e}") from e

        if response.is_error:
            raise ExternalServiceError(
                f"Mailchimp rejected subscription for {email} ({response.status_code})"
            )

        return _info_from_payload(response.json())

    async def _get_batch_json(self, path: str) -> dict[str, Any]:
        if not self.api_key:
            raise ExternalServiceError("Mailchimp is not configured")

        try:
            response = await self._request("GET", f"{self.base_url}{path}")
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"Mailchimp request failed: {e}") from e

        if response.status_code == 404:
            raise ExternalServiceError(f"Mailchimp has no batch at {path}")
        if response.is_error:
            raise ExternalServiceError(f"Mailchimp batch lookup returned {response.status_code}")
        return response.json()

    async def get_batches(self) -> list[MailchimpBatch]:
        """Status of the batch operations submitted under this API key."""
        payload = await self._get_batch_json("/batches")
        return [_batch_from_payload(batch) for batch in payload.get("batches", [])]

    async def get_batch_status(self, batch_id: str) -> MailchimpBatch:
        return _batch_from_payload(await self._get_batch_json(f"/batches/{batch_id}"))


def member_metadata(member: Member) -> dict[str, Any]:
    """Merge fields describing the member's membership."""
    return {
        "TYPE": member.type.value if member.type else "",
        "MEMNUM": member.membership_number,
    }


async def sync_current_members(store: MemberStore, client: MailchimpClient) -> tuple[list[int], list[int]]:
    """
    Push membership metadata for every CURRENT member to the list.

    Returns the membership numbers synced and those that failed.
    """
    synced: list[int] = []
    failed: list[int] = []
    for member in await store.get_by_status(MemberStatus.CURRENT):
        try:
            await client.subscribe(
                member.email,
                member.first_name,
                member.last_name,
                metadata=member_metadata(member),
                create=False,
            )
        except ExternalServiceError as e:
            logger.warning(f"Mailchimp sync failed for #{member.membership_number}: {e.detail}")
            failed.append(member.membership_number)
            continue
        synced.append(member.membership_number)

    logger.info(f"Mailchimp sync finished: {len(synced)} synced, {len(failed)} failed")
    return synced, failed
