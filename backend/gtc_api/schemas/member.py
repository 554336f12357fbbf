"""
Pydantic schemas for Member endpoints.
"""
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field

from gtc_api.models.member import MemberStatus, MemberType, Salutation, LocationType


class MemberBase(BaseModel):
    """Writable member fields."""
    membership_number: Optional[int] = None
    type: Optional[MemberType] = None
    status: Optional[MemberStatus] = None
    salutation: Optional[Salutation] = None
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    email: Optional[str] = Field(None, max_length=255)
    address_line_1: Optional[str] = Field(None, max_length=200)
    address_line_2: Optional[str] = Field(None, max_length=200)
    city: Optional[str] = Field(None, max_length=100)
    county: Optional[str] = Field(None, max_length=100)
    postcode: Optional[str] = Field(None, max_length=20)
    country: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)
    phone_type: Optional[LocationType] = None


class MemberCreate(MemberBase):
    """Create a new member. A membership number is assigned when omitted."""
    status: Optional[MemberStatus] = MemberStatus.APPLIED


class MemberUpdate(MemberBase):
    """Replace a member record. Omitted fields are cleared."""
    pass


class MemberResponse(MemberBase):
    """Member response."""
    id: str
    created_date: Optional[datetime] = None
    last_updated_date: Optional[datetime] = None

    class Config:
        from_attributes = True


class ImportDiffResponse(BaseModel):
    """Summary of one CSV reconciliation run."""
    importedSet: list[int]
    existingSet: list[int]
    createdSet: list[int]
    updatedSet: list[int]
    deletedSet: list[int]
    errorSet: list[int]
    resultedInChange: bool
    warnings: list[str] = []


class MailchimpInfoResponse(BaseModel):
    """Mailing-list subscription state of a member."""
    status: str
    last_changed: Optional[datetime] = None
    unsubscribe_reason: Optional[str] = None


class MailchimpSyncResponse(BaseModel):
    synced: list[int]
    failed: list[int]


class MailchimpBatchResponse(BaseModel):
    """Progress of a Mailchimp batch operation."""
    id: str
    status: str
    total_operations: int = 0
    finished_operations: int = 0
    errored_operations: int = 0
    submitted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
