"""
Member endpoints.

Permissions:
- Reads: MEMBERSHIP_READ
- Create/update/accept/import/mailing-list management: MEMBERSHIP_MANAGE
- Data cleanup: ADMIN
- /member/me*: MEMBER (the caller's own record, found by membership number)
- Verification: public
"""
import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from gtc_api.core.deps import (
    get_current_membership_number,
    get_current_principal,
    get_mailchimp_client,
    get_member_importer,
    get_member_store,
    get_numbering_service,
    require_roles,
)
from gtc_api.core.exceptions import MemberNotFound
from gtc_api.core.security import ApplicationRole
from gtc_api.models.member import (
    APPLICATION_STATUSES,
    LocationType,
    Member,
    MemberStatus,
    MemberType,
    Salutation,
)
from gtc_api.schemas.member import (
    ImportDiffResponse,
    MailchimpBatchResponse,
    MailchimpInfoResponse,
    MailchimpSyncResponse,
    MemberCreate,
    MemberResponse,
    MemberUpdate,
)
from gtc_api.services import lifecycle
from gtc_api.services.csv_import import ImportDiff, MemberImporter
from gtc_api.services.mailchimp import (
    MailchimpBatch,
    MailchimpClient,
    MailchimpInfo,
    member_metadata,
    sync_current_members,
)
from gtc_api.services.numbering import MembershipNumberService
from gtc_api.services.store import MemberStore

logger = logging.getLogger(__name__)

router = APIRouter()

can_read = require_roles(ApplicationRole.MEMBERSHIP_READ, ApplicationRole.MEMBERSHIP_MANAGE)
can_manage = require_roles(ApplicationRole.MEMBERSHIP_MANAGE)
is_admin = require_roles(ApplicationRole.ADMIN)
is_member = require_roles(ApplicationRole.MEMBER)


def member_to_response(member: Member) -> MemberResponse:
    """Convert Member model to MemberResponse schema."""
    return MemberResponse.model_validate(member)


def member_from_request(member_data: MemberCreate | MemberUpdate) -> Member:
    return Member(**member_data.model_dump())


def diff_to_response(diff: ImportDiff) -> ImportDiffResponse:
    return ImportDiffResponse(
        importedSet=sorted(diff.imported_set),
        existingSet=sorted(diff.existing_set),
        createdSet=sorted(diff.created_set),
        updatedSet=sorted(diff.updated_set),
        deletedSet=sorted(diff.deleted_set),
        errorSet=sorted(diff.error_set),
        resultedInChange=diff.resulted_in_change(),
        warnings=diff.warnings,
    )


def mailchimp_to_response(info: MailchimpInfo) -> MailchimpInfoResponse:
    return MailchimpInfoResponse(
        status=info.status.value,
        last_changed=info.last_changed,
        unsubscribe_reason=info.unsubscribe_reason,
    )


def batch_to_response(batch: MailchimpBatch) -> MailchimpBatchResponse:
    return MailchimpBatchResponse(**asdict(batch))


async def _get_own_member(store: MemberStore, membership_number: int) -> Member:
    member = await store.get_by_member_number(membership_number)
    if member is None:
        raise MemberNotFound(f"No member with membership number {membership_number}")
    return member


# ============================================================================
# COLLECTIONS AND REFERENCE DATA
# ============================================================================

@router.post("", response_model=MemberResponse, status_code=status.HTTP_201_CREATED)
async def create_member(
    member_data: MemberCreate,
    store: MemberStore = Depends(get_member_store),
    numbering: MembershipNumberService = Depends(get_numbering_service),
    _=Depends(can_manage),
):
    """Create a new member, assigning the next membership number if none is given."""
    member = await lifecycle.create_member(store, numbering, member_from_request(member_data))
    return member_to_response(member)


@router.get("/all", response_model=list[MemberResponse])
async def get_all_members(
    store: MemberStore = Depends(get_member_store),
    _=Depends(can_read),
):
    """Return a list of all members."""
    logger.debug("Fetching all members")
    return [member_to_response(m) for m in await store.get_all()]


@router.get("/applications", response_model=list[MemberResponse])
async def get_applications(
    store: MemberStore = Depends(get_member_store),
    _=Depends(can_read),
):
    """Return the people who are in the application stage."""
    logger.debug("Fetching all members in the application stage")
    return [member_to_response(m) for m in await store.get_by_status(*APPLICATION_STATUSES)]


@router.get("/status/{member_status}", response_model=list[MemberResponse])
async def get_members_by_status(
    member_status: MemberStatus,
    store: MemberStore = Depends(get_member_store),
    _=Depends(can_read),
):
    logger.debug(f"Fetching all {member_status.value} members")
    return [member_to_response(m) for m in await store.get_by_status(member_status)]


@router.get("/search/{query}", response_model=list[MemberResponse])
async def search_members(
    query: str,
    store: MemberStore = Depends(get_member_store),
    _=Depends(can_read),
):
    """Find members by first name, last name, full name or membership number."""
    logger.debug(f"Finding member using {query}")
    return [member_to_response(m) for m in await store.search(query)]


@router.get("/nextMemberNumber", response_model=int)
async def get_next_member_number(
    numbering: MembershipNumberService = Depends(get_numbering_service),
    _=Depends(get_current_principal),
):
    """Fetch the next logical membership number."""
    return await numbering.get_next_member_number()


@router.get("/memberTypes", response_model=list[str])
async def get_member_types(_=Depends(get_current_principal)):
    return [t.value for t in MemberType]


@router.get("/statusTypes", response_model=list[str])
async def get_status_types(_=Depends(get_current_principal)):
    return [s.value for s in MemberStatus]


@router.get("/salutationTypes", response_model=list[str])
async def get_salutation_types(_=Depends(get_current_principal)):
    return [s.value for s in Salutation]


@router.get("/locationTypes", response_model=list[str])
async def get_location_types(_=Depends(get_current_principal)):
    return [loc.value for loc in LocationType]


# ============================================================================
# IMPORT AND MAINTENANCE
# ============================================================================

@router.post("/upload", response_model=ImportDiffResponse)
async def import_members_from_csv(
    file: UploadFile = File(...),
    overwrite: bool = Form(False),
    importer: MemberImporter = Depends(get_member_importer),
    _=Depends(can_manage),
):
    """
    Upload membership information from a CSV file.

    With ``overwrite`` set, members whose numbers are absent from the file
    are deleted.
    """
    data = await file.read()
    logger.info(f"Importing members from '{file.filename}' (overwrite={overwrite})")
    diff = await importer.run(data, overwrite=overwrite)
    return diff_to_response(diff)


@router.post("/cleanup", response_model=list[list[str]])
async def cleanup_members(
    store: MemberStore = Depends(get_member_store),
    _=Depends(is_admin),
):
    """Tidy stored member data and report records that fail validation."""
    return await lifecycle.cleanup_members(store)


@router.post("/mailchimp/sync", response_model=MailchimpSyncResponse)
async def sync_mailchimp_metadata(
    store: MemberStore = Depends(get_member_store),
    client: MailchimpClient = Depends(get_mailchimp_client),
    _=Depends(can_manage),
):
    """Push membership metadata for current members to the mailing list."""
    synced, failed = await sync_current_members(store, client)
    return MailchimpSyncResponse(synced=synced, failed=failed)


@router.get("/mailchimp/batches", response_model=list[MailchimpBatchResponse])
async def get_mailchimp_batches(
    client: MailchimpClient = Depends(get_mailchimp_client),
    _=Depends(can_manage),
):
    """Status of the batch operations submitted to Mailchimp."""
    return [batch_to_response(b) for b in await client.get_batches()]


@router.get("/mailchimp/batches/{batch_id}", response_model=MailchimpBatchResponse)
async def get_mailchimp_batch_status(
    batch_id: str,
    client: MailchimpClient = Depends(get_mailchimp_client),
    _=Depends(can_manage),
):
    return batch_to_response(await client.get_batch_status(batch_id))


# ============================================================================
# SELF-SERVICE
# ============================================================================

@router.get("/me", response_model=MemberResponse)
async def get_my_membership(
    store: MemberStore = Depends(get_member_store),
    membership_number: int = Depends(get_current_membership_number),
    _=Depends(is_member),
):
    """Get the current user's member record."""
    return member_to_response(await _get_own_member(store, membership_number))


@router.put("/me", response_model=MemberResponse)
async def update_my_membership(
    member_data: MemberUpdate,
    store: MemberStore = Depends(get_member_store),
    membership_number: int = Depends(get_current_membership_number),
    _=Depends(is_member),
):
    """Update a member's own record. Status and type can not be changed."""
    member = await lifecycle.update_own_member(
        store, membership_number, member_from_request(member_data)
    )
    return member_to_response(member)


@router.get("/me/mailchimp/status", response_model=MailchimpInfoResponse)
async def get_my_mailchimp_status(
    store: MemberStore = Depends(get_member_store),
    client: MailchimpClient = Depends(get_mailchimp_client),
    membership_number: int = Depends(get_current_membership_number),
    _=Depends(is_member),
):
    member = await _get_own_member(store, membership_number)
    return mailchimp_to_response(await client.get_status(member.email))


@router.post("/me/mailchimp/subscribe", response_model=MailchimpInfoResponse)
async def subscribe_me_to_mailchimp(
    store: MemberStore = Depends(get_member_store),
    client: MailchimpClient = Depends(get_mailchimp_client),
    membership_number: int = Depends(get_current_membership_number),
    _=Depends(is_member),
):
    member = await _get_own_member(store, membership_number)
    info = await client.subscribe(
        member.email,
        member.first_name,
        member.last_name,
        metadata=member_metadata(member),
        create=False,
    )
    return mailchimp_to_response(info)


# ============================================================================
# SINGLE RECORDS
# ============================================================================

@router.get("/id/{member_id}", response_model=MemberResponse)
async def get_member_by_id(
    member_id: str,
    store: MemberStore = Depends(get_member_store),
    _=Depends(can_read),
):
    logger.debug(f"Fetching member by ID {member_id}")
    return member_to_response(await store.get_by_id(member_id))


@router.put("/id/{member_id}", response_model=MemberResponse)
async def update_member_by_id(
    member_id: str,
    member_data: MemberUpdate,
    store: MemberStore = Depends(get_member_store),
    _=Depends(can_manage),
):
    """Replace a member record. Status changes must follow the membership lifecycle."""
    member = await lifecycle.update_member(store, member_id, member_from_request(member_data))
    return member_to_response(member)


@router.post("/{member_id}/accept", response_model=MemberResponse)
async def accept_membership(
    member_id: str,
    store: MemberStore = Depends(get_member_store),
    numbering: MembershipNumberService = Depends(get_numbering_service),
    _=Depends(can_manage),
):
    """Accept an application: assign a membership number and approve it."""
    return member_to_response(await lifecycle.accept_application(store, numbering, member_id))


@router.get("/{member_id}/mailchimp/status", response_model=MailchimpInfoResponse)
async def get_member_mailchimp_status(
    member_id: str,
    store: MemberStore = Depends(get_member_store),
    client: MailchimpClient = Depends(get_mailchimp_client),
    _=Depends(can_manage),
):
    member = await store.get_by_id(member_id)
    return mailchimp_to_response(await client.get_status(member.email))


@router.post("/{member_id}/mailchimp/subscribe", response_model=MailchimpInfoResponse)
async def subscribe_member_to_mailchimp(
    member_id: str,
    store: MemberStore = Depends(get_member_store),
    client: MailchimpClient = Depends(get_mailchimp_client),
    _=Depends(can_manage),
):
    member = await store.get_by_id(member_id)
    info = await client.subscribe(member.email, member.first_name, member.last_name)
    return mailchimp_to_response(info)


@router.get("/{membership_number}/{last_name}/verify", response_model=bool)
async def verify_member(
    membership_number: int,
    last_name: str,
    store: MemberStore = Depends(get_member_store),
):
    """Verify a member by their membership number and last name."""
    return await lifecycle.verify_member(store, membership_number, last_name)


@router.get("/{membership_number}", response_model=MemberResponse)
async def get_member_by_number(
    membership_number: int,
    store: MemberStore = Depends(get_member_store),
    _=Depends(can_read),
):
    logger.debug(f"Fetching member by membership number {membership_number}")
    member = await store.get_by_member_number(membership_number)
    if member is None:
        raise MemberNotFound(f"No member with membership number {membership_number}")
    return member_to_response(member)
