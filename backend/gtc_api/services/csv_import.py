"""
CSV member import and reconciliation.

An upload is reconciled against the stored member set row by row: unknown
membership numbers are created, changed rows update the stored record, and
in overwrite mode stored numbers missing from the file are deleted.

Each write is committed as soon as it is made. A row that cannot be mapped
aborts the run, but rows already applied stay applied.
"""
import csv
import io
import logging
from dataclasses import dataclass, field
from typing import Iterator, Optional

from pydantic import BaseModel, ValidationError, field_validator

from gtc_api.core.exceptions import ImportParseError
from gtc_api.models.member import Member, MemberStatus, MemberType, Salutation
from gtc_api.services.email import ImportNotifier
from gtc_api.services.store import MemberStore
from gtc_api.services.validation import validate_member

logger = logging.getLogger(__name__)

# Normalized header name -> member field
HEADER_FIELDS = {
    "type": "type",
    "membertype": "type",
    "status": "status",
    "membershipnumber": "membership_number",
    "membernumber": "membership_number",
    "salutation": "salutation",
    "firstname": "first_name",
    "lastname": "last_name",
    "email": "email",
}

# Header labels reported when a column is missing
REQUIRED_COLUMNS = {
    "type": "type",
    "status": "status",
    "membership_number": "membershipNumber",
    "salutation": "salutation",
    "first_name": "firstName",
    "last_name": "lastName",
    "email": "email",
}

COMPARED_FIELDS = tuple(REQUIRED_COLUMNS)


def _norm_header(value: str) -> str:
    return "".join(ch for ch in value.strip().lower() if ch.isalnum())


def _blank_to_none(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class CsvMember(BaseModel):
    """One row of an import file."""
    type: MemberType
    status: MemberStatus
    membership_number: int
    salutation: Optional[Salutation] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None

    @field_validator("type", "status", "salutation", mode="before")
    @classmethod
    def _normalize_enum(cls, value: object) -> Optional[str]:
        text = _blank_to_none(value)
        if text is None:
            return None
        return text.rstrip(".").upper().replace(" ", "_")

    @field_validator("membership_number", mode="before")
    @classmethod
    def _normalize_number(cls, value: object) -> Optional[str]:
        return _blank_to_none(value)

    @field_validator("first_name", "last_name", "email", mode="before")
    @classmethod
    def _strip(cls, value: object) -> Optional[str]:
        return _blank_to_none(value)

    def is_different_to_member(self, member: Member) -> bool:
        return any(getattr(self, name) != getattr(member, name) for name in COMPARED_FIELDS)

    def apply_to(self, member: Member) -> Member:
        """Copy of ``member`` carrying this row's values."""
        updated = member.clone()
        for name in COMPARED_FIELDS:
            setattr(updated, name, getattr(self, name))
        return updated

    def to_member(self) -> Member:
        return Member(
            type=self.type,
            status=self.status,
            membership_number=self.membership_number,
            salutation=self.salutation,
            first_name=self.first_name,
            last_name=self.last_name,
            email=self.email,
        )


@dataclass
class ImportDiff:
    """Membership numbers touched by one reconciliation run."""
    imported_set: set[int] = field(default_factory=set)
    existing_set: set[int] = field(default_factory=set)
    created_set: set[int] = field(default_factory=set)
    updated_set: set[int] = field(default_factory=set)
    deleted_set: set[int] = field(default_factory=set)
    error_set: set[int] = field(default_factory=set)
    warnings: list[str] = field(default_factory=list)

    def resulted_in_change(self) -> bool:
        return bool(self.created_set or self.updated_set or self.deleted_set)


class CsvMemberReader:
    """
    Reads an uploaded CSV.

    The header is checked on construction so a malformed file is rejected
    before anything is written; rows are mapped lazily while iterating.
    """

    def __init__(self, data: bytes):
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ImportParseError(
                f"Couldn't process the file that was provided. It is not valid UTF-8 text ({e.reason})."
            ) from e

        self._reader = csv.reader(io.StringIO(text), delimiter=",")
        try:
            header = next(self._reader)
        except StopIteration:
            raise ImportParseError("Couldn't process the file that was provided. The file is empty.")
        except csv.Error as e:
            raise ImportParseError(f"Couldn't process the file that was provided. {e}") from e

        self.header_length = len(header)
        self.columns: dict[int, str] = {}
        for index, name in enumerate(header):
            target = HEADER_FIELDS.get(_norm_header(name))
            if target is not None and target not in self.columns.values():
                self.columns[index] = target

        missing = [label for name, label in REQUIRED_COLUMNS.items() if name not in self.columns.values()]
        if missing:
            raise ImportParseError(
                "Couldn't process the file that was provided. Missing columns: " + ", ".join(missing)
            )

    def __iter__(self) -> Iterator[CsvMember]:
        while True:
            try:
                row = next(self._reader)
            except StopIteration:
                return
            except csv.Error as e:
                raise ImportParseError(
                    f"Couldn't process line {self._reader.line_num} of the file provided. {e}"
                ) from e

            if not any(cell.strip() for cell in row):
                continue

            line = self._reader.line_num
            if len(row) > self.header_length:
                raise ImportParseError(
                    f"Couldn't process line {line} of the file provided. "
                    f"Too many entries: expected {self.header_length}, found {len(row)}."
                )

            values = {
                target: row[index] if index < len(row) else None
                for index, target in self.columns.items()
            }
            try:
                csv_member = CsvMember.model_validate(values)
            except ValidationError as e:
                problems = "; ".join(
                    f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
                )
                raise ImportParseError(
                    f"Couldn't process line {line} of the file provided. {problems}"
                ) from e
            yield csv_member


class MemberImporter:
    """Reconciles an uploaded CSV against the stored members."""

    def __init__(self, store: MemberStore, notifier: ImportNotifier):
        self.store = store
        self.notifier = notifier

    async def run(self, data: bytes, overwrite: bool = False) -> ImportDiff:
        reader = CsvMemberReader(data)

        diff = ImportDiff(existing_set=await self.store.get_member_numbers())

        for csv_member in reader:
            await self.import_create_update_member(csv_member, diff)

        if overwrite:
            await self.import_delete_members(diff)

        logger.info(
            f"Import finished: {len(diff.imported_set)} imported, {len(diff.created_set)} created, "
            f"{len(diff.updated_set)} updated, {len(diff.deleted_set)} deleted, "
            f"{len(diff.error_set)} errors"
        )

        success = await self.notifier.notify_if_changed(diff)
        if not success:
            logger.warning("Not successful sending update email. Continuing...")

        return diff

    async def import_create_update_member(self, csv_member: CsvMember, diff: ImportDiff) -> None:
        number = csv_member.membership_number
        diff.imported_set.add(number)

        existing = await self.store.get_by_member_number(number)
        if existing is None:
            member = await self.store.create(csv_member.to_member())
            diff.created_set.add(number)
        elif csv_member.is_different_to_member(existing):
            member = await self.store.update(existing, csv_member.apply_to(existing))
            # A number repeated in the file is reported once, as created
            if number not in diff.created_set:
                diff.updated_set.add(number)
        else:
            return

        await self.store.commit()
        diff.warnings.extend(validate_member(member))

    async def import_delete_members(self, diff: ImportDiff) -> None:
        """Delete stored members whose numbers were absent from the file."""
        for number in sorted(diff.existing_set - diff.imported_set):
            matches = await self.store.find_by_member_number(number)
            if len(matches) == 1:
                if await self.store.delete(matches[0]):
                    await self.store.commit()
                    diff.deleted_set.add(number)
                    continue
                error_message = f"{number} was not deleted due to an unknown error"
            elif len(matches) > 1:
                error_message = (
                    f"{number} was not deleted as there is more than one existing member with that number."
                )
            else:
                error_message = f"{number} could not be deleted, as a record did not exist."

            diff.error_set.add(number)
            logger.error(error_message)
