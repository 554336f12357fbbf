"""
Record store adapters.

``RecordStore`` wraps generic create/read/update/delete over one model;
``MemberStore`` adds the membership-number keyed lookups used by the
lifecycle and import services.
"""
import logging
from typing import Generic, Optional, TypeVar

from sqlalchemy import String, cast, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from gtc_api.core.exceptions import MemberNotFound, NotFound
from gtc_api.models.base import BaseModel, is_valid_id, utcnow
from gtc_api.models.member import Member, MemberStatus

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class RecordStore(Generic[ModelT]):
    """Generic persistence operations over a single model."""

    model: type[ModelT]
    not_found_error: type[NotFound] = NotFound

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, item: ModelT) -> ModelT:
        """Insert a new record and return it with its identifier assigned."""
        now = utcnow()
        if item.created_date is None:
            item.created_date = now
        item.last_updated_date = now

        self.db.add(item)
        await self.db.flush()
        await self.db.refresh(item)
        return item

    async def get_by_id(self, item_id: str) -> ModelT:
        """Fetch a record by id. Raises NotFound for malformed or unknown ids."""
        if not is_valid_id(item_id):
            raise self.not_found_error(f"No record with ID [{item_id}]")

        item = await self.db.get(self.model, item_id)
        if item is None:
            raise self.not_found_error(f"No record with ID [{item_id}]")
        return item

    async def get_all(self) -> list[ModelT]:
        result = await self.db.execute(select(self.model))
        return list(result.scalars().all())

    async def get_all_sorted(self, order_by, limit: Optional[int] = None) -> list[ModelT]:
        stmt = select(self.model).order_by(order_by)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_last_by(self, order_by) -> Optional[ModelT]:
        """The record sorting last on ``order_by``, or None if there are none."""
        result = await self.db.execute(
            select(self.model).order_by(order_by.desc()).limit(1)
        )
        return result.scalars().first()

    async def query(self, *criteria) -> list[ModelT]:
        result = await self.db.execute(select(self.model).where(*criteria))
        return list(result.scalars().all())

    async def search_by_field(self, field: str, text: str) -> list[ModelT]:
        """Case-insensitive substring match on one column."""
        column = getattr(self.model, field)
        return await self.query(column.ilike(f"%{text.strip()}%"))

    async def update(self, old: ModelT, new: ModelT) -> ModelT:
        """
        Replace the stored record with ``new``.

        The creation date of ``old`` is carried over; records that never had
        one get it stamped now. The returned object is re-read from the
        database after the write, so a concurrent write in between wins.
        """
        now = utcnow()
        if old.created_date is None:
            new.created_date = now
        else:
            new.created_date = old.created_date
        new.last_updated_date = now

        if new.id is None:
            new.id = old.id

        persisted = await self.db.merge(new)
        await self.db.flush()
        await self.db.refresh(persisted)
        return persisted

    async def commit(self) -> None:
        """Make the writes so far durable, independent of the request outcome."""
        await self.db.commit()

    async def delete(self, item: ModelT) -> bool:
        """Delete a record. Returns False when nothing was removed."""
        result = await self.db.execute(
            delete(self.model).where(self.model.id == item.id)
        )
        deleted = result.rowcount == 1
        if not deleted:
            logger.warning(f"Delete of {self.model.__name__} {item.id} removed no rows")
        return deleted


class MemberStore(RecordStore[Member]):
    model = Member
    not_found_error = MemberNotFound

    async def get_by_member_number(self, membership_number: int) -> Optional[Member]:
        """First record carrying the number, or None."""
        result = await self.db.execute(
            select(Member)
            .where(Member.membership_number == membership_number)
            .limit(1)
        )
        return result.scalars().first()

    async def find_by_member_number(self, membership_number: int) -> list[Member]:
        """Every record carrying the number."""
        return await self.query(Member.membership_number == membership_number)

    async def get_by_status(self, *statuses: MemberStatus) -> list[Member]:
        result = await self.db.execute(
            select(Member)
            .where(Member.status.in_(statuses))
            .order_by(Member.membership_number.asc(), Member.last_name.asc())
        )
        return list(result.scalars().all())

    async def get_member_numbers(self) -> set[int]:
        """Set of every assigned membership number."""
        result = await self.db.execute(
            select(Member.membership_number).where(Member.membership_number.is_not(None))
        )
        return set(result.scalars().all())

    async def get_highest_member_number(self) -> Optional[int]:
        result = await self.db.execute(select(func.max(Member.membership_number)))
        return result.scalar()

    async def search(self, text: str) -> list[Member]:
        """Case-insensitive match on names and membership number."""
        pattern = f"%{text.strip()}%"
        full_name = Member.first_name + " " + Member.last_name
        result = await self.db.execute(
            select(Member)
            .where(
                or_(
                    Member.first_name.ilike(pattern),
                    Member.last_name.ilike(pattern),
                    full_name.ilike(pattern),
                    cast(Member.membership_number, String).ilike(pattern),
                )
            )
            .order_by(Member.last_name.asc(), Member.first_name.asc())
        )
        return list(result.scalars().all())
