"""
Sequential membership number allocation.

The next number is derived from the highest number currently stored. Nothing
reserves it, so two concurrent callers can be handed the same number; the
CSV import reports such duplicates when it meets them.
"""
from gtc_api.services.store import MemberStore


class MembershipNumberService:

    def __init__(self, store: MemberStore, floor: int = 1):
        self.store = store
        self.floor = floor

    async def get_next_member_number(self) -> int:
        """One more than the highest stored number, or the floor when none exist."""
        highest = await self.store.get_highest_member_number()
        if highest is None:
            return self.floor
        return highest + 1
