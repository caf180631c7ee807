from typing import Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from partipay.core.exceptions import ConcurrentUpdateError
from partipay.models.session import SplitSession

# Fields a session mutation may change. Bill items and the total are fixed
# at creation.
MUTABLE_FIELDS = {
    "status",
    "is_active",
    "main_booker_id",
    "linked_account",
    "participants",
    "item_claims",
    "payments",
}


class SessionRepository:
    """Split session database operations."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["sessions"]

    async def insert_session(self, session: SplitSession) -> SplitSession:
        """Insert a freshly built session."""
        doc = session.model_dump(by_alias=True, mode="python")
        await self.collection.insert_one(doc)
        return session

    async def get_session(self, session_id: str) -> Optional[SplitSession]:
        """Get a session by id. Malformed ids are treated as missing."""
        if not ObjectId.is_valid(session_id):
            return None
        doc = await self.collection.find_one({"_id": ObjectId(session_id)})
        if doc:
            return SplitSession(**doc)
        return None

    async def save_session(self, session: SplitSession) -> SplitSession:
        """
        Write back the mutable parts of a session.

        Uses the version field for optimistic locking: the write only
        applies if nobody saved the session since it was read. Raises
        ConcurrentUpdateError otherwise.
        """
        updates = session.next_version_update(MUTABLE_FIELDS)

        result = await self.collection.find_one_and_update(
            {
                "_id": session.id,
                "version": session.version  # Optimistic lock
            },
            {"$set": updates},
            return_document=ReturnDocument.AFTER
        )
        if result is None:
            raise ConcurrentUpdateError(
                f"Session {session.id} was modified concurrently, reload and retry"
            )
        return SplitSession(**result)
