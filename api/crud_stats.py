"""
CRUD statistics accessor.

Keeps one singleton document of the form::

    {"name": "crud-stats",
     "data": {"create": {"total": 0, "successful": 0}, "read": {...}, ...}}

Every counter change is a single ``$inc`` against that document, so concurrent
requests never overwrite each other. Persistence failures are logged and
reported as ``None`` instead of being raised.
"""

from typing import Optional

import structlog
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from api.models import CrudKind, CrudStats, OperationCounter

logger = structlog.get_logger(__name__)

DEFAULT_DOCUMENT_NAME = "crud-stats"


class CrudStatsService:
    """Reads and increments the CRUD statistics document."""

    def __init__(self, collection: AsyncIOMotorCollection, document_name: str = DEFAULT_DOCUMENT_NAME):
        self.collection = collection
        self.document_name = document_name

    @property
    def _filter(self) -> dict:
        return {"name": self.document_name}

    async def ensure_indexes(self) -> None:
        """Create the unique index that keeps the statistics document a singleton."""
        await self.collection.create_index("name", unique=True)

    async def _create_if_missing(self) -> dict:
        """
        Insert the seeded document unless one already exists.

        The upsert only writes ``data`` on insert, so a concurrent creator
        simply gets the document the other request stored.
        """
        try:
            return await self.collection.find_one_and_update(
                self._filter,
                {"$setOnInsert": {"data": CrudStats.seed().model_dump()}},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            # Lost the upsert race against another process
            return await self.collection.find_one(self._filter)

    async def _load(self) -> dict:
        document = await self.collection.find_one(self._filter)
        if document is None:
            logger.info("CRUD stats document missing, creating it", name=self.document_name)
            document = await self._create_if_missing()
        return document

    async def get_all(self) -> Optional[CrudStats]:
        """
        Get the counters for every operation kind.

        Returns:
            CrudStats, or None when the store could not be read
        """
        try:
            document = await self._load()
            return CrudStats(**document["data"])
        except PyMongoError as e:
            logger.error("Failed to read CRUD stats", error=str(e))
            return None

    async def get_one(self, kind: CrudKind) -> Optional[OperationCounter]:
        """Get the counters for a single operation kind."""
        stats = await self.get_all()
        if stats is None:
            return None
        return getattr(stats, CrudKind(kind).value)

    async def increment(self, kind: CrudKind, success: bool) -> Optional[CrudStats]:
        """
        Count one attempt of ``kind``; count it as successful too when ``success``.

        Args:
            kind: Operation kind of the observed request
            success: Whether the request finished with a 2xx status

        Returns:
            Counters after the update, or None on a persistence failure
        """
        kind = CrudKind(kind)
        update = {"$inc": {f"data.{kind.value}.total": 1}}
        if success:
            update["$inc"][f"data.{kind.value}.successful"] = 1

        try:
            document = await self.collection.find_one_and_update(
                self._filter, update, return_document=ReturnDocument.AFTER
            )
            if document is None:
                # Same read-seeded document as a first read, even when this
                # request is not a read: one seed shape for every creation path.
                await self._create_if_missing()
                document = await self.collection.find_one_and_update(
                    self._filter, update, return_document=ReturnDocument.AFTER
                )
            logger.debug("CRUD stats incremented", kind=kind.value, success=success)
            return CrudStats(**document["data"])
        except PyMongoError as e:
            logger.error("Failed to increment CRUD stats", kind=kind.value, success=success, error=str(e))
            return None
