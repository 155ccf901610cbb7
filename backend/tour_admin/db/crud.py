"""
Document store: collection-scoped CRUD and cursor queries over the documents table
"""

import base64
import binascii
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import and_, asc, delete, desc, func, or_, select

from tour_admin.db.models import Document, SORTABLE_FIELDS, utcnow
from tour_admin.db.session import DatabaseManager

logger = logging.getLogger(__name__)


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class DocumentNotFoundError(LookupError):
    def __init__(self, collection: str, document_id: str):
        super().__init__(f"{collection}/{document_id} not found")
        self.collection = collection
        self.document_id = document_id


class InvalidCursorError(ValueError):
    pass


def _as_utc(value: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class DocumentCursor:
    """Position of one document in an ordered scan: its sort key plus id as tie-breaker"""
    value: datetime
    id: str

    def encode(self) -> str:
        raw = json.dumps({"v": self.value.isoformat(), "id": self.id}).encode("utf-8")
        return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")

    @classmethod
    def decode(cls, token: str) -> "DocumentCursor":
        try:
            padded = token + "=" * (-len(token) % 4)
            payload = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
            return cls(value=_as_utc(datetime.fromisoformat(payload["v"])), id=str(payload["id"]))
        except (binascii.Error, UnicodeError, ValueError, KeyError, TypeError) as e:
            raise InvalidCursorError(f"Malformed cursor: {token!r}") from e


@dataclass
class DocumentSnapshot:
    collection: str
    id: str
    data: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @classmethod
    def from_row(cls, row: Document) -> "DocumentSnapshot":
        return cls(
            collection=row.collection,
            id=row.id,
            data=dict(row.data or {}),
            created_at=_as_utc(row.created_at),
            updated_at=_as_utc(row.updated_at),
        )

    def cursor(self, sort_field: str = "createdAt") -> DocumentCursor:
        column = SORTABLE_FIELDS[sort_field]
        return DocumentCursor(value=getattr(self, column), id=self.id)


Order = Tuple[str, SortDirection]


def _filter_value(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


class DocumentStore:
    """
    Client for the document database.

    Documents are addressed by ``(collection, id)``. Reads return
    ``DocumentSnapshot`` objects; callers validate ``data`` into typed
    entities before using it.
    """

    def __init__(
        self,
        db: DatabaseManager,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex[:20],
    ):
        self.db = db
        self.clock = clock
        self.id_factory = id_factory

    async def find(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        order: Order = ("createdAt", SortDirection.DESC),
        start_after: Optional[DocumentCursor] = None,
        end_before: Optional[DocumentCursor] = None,
        limit: Optional[int] = None,
    ) -> List[DocumentSnapshot]:
        """
        Ordered range query over one collection.

        ``start_after`` returns the documents strictly after the cursor in
        the requested order. ``end_before`` returns the documents strictly
        before it, nearest first, so the rows come back in the reverse of
        the requested order.
        """
        if start_after is not None and end_before is not None:
            raise ValueError("start_after and end_before are mutually exclusive")

        sort_field, direction = order
        if sort_field not in SORTABLE_FIELDS:
            raise ValueError(f"Unsupported sort field: {sort_field}")
        column = getattr(Document, SORTABLE_FIELDS[sort_field])
        ascending = SortDirection(direction) == SortDirection.ASC

        stmt = select(Document).where(Document.collection == collection)
        for name, value in (filters or {}).items():
            stmt = stmt.where(Document.data[name].as_string() == _filter_value(value))

        if start_after is not None:
            if ascending:
                stmt = stmt.where(or_(
                    column > start_after.value,
                    and_(column == start_after.value, Document.id > start_after.id),
                ))
            else:
                stmt = stmt.where(or_(
                    column < start_after.value,
                    and_(column == start_after.value, Document.id < start_after.id),
                ))

        scan_ascending = ascending
        if end_before is not None:
            if ascending:
                stmt = stmt.where(or_(
                    column < end_before.value,
                    and_(column == end_before.value, Document.id < end_before.id),
                ))
            else:
                stmt = stmt.where(or_(
                    column > end_before.value,
                    and_(column == end_before.value, Document.id > end_before.id),
                ))
            scan_ascending = not ascending

        if scan_ascending:
            stmt = stmt.order_by(asc(column), asc(Document.id))
        else:
            stmt = stmt.order_by(desc(column), desc(Document.id))

        if limit is not None:
            stmt = stmt.limit(limit)

        try:
            async with self.db.get_session() as session:
                result = await session.execute(stmt)
                rows = result.scalars().all()
        except Exception as e:
            logger.error(f"Error querying {collection}: {e}")
            raise

        return [DocumentSnapshot.from_row(row) for row in rows]

    async def get(self, collection: str, document_id: str) -> Optional[DocumentSnapshot]:
        try:
            async with self.db.get_session() as session:
                row = await self._load(session, collection, document_id)
                return DocumentSnapshot.from_row(row) if row else None
        except Exception as e:
            logger.error(f"Error getting {collection}/{document_id}: {e}")
            raise

    async def add(
        self,
        collection: str,
        data: Dict[str, Any],
        created_at: Optional[datetime] = None,
    ) -> DocumentSnapshot:
        """Create a document under a fresh id"""
        return await self.set(collection, self.id_factory(), data, created_at=created_at)

    async def set(
        self,
        collection: str,
        document_id: str,
        data: Dict[str, Any],
        created_at: Optional[datetime] = None,
    ) -> DocumentSnapshot:
        """
        Create or fully overwrite a document.

        An overwrite keeps the stored ``created_at`` unless one is passed
        explicitly; ``updated_at`` always moves to now.
        """
        now = self.clock()
        try:
            async with self.db.transaction() as session:
                row = await self._load(session, collection, document_id)
                if row is None:
                    row = Document(
                        collection=collection,
                        id=document_id,
                        data=dict(data),
                        created_at=created_at or now,
                        updated_at=created_at or now,
                    )
                    session.add(row)
                else:
                    row.data = dict(data)
                    row.updated_at = now
                    if created_at is not None:
                        row.created_at = created_at
                snapshot = DocumentSnapshot(
                    collection=collection,
                    id=document_id,
                    data=dict(row.data),
                    created_at=_as_utc(row.created_at),
                    updated_at=_as_utc(row.updated_at),
                )
        except Exception as e:
            logger.error(f"Error writing {collection}/{document_id}: {e}")
            raise

        logger.info(f"Wrote document {collection}/{document_id}")
        return snapshot

    async def update(
        self,
        collection: str,
        document_id: str,
        partial: Dict[str, Any],
    ) -> DocumentSnapshot:
        """Shallow-merge ``partial`` into an existing document"""
        now = self.clock()
        try:
            async with self.db.transaction() as session:
                row = await self._load(session, collection, document_id)
                if row is None:
                    raise DocumentNotFoundError(collection, document_id)
                row.data = {**(row.data or {}), **partial}
                row.updated_at = now
                snapshot = DocumentSnapshot(
                    collection=collection,
                    id=document_id,
                    data=dict(row.data),
                    created_at=_as_utc(row.created_at),
                    updated_at=_as_utc(row.updated_at),
                )
        except DocumentNotFoundError:
            raise
        except Exception as e:
            logger.error(f"Error updating {collection}/{document_id}: {e}")
            raise

        logger.info(f"Updated document {collection}/{document_id}")
        return snapshot

    async def delete(self, collection: str, document_id: str) -> bool:
        try:
            async with self.db.transaction() as session:
                result = await session.execute(
                    delete(Document)
                    .where(Document.collection == collection)
                    .where(Document.id == document_id)
                )
                deleted = (result.rowcount or 0) > 0
        except Exception as e:
            logger.error(f"Error deleting {collection}/{document_id}: {e}")
            raise

        if deleted:
            logger.info(f"Deleted document {collection}/{document_id}")
        return deleted

    async def count(self, collection: str) -> int:
        async with self.db.get_session() as session:
            total = await session.scalar(
                select(func.count()).select_from(Document).where(Document.collection == collection)
            )
        return total or 0

    @staticmethod
    async def _load(session, collection: str, document_id: str) -> Optional[Document]:
        result = await session.execute(
            select(Document)
            .where(Document.collection == collection)
            .where(Document.id == document_id)
        )
        return result.scalar_one_or_none()
