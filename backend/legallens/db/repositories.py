"""
Repositories — persistence for users, documents, analyses and history.

One repository per entity, each wrapping the request's AsyncSession. All
repositories of a request share that session, so one ``commit()`` ends the
whole unit of work. The orchestration services call it themselves, before
they build a response: a commit failure must reach the caller as an error
(and trigger blob cleanup) rather than happen after a 200 was sent.

Listing
───────
Listings are ordered by a caller-chosen column plus ``id`` as a tie-break,
so the order is total and repeated reads with no intervening writes return
the same list.

Two continuation modes are supported:

  cursor (primary)   An opaque token encoding the last row's sort value and
                     id. The next page is a keyset query
                     ``(sort_col, id) < (:v, :id)`` (``>`` for ascending),
                     which is O(limit) no matter how deep the page.
  page   (fallback)  Classic LIMIT/OFFSET. O(offset) per page; kept for
                     clients that jump to an arbitrary page number.

Both return ``nextCursor`` when more rows exist, so a client can switch from
page numbers to cursors at any point.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, Sequence, TypeVar

from sqlalchemy import Select, delete, func, select, tuple_, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from legallens.core.errors import ValidationError
from legallens.models.documents import Analysis, Document, User, UserHistory
from legallens.schemas.documents import Pagination, SortField, SortOrder

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_PAGE_SIZE = 100


# ---------------------------------------------------------------------------
# Pagination primitives
# ---------------------------------------------------------------------------

@dataclass
class Page(Generic[T]):
    items:       list[T]
    total:       int
    page:        int
    limit:       int
    next_cursor: str | None = None
    has_next:    bool = False

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def pagination(self) -> Pagination:
        return Pagination(
            page=self.page,
            limit=self.limit,
            total=self.total,
            total_pages=self.total_pages,
            has_next=self.has_next,
            has_prev=self.page > 1,
            next_cursor=self.next_cursor,
        )


@dataclass(frozen=True)
class ListQuery:
    sort_by: SortField = SortField.CREATED_AT
    order:   SortOrder = SortOrder.DESC
    page:    int = 1
    limit:   int = 10
    cursor:  str | None = None
    filters: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValidationError("Page must be greater than or equal to 1")
        if not 1 <= self.limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"Limit must be between 1 and {MAX_PAGE_SIZE}")


def _encode_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _decode_value(sort_by: SortField, raw: Any) -> Any:
    if sort_by in (SortField.CREATED_AT, SortField.UPDATED_AT):
        return datetime.fromisoformat(raw)
    if sort_by == SortField.SIZE:
        return int(raw)
    return str(raw)


def encode_cursor(sort_by: SortField, value: Any, row_id: uuid.UUID) -> str:
    payload = {"s": sort_by.value, "v": _encode_value(value), "id": str(row_id)}
    raw = json.dumps(payload, separators=(",", ":")).encode()
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()


def decode_cursor(token: str, sort_by: SortField) -> tuple[Any, uuid.UUID]:
    """Return (sort value, id). Raises ValidationError on a tampered or stale token."""
    try:
        padded = token + "=" * (-len(token) % 4)
        payload = json.loads(base64.urlsafe_b64decode(padded.encode()))
        if payload["s"] != sort_by.value:
            raise ValueError("cursor was issued for a different sort order")
        return _decode_value(sort_by, payload["v"]), uuid.UUID(payload["id"])
    except (KeyError, TypeError, ValueError, binascii.Error) as exc:
        raise ValidationError("Invalid pagination cursor") from exc


def apply_keyset(
    stmt: Select,
    sort_col,
    id_col,
    order: SortOrder,
    after: tuple[Any, uuid.UUID] | None,
) -> Select:
    """ORDER BY (sort_col, id) and, when resuming, filter past the last row."""
    if order == SortOrder.ASC:
        stmt = stmt.order_by(sort_col.asc(), id_col.asc())
        if after is not None:
            stmt = stmt.where(tuple_(sort_col, id_col) > tuple_(*after))
    else:
        stmt = stmt.order_by(sort_col.desc(), id_col.desc())
        if after is not None:
            stmt = stmt.where(tuple_(sort_col, id_col) < tuple_(*after))
    return stmt


async def _paginate(
    session:   AsyncSession,
    entity,
    where:     Sequence,
    sort_col,
    sort_attr: str,
    query:     ListQuery,
) -> Page:
    total = await session.scalar(
        select(func.count()).select_from(entity).where(*where)
    ) or 0

    stmt = select(entity).where(*where)
    after = decode_cursor(query.cursor, query.sort_by) if query.cursor else None
    stmt = apply_keyset(stmt, sort_col, entity.id, query.order, after)
    if after is None:
        stmt = stmt.offset((query.page - 1) * query.limit)
    # one extra row tells us whether another page exists
    stmt = stmt.limit(query.limit + 1)

    rows = list((await session.scalars(stmt)).all())
    has_next = len(rows) > query.limit
    rows = rows[: query.limit]

    next_cursor = None
    if has_next and rows:
        last = rows[-1]
        next_cursor = encode_cursor(query.sort_by, getattr(last, sort_attr), last.id)

    return Page(
        items=rows,
        total=total,
        page=query.page,
        limit=query.limit,
        next_cursor=next_cursor,
        has_next=has_next,
    )


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------

class _Repository:

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def commit(self) -> None:
        await self.session.commit()


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------

_DOCUMENT_SORT_ATTRS: dict[SortField, str] = {
    SortField.CREATED_AT: "created_at",
    SortField.UPDATED_AT: "updated_at",
    SortField.FILE_NAME:  "file_name",
    SortField.SIZE:       "size_bytes",
}

# user_id and id are deliberately absent: a document's owner never changes
_DOCUMENT_UPDATABLE: frozenset[str] = frozenset(
    {"file_name", "doc_metadata", "extracted_text", "analysis", "confidence", "entities"}
)


class DocumentRepository(_Repository):

    async def save(self, document: Document) -> Document:
        """Insert; created_at/updated_at come back from the server on flush."""
        self.session.add(document)
        await self.session.flush()
        logger.info(
            "Document saved | id=%s user=%s file=%s",
            document.id, document.user_id, document.file_name,
        )
        return document

    async def get(self, document_id: uuid.UUID) -> Document | None:
        return await self.session.get(Document, document_id)

    async def get_by_storage_uri(self, storage_uri: str) -> Document | None:
        stmt = (
            select(Document)
            .where(Document.storage_uri == storage_uri)
            .order_by(Document.created_at.desc())
            .limit(1)
        )
        return (await self.session.scalars(stmt)).first()

    async def update(self, document_id: uuid.UUID, **fields: Any) -> Document | None:
        """Merge ``fields`` into the row and refresh updated_at."""
        illegal = set(fields) - _DOCUMENT_UPDATABLE
        if illegal:
            raise ValueError(f"Fields not updatable: {sorted(illegal)}")

        values = {getattr(Document, name): value for name, value in fields.items()}
        values[Document.updated_at] = func.now()

        stmt = (
            update(Document)
            .where(Document.id == document_id)
            .values(values)
            .returning(Document)
            .execution_options(populate_existing=True)
        )
        return (await self.session.scalars(stmt)).one_or_none()

    async def delete(self, document_id: uuid.UUID) -> bool:
        result = await self.session.execute(
            delete(Document).where(Document.id == document_id).returning(Document.id)
        )
        deleted = result.scalar_one_or_none() is not None
        logger.info("Document delete | id=%s deleted=%s", document_id, deleted)
        return deleted

    async def list_for_user(self, user_id: str, query: ListQuery) -> Page[Document]:
        attr = _DOCUMENT_SORT_ATTRS[query.sort_by]
        return await _paginate(
            self.session,
            Document,
            [Document.user_id == user_id],
            getattr(Document, attr),
            attr,
            query,
        )

    async def stats_for_user(self, user_id: str) -> dict[str, Any]:
        stmt = select(
            func.count(Document.id),
            func.coalesce(func.sum(Document.size_bytes), 0),
            func.min(Document.created_at),
            func.max(Document.created_at),
        ).where(Document.user_id == user_id)
        count, total_size, oldest, newest = (await self.session.execute(stmt)).one()
        return {
            "total_documents":   int(count),
            "total_file_size":   int(total_size),
            "average_file_size": int(total_size) // int(count) if count else 0,
            "oldest_document":   oldest,
            "newest_document":   newest,
        }


# ---------------------------------------------------------------------------
# Analyses
# ---------------------------------------------------------------------------

class AnalysisRepository(_Repository):

    async def save(self, analysis: Analysis) -> Analysis:
        self.session.add(analysis)
        await self.session.flush()
        logger.info(
            "Analysis saved | id=%s user=%s document=%s length=%d",
            analysis.id, analysis.user_id, analysis.document_id, analysis.extracted_length,
        )
        return analysis

    async def get(self, analysis_id: uuid.UUID) -> Analysis | None:
        return await self.session.get(Analysis, analysis_id)

    async def delete(self, analysis_id: uuid.UUID) -> bool:
        result = await self.session.execute(
            delete(Analysis).where(Analysis.id == analysis_id).returning(Analysis.id)
        )
        return result.scalar_one_or_none() is not None

    async def list_for_user(self, user_id: str, query: ListQuery) -> Page[Analysis]:
        where = [Analysis.user_id == user_id]
        document_id = query.filters.get("document_id")
        if document_id is not None:
            where.append(Analysis.document_id == document_id)
        return await _paginate(
            self.session, Analysis, where, Analysis.created_at, "created_at", query,
        )


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

def build_history_append(user_id: str, entry: dict[str, Any]):
    """
    Single-statement atomic append:

        INSERT INTO user_history (user_id, entries) VALUES (:uid, '[entry]')
        ON CONFLICT (user_id) DO UPDATE
            SET entries = user_history.entries || excluded.entries

    Concurrent appends for the same user serialize on the row lock taken by
    ON CONFLICT, so no entry is lost and no application-level lock is needed.
    """
    stmt = pg_insert(UserHistory).values(user_id=user_id, entries=[entry])
    return stmt.on_conflict_do_update(
        index_elements=[UserHistory.user_id],
        set_={
            "entries":    UserHistory.entries.op("||")(stmt.excluded.entries),
            "updated_at": func.now(),
        },
    )


class HistoryRepository(_Repository):

    async def append(self, user_id: str, entry: dict[str, Any]) -> None:
        await self.session.execute(build_history_append(user_id, entry))
        logger.debug("History append | user=%s document=%s", user_id, entry.get("documentId"))

    async def entries(self, user_id: str) -> list[dict[str, Any]]:
        stmt = select(UserHistory.entries).where(UserHistory.user_id == user_id)
        return list(await self.session.scalar(stmt) or [])

    async def recent(self, user_id: str, limit: int = 10) -> list[dict[str, Any]]:
        """Newest first."""
        entries = await self.entries(user_id)
        return list(reversed(entries[-limit:])) if limit > 0 else []


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

class UserRepository(_Repository):

    async def mirror_sign_in(
        self,
        uid: str,
        email: str,
        display_name: str | None,
        photo_url: str | None = None,
    ) -> User:
        """Upsert the identity-provider profile and stamp last_login_at."""
        stmt = pg_insert(User).values(
            uid=uid,
            email=email,
            display_name=display_name,
            photo_url=photo_url,
            last_login_at=func.now(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[User.uid],
            set_={
                "email":         stmt.excluded.email,
                # keep a profile name the user edited over the provider's one
                "display_name":  func.coalesce(User.display_name, stmt.excluded.display_name),
                "last_login_at": func.now(),
                "updated_at":    func.now(),
            },
        )
        stmt = stmt.returning(User).execution_options(populate_existing=True)
        return (await self.session.scalars(stmt)).one()

    async def get(self, uid: str) -> User | None:
        return await self.session.get(User, uid)

    async def update_profile(
        self,
        uid: str,
        display_name: str | None = None,
        photo_url: str | None = None,
    ) -> User | None:
        values: dict[Any, Any] = {User.updated_at: func.now()}
        if display_name is not None:
            values[User.display_name] = display_name
        if photo_url is not None:
            values[User.photo_url] = photo_url

        stmt = (
            update(User)
            .where(User.uid == uid)
            .values(values)
            .returning(User)
            .execution_options(populate_existing=True)
        )
        return (await self.session.scalars(stmt)).one_or_none()
