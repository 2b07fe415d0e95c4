"""
History API Router

GET /api/history          → the caller's documents, sorted and paginated
GET /api/history/recent   → newest entries from the denormalized history list
GET /api/history/stats    → document count / size statistics

Listing is deterministic: with identical parameters and no intervening
writes the same ordered page comes back (ties broken on id). Pass the
returned ``nextCursor`` back as ``cursor`` for keyset continuation;
``page`` is honoured only when no cursor is given.
"""

from __future__ import annotations

from fastapi import APIRouter, Query

from legallens.auth.dependencies import CurrentUser, Documents
from legallens.db.repositories import ListQuery
from legallens.schemas.documents import (
    DocumentListResponse,
    ErrorResponse,
    RecentHistoryResponse,
    SortField,
    SortOrder,
    UserStatsResponse,
)

router = APIRouter(prefix="/history", tags=["History"])


@router.get(
    "",
    response_model=DocumentListResponse,
    summary="Document history",
    responses={400: {"model": ErrorResponse, "description": "Invalid paging parameters or cursor"}},
)
async def get_history(
    user: CurrentUser,
    service: Documents,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: SortField = Query(SortField.CREATED_AT, alias="sortBy"),
    order: SortOrder = Query(SortOrder.DESC),
    cursor: str | None = Query(None),
) -> DocumentListResponse:
    query = ListQuery(sort_by=sort_by, order=order, page=page, limit=limit, cursor=cursor)
    return await service.list_documents(user, query)


@router.get("/recent", response_model=RecentHistoryResponse, summary="Recent documents")
async def recent_history(
    user: CurrentUser,
    service: Documents,
    limit: int = Query(10, ge=1, le=50),
) -> RecentHistoryResponse:
    return RecentHistoryResponse(entries=await service.recent(user, limit))


@router.get("/stats", response_model=UserStatsResponse, summary="Usage statistics")
async def history_stats(user: CurrentUser, service: Documents) -> UserStatsResponse:
    return UserStatsResponse(stats=await service.stats(user))
