"""Paging and sorting for list endpoints.

List endpoints take ``Depends(PaginationParams)`` and hand the params to
:func:`paginate`, which returns ``{"data": [...], "meta": {...}}``.
"""


import math
from typing import Any, Generic, Optional, Sequence, TypeVar

from fastapi import Query
from pydantic import BaseModel
from sqlalchemy import Select, func, inspect
from sqlalchemy.ext.asyncio import AsyncSession

from hrdesk.common.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

T = TypeVar("T")


class PaginationParams:
    """Query-string paging: ``?page=2&page_size=20&sort=-created_at``."""

    def __init__(
        self,
        page: int = Query(default=1, ge=1, description="Page number, starting at 1"),
        page_size: int = Query(
            default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE,
            description=f"Rows per page, at most {MAX_PAGE_SIZE}",
        ),
        sort: Optional[str] = Query(
            default=None,
            description='Column to sort by; a leading "-" sorts descending',
        ),
    ) -> None:
        self.page = page
        self.page_size = page_size
        self.sort = sort

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


class PaginationMeta(BaseModel):
    page: int
    page_size: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, params: PaginationParams, total: int) -> "PaginationMeta":
        pages = math.ceil(total / params.page_size) if total else 0
        return cls(
            page=params.page,
            page_size=params.page_size,
            total=total,
            total_pages=pages,
            has_next=params.page < pages,
            has_prev=params.page > 1,
        )


class PaginatedResponse(BaseModel, Generic[T]):
    data: Sequence[T]
    meta: PaginationMeta


def _sort_column(model: Any, sort: Optional[str]):
    """Resolve ``sort`` to an ORDER BY clause on a mapped column, or None.

    Only real columns of *model* are accepted, so relationship names and
    arbitrary text never reach the SQL.
    """
    if not sort or model is None:
        return None
    name = sort.lstrip("-")
    columns = inspect(model).columns
    if name not in columns:
        return None
    column = getattr(model, name)
    return column.desc() if sort.startswith("-") else column.asc()


async def paginate(
    session: AsyncSession,
    query: Select,
    params: PaginationParams,
    *,
    model: Any = None,
) -> PaginatedResponse:
    """Run *query* for one page and count the full result set.

    A recognised ``params.sort`` replaces the query's ORDER BY; anything
    else leaves the caller's ordering untouched.
    """
    order = _sort_column(model, params.sort)
    if order is not None:
        query = query.order_by(None).order_by(order)

    total: int = (
        await session.execute(query.with_only_columns(func.count()).order_by(None))
    ).scalar_one()

    page = await session.execute(query.offset(params.offset).limit(params.page_size))
    rows = page.scalars().unique().all()

    return PaginatedResponse(data=rows, meta=PaginationMeta.build(params, total))
