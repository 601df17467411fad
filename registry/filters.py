"""Listing options for credit queries, validated before they reach a store."""

from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from models.entities.couchbase.credits import CreditStatus

SortField = Literal["created_at", "updated_at", "issued_at", "quantity", "status", "vintage"]

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


class CreditQuery(BaseModel):
    """Every recognised option for listing credit entries.

    - status: only entries in this status
    - vintage: only entries of this vintage year
    - limit: page size, 1..100
    - cursor: opaque token from a previous page (``CreditPage.next_cursor``)
    - sort_by / sort_order: ordering of the page
    """
    status: Optional[CreditStatus] = None
    vintage: Optional[int] = Field(default=None, ge=1990, le=2200)
    limit: int = Field(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT)
    cursor: Optional[str] = None
    sort_by: SortField = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"

    @field_validator("cursor")
    @classmethod
    def _cursor_is_offset(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and (not v.isdigit()):
            raise ValueError("cursor must come from a previous page")
        return v

    @property
    def offset(self) -> int:
        return int(self.cursor) if self.cursor else 0

    @property
    def order_by(self) -> str:
        return f"{self.sort_by} {self.sort_order.upper()}"

    def next_cursor(self, page_size: int) -> Optional[str]:
        if page_size < self.limit:
            return None
        return str(self.offset + page_size)
