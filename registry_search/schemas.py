"""
Pydantic request / response schemas.

Two groups:
  • API responses  — the JSON contract consumed by the docs UI
  • Index feed     — the newline-delimited JSON search feed read by the loader
"""
import json
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


# ──────────────────────────── API responses ───────────────────────────────

class SearchResult(BaseModel):
    """A ranked entity returned by /search."""
    id: str
    last_updated: Optional[datetime] = None
    type: str   # passed through, unknown values included
    addr: str
    version: str
    title: str
    description: Optional[str] = None
    link_variables: Optional[dict[str, Any]] = None
    popularity: int = 0
    warnings: int = 0
    # Composite score, exposed for debugging ranking
    rank_score: float = 0.0

    @field_validator("link_variables", mode="before")
    @classmethod
    def _decode_link_variables(cls, value: Any) -> Any:
        # Some drivers hand back jsonb as text
        if isinstance(value, str):
            return json.loads(value)
        return value


class TopProvider(BaseModel):
    addr: str
    version: str
    popularity: int


# ──────────────────────────── Index feed ──────────────────────────────────

class FeedHeader(BaseModel):
    last_updated: datetime


class IndexItem(BaseModel):
    id: str = Field(..., min_length=1)
    type: str
    addr: str = Field(..., min_length=1)
    version: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    link_variables: dict[str, str] = Field(default_factory=dict, alias="link")
    parent_id: Optional[str] = None
    last_updated: datetime
    popularity: int = Field(0, ge=0)
    warnings: int = 0

    class Config:
        populate_by_name = True


class ItemDeletion(BaseModel):
    id: str = Field(..., min_length=1)
    deleted_at: Optional[datetime] = None


class FeedLine(BaseModel):
    """One line of the search feed: a header, an addition or a deletion."""
    type: str   # 'header' | 'add' | 'delete'; others are skipped
    header: Optional[FeedHeader] = None
    addition: Optional[IndexItem] = None
    deletion: Optional[ItemDeletion] = None


