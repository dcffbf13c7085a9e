# models.py
from dataclasses import dataclass, field
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

ItemKind = Literal["story", "job", "ask", "show", "poll"]

# ---------- client DTOs ----------

class Item(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int = Field(gt=0)
    title: str = ""
    url: Optional[str] = None
    by: str = ""
    time: int = 0
    score: int = 0
    descendants: Optional[int] = None
    type: ItemKind = "story"


class PageResult(BaseModel):
    stories: List[Item] = []
    totalCount: int = 0
    currentPage: int = 1
    totalPages: int = 0
    pageSize: int = 20


class CacheStats(BaseModel):
    entries: int
    usage: int
    limit: int


class HealthResponse(BaseModel):
    status: str = "healthy"
    timestamp: str
    cache: CacheStats


# ---------- fetch outcomes (internal) ----------

@dataclass(frozen=True)
class Found:
    item: Item


@dataclass(frozen=True)
class NotFound:
    item_id: int


@dataclass(frozen=True)
class TransientError:
    item_id: int
    error: Exception


FetchOutcome = Union[Found, NotFound, TransientError]


@dataclass
class PageSlice:
    ids: List[int]
    total_count: int
    total_pages: int


@dataclass
class Resolution:
    """Items resolved for a batch, in input order, plus whether it was cut short."""

    items: List[Item] = field(default_factory=list)
    cancelled: bool = False
    dropped: int = 0
