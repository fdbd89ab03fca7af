from pydantic import BaseModel, ConfigDict, Field, computed_field, field_serializer
from typing import Any, Dict, List, Optional, Literal
from datetime import datetime, timezone
from enum import Enum

Kind = Literal["audio", "video"]

# Breakdown: program -> facet -> count (None = never resolved)
Breakdown = Dict[str, Dict[str, Optional[int]]]


def format_iso(value: Optional[datetime]) -> Optional[str]:
    """Millisecond ISO-8601 in UTC with a Z suffix, e.g. 2024-01-05T00:00:00.000Z"""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


class ItemId(BaseModel):
    """Stable identity: the program plus a natural key from the originating source."""

    model_config = ConfigDict(frozen=True)

    program: str
    source: str
    key: str

    def __str__(self) -> str:
        return f"{self.program}:{self.source}:{self.key}"


class Item(BaseModel):
    identity: ItemId
    program: str
    kind: Kind
    title: str = Field(..., min_length=1)
    date: Optional[datetime] = None
    url: Optional[str] = None
    page: str

    @field_serializer("date")
    def _serialize_date(self, value: Optional[datetime]) -> Optional[str]:
        return format_iso(value)

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": str(self.identity),
            "program": self.program,
            "kind": self.kind,
            "title": self.title,
            "url": self.url,
            "date": format_iso(self.date),
            "page": self.page,
        }


class SearchIndexEntry(BaseModel):
    item: Item

    @computed_field
    @property
    def title_lc(self) -> str:
        return self.item.title.strip().lower()

    def to_record(self) -> Dict[str, Any]:
        record = self.item.to_record()
        record["title_lc"] = self.title_lc
        return record


class ReadyState(str, Enum):
    READY = "ready"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


class PageSnapshot(BaseModel):
    """Values copied out of one rendered page visit. Never persisted."""

    path: str
    ready: ReadyState
    fragment: Optional[Dict[str, Any]] = None
    datasets: Dict[str, Any] = {}
    dom: Dict[str, Optional[str]] = {}


class CountsSummary(BaseModel):
    total: int
    breakdown: Breakdown
    updated: str


class CountsDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    all_shiurim: CountsSummary = Field(..., alias="allShiurim")
    recent: List[Item] = []
    recent_by_program: Dict[str, List[Item]] = Field(default_factory=dict, alias="recentByProgram")

    def to_record(self) -> Dict[str, Any]:
        return {
            "allShiurim": self.all_shiurim.model_dump(),
            "recent": [item.to_record() for item in self.recent],
            "recentByProgram": {
                program: [item.to_record() for item in items]
                for program, items in self.recent_by_program.items()
            },
        }
