from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


SCHEMA_VERSION = 1


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class WagerUnits(str, Enum):
    """Unit of the numeric wager fields a source reports."""

    BASE = "base"
    CENTS = "cents"


class PrizePolicy(str, Enum):
    """
    LADDER: trust only the configured ladder.
    MERGE: prize tiers found in the payload override the ladder per rank.
    """

    LADDER = "ladder"
    MERGE = "merge"


class PrizeEntry(BaseModel):
    """
    One prize-eligible rank.

    `currency` and `label` are only set for the richer prize form
    (e.g. {"amount": 50, "currency": "USD", "label": "$50 cash"}).
    """

    model_config = ConfigDict(frozen=True)

    rank: int = Field(..., ge=1, description="1-based leaderboard rank")
    amount: float = Field(0.0, ge=0, description="Prize amount in base units")
    currency: Optional[str] = Field(None, description="Currency code, if known")
    label: Optional[str] = Field(None, description="Display label, if provided")


class CanonicalRow(BaseModel):
    """
    Normalized leaderboard entry, independent of the originating
    source's raw field names.
    """

    model_config = ConfigDict(frozen=True)

    rank: int = Field(..., ge=1)
    username: str = Field(..., min_length=1)
    wagered: float = Field(0.0, ge=0, description="Wagered amount in base units")
    prize: float = Field(0.0, ge=0)


class NormalizedLeaderboard(BaseModel):
    """Output of the row normalizer: sorted rows plus the resolved prize table."""

    rows: List[CanonicalRow] = Field(default_factory=list)
    prizes: List[PrizeEntry] = Field(default_factory=list)
    total_entries: int = Field(
        0, description="Entries located in the payload before truncation/padding"
    )


class SnapshotMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    source: str
    fetched_at: str = Field(default_factory=utc_now_iso, alias="fetchedAt")
    url: str = ""
    error: Optional[str] = None
    tried: Optional[List[str]] = None
    period: Optional[Dict[str, Any]] = None
    total_entries: Optional[int] = Field(None, alias="totalEntries")

    @field_validator("error", mode="before")
    @classmethod
    def validate_error(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class Snapshot(BaseModel):
    """
    One complete, self-contained leaderboard document as persisted for
    the front-end. Replaces any previous snapshot for the same source.
    """

    model_config = ConfigDict(populate_by_name=True)

    schema_version: int = Field(SCHEMA_VERSION, alias="schemaVersion")
    rows: List[CanonicalRow] = Field(default_factory=list)
    prizes: List[PrizeEntry] = Field(default_factory=list)
    metadata: SnapshotMetadata

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
