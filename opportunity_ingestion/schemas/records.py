from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

RecordStatus = Literal["pending_review", "approved", "rejected", "promoted"]
StatusFilter = Literal["all", "pending_review", "approved", "rejected", "promoted"]
QueueSortBy = Literal["created_at", "match_score", "project_title"]
SortDir = Literal["asc", "desc"]


class IngestionRecord(BaseModel):
    """Opportunity candidate as returned by the upstream ingestion store.

    The nested ``ai_metadata`` and ``raw_payload`` objects are produced by a
    scraping/extraction process and carry no guaranteed shape, so anything that
    is not a mapping is coerced to an empty dict instead of failing validation.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    status: RecordStatus = "pending_review"
    temp_identifier: str | None = None
    source_id: str | None = None
    project_title: str | None = None
    client_name: str | None = None
    location: str | None = None
    budget_text: str | None = None
    deadline: str | None = None
    documents: list[str] | None = None
    tags: list[str] | None = None
    ai_summary: str | None = None
    ai_metadata: dict[str, Any] = Field(default_factory=dict)
    raw_payload: dict[str, Any] = Field(default_factory=dict)
    match_score: float | None = None
    risk_score: float | None = None
    strategic_fit_score: float | None = None
    reviewer_notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("ai_metadata", "raw_payload", mode="before")
    @classmethod
    def _coerce_mapping(cls, value: Any) -> dict[str, Any]:
        return value if isinstance(value, dict) else {}

    @field_validator("tags", "documents", mode="before")
    @classmethod
    def _coerce_text_list(cls, value: Any) -> list[str] | None:
        if not isinstance(value, list):
            return None
        return [item for item in value if isinstance(item, str)]

    @field_validator("match_score", "risk_score", "strategic_fit_score", mode="before")
    @classmethod
    def _coerce_score(cls, value: Any) -> float | None:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return float(value)

    @field_validator(
        "project_title",
        "client_name",
        "location",
        "budget_text",
        "deadline",
        "ai_summary",
        "reviewer_notes",
        "temp_identifier",
        "source_id",
        mode="before",
    )
    @classmethod
    def _coerce_optional_text(cls, value: Any) -> str | None:
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return None

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> datetime | None:
        if isinstance(value, datetime):
            return value
        if not isinstance(value, str) or not value.strip():
            return None
        try:
            return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None


class RecordUpdate(BaseModel):
    """Partial update sent to the upstream store; unset fields are omitted."""

    status: RecordStatus | None = None
    reviewer_notes: str | None = None
    project_title: str | None = None
    client_name: str | None = None
    location: str | None = None
    budget_text: str | None = None
    project_value: float | None = None
    deadline: str | None = None
    tags: list[str] | None = None
    ai_summary: str | None = None
    source_url: str | None = None
    contact_phone: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class StatusPatchRequest(BaseModel):
    status: RecordStatus
