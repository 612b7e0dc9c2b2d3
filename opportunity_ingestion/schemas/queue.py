from typing import Any, Literal

from pydantic import BaseModel, Field

from opportunity_ingestion.schemas.preview import PreviewMeta
from opportunity_ingestion.schemas.records import IngestionRecord

BulkAction = Literal["approve", "reject", "promote"]
PromotionState = Literal["promoted", "update_failed", "promote_failed"]


class QueueRowOut(BaseModel):
    record: IngestionRecord
    display_location: str | None = None
    source_url: str | None = None
    project_value: float | None = None


class StatusCountsOut(BaseModel):
    total: int = 0
    pending_review: int = 0
    approved: int = 0
    rejected: int = 0
    promoted: int = 0


class QueueOut(BaseModel):
    rows: list[QueueRowOut] = Field(default_factory=list)
    counts: StatusCountsOut = Field(default_factory=StatusCountsOut)


class PreviewOut(BaseModel):
    record_id: str
    preview: PreviewMeta
    display_phones: list[str] = Field(default_factory=list)


class BulkActionRequest(BaseModel):
    action: BulkAction
    ids: list[str] = Field(default_factory=list)
    account_id: str | None = None


class BulkActionResult(BaseModel):
    action: BulkAction
    succeeded: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


class PromotionOutcome(BaseModel):
    """Result of the update-then-promote commit.

    ``promote_failed`` marks a record whose edited fields were persisted but
    which was not promoted; the status is left unchanged upstream.
    """

    record_id: str
    state: PromotionState
    updated_record: IngestionRecord | None = None
    opportunity: dict[str, Any] | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.state == "promoted"
