from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import timezone

from opentelemetry import trace

from opportunity_ingestion.schemas.preview import DraftDefaults, PreviewMeta, PromotionForm
from opportunity_ingestion.schemas.queue import (
    BulkAction,
    BulkActionResult,
    PromotionOutcome,
    QueueRowOut,
    StatusCountsOut,
)
from opportunity_ingestion.schemas.records import (
    IngestionRecord,
    QueueSortBy,
    RecordStatus,
    SortDir,
    StatusFilter,
)
from opportunity_ingestion.services.drafts import build_draft_defaults
from opportunity_ingestion.services.location import display_location
from opportunity_ingestion.services.preview import extract_preview_meta
from opportunity_ingestion.services.promotion import PromotionWorkflow
from opportunity_ingestion.services.sources import non_empty_text, number

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

SOURCE_URL_KEYS = (
    "source_url",
    "sourceUrl",
    "detail_url",
    "detailUrl",
    "company_website",
    "companyWebsite",
    "url",
)

MemberMutation = Callable[[IngestionRecord], Awaitable[IngestionRecord]]


class QueueError(Exception):
    """Base error for queue controller operations."""


class UnknownRecordError(QueueError, LookupError):
    """Raised when an id is not part of the current record set."""


class EmptySelectionError(QueueError):
    """Raised when a bulk action is requested with nothing selected."""


def filter_records(
    records: Iterable[IngestionRecord],
    *,
    query: str = "",
    status: StatusFilter = "all",
) -> list[IngestionRecord]:
    needle = query.strip().lower()
    filtered = [record for record in records if not needle or _matches_query(record, needle)]
    if status != "all":
        filtered = [record for record in filtered if record.status == status]
    return filtered


def sort_records(
    records: Iterable[IngestionRecord],
    *,
    by: QueueSortBy = "created_at",
    order: SortDir = "desc",
) -> list[IngestionRecord]:
    if by == "match_score":
        key: Callable[[IngestionRecord], float | str] = lambda record: record.match_score or 0.0
    elif by == "project_title":
        key = lambda record: (record.project_title or "").lower()
    else:
        key = _created_at_ms
    # reverse=True keeps equal keys in input order
    return sorted(records, key=key, reverse=order == "desc")


def count_statuses(records: Iterable[IngestionRecord]) -> StatusCountsOut:
    counts = StatusCountsOut()
    for record in records:
        counts.total += 1
        setattr(counts, record.status, getattr(counts, record.status) + 1)
    return counts


def resolve_source_url(record: IngestionRecord) -> str | None:
    for key in SOURCE_URL_KEYS:
        value = non_empty_text(record.raw_payload.get(key))
        if value:
            return value
    return None


def project_value(record: IngestionRecord) -> float | None:
    for key in ("project_value_numeric", "project_value"):
        value = number(record.raw_payload.get(key))
        if value:
            return value
    return None


def build_row(record: IngestionRecord) -> QueueRowOut:
    return QueueRowOut(
        record=record,
        display_location=display_location(record),
        source_url=resolve_source_url(record),
        project_value=project_value(record),
    )


class IngestionQueueController:
    """Filter, sort and selection state over the ingestion record set.

    The selection set is owned here; callers read it through ``selected`` and
    change it only through the toggle/select/clear operations.
    """

    def __init__(
        self,
        workflow: PromotionWorkflow,
        records: Iterable[IngestionRecord] = (),
        *,
        retain_failed_selection: bool = True,
    ) -> None:
        self.workflow = workflow
        self.retain_failed_selection = retain_failed_selection
        self.records: dict[str, IngestionRecord] = {}
        self.query = ""
        self.status: StatusFilter = "all"
        self.sort_by: QueueSortBy = "created_at"
        self.sort_order: SortDir = "desc"
        self._selected: set[str] = set()
        self._detail: IngestionRecord | None = None
        self.replace_records(records)

    @property
    def selected(self) -> frozenset[str]:
        return frozenset(self._selected)

    @property
    def detail(self) -> IngestionRecord | None:
        return self._detail

    def replace_records(self, records: Iterable[IngestionRecord]) -> None:
        self.records = {record.id: record for record in records}
        if self._detail is not None:
            self._detail = self.records.get(self._detail.id, self._detail)

    def get(self, record_id: str) -> IngestionRecord:
        try:
            return self.records[record_id]
        except KeyError as exc:
            raise UnknownRecordError(f"record not found: {record_id}") from exc

    def visible(self) -> list[IngestionRecord]:
        filtered = filter_records(self.records.values(), query=self.query, status=self.status)
        return sort_records(filtered, by=self.sort_by, order=self.sort_order)

    def status_counts(self) -> StatusCountsOut:
        return count_statuses(self.records.values())

    def toggle_select(self, record_id: str) -> None:
        if record_id in self._selected:
            self._selected.discard(record_id)
        else:
            self._selected.add(record_id)

    def select_all(self) -> None:
        visible_ids = {record.id for record in self.visible()}
        if self._selected == visible_ids:
            self._selected = set()
        else:
            self._selected = visible_ids

    def clear(self) -> None:
        self._selected = set()

    def open_detail(self, record_id: str) -> IngestionRecord:
        self._detail = self.get(record_id)
        return self._detail

    def close_detail(self) -> None:
        self._detail = None

    def preview(self, record_id: str) -> PreviewMeta:
        return extract_preview_meta(self.get(record_id))

    def draft_defaults(self, record_id: str) -> DraftDefaults:
        return build_draft_defaults(self.get(record_id))

    async def change_status(self, record_id: str, status: RecordStatus) -> IngestionRecord:
        updated = await self.workflow.change_status(self.get(record_id), status)
        self._store(updated)
        return updated

    async def refresh(self, record_id: str) -> IngestionRecord:
        refreshed = await self.workflow.refresh(self.get(record_id))
        self._store(refreshed)
        return refreshed

    async def promote(self, record_id: str, form: PromotionForm) -> PromotionOutcome:
        outcome = await self.workflow.promote(self.get(record_id), form)
        if outcome.updated_record is not None:
            updated = outcome.updated_record
            if outcome.ok:
                updated = updated.model_copy(update={"status": "promoted"})
            self._store(updated)
        return outcome

    async def bulk_approve(self) -> BulkActionResult:
        return await self._run_bulk("approve", lambda record: self.workflow.change_status(record, "approved"))

    async def bulk_reject(self) -> BulkActionResult:
        return await self._run_bulk("reject", lambda record: self.workflow.change_status(record, "rejected"))

    async def bulk_promote(self, account_id: str | None = None) -> BulkActionResult:
        async def promote(record: IngestionRecord) -> IngestionRecord:
            await self.workflow.promote_only(record, account_id)
            return record.model_copy(update={"status": "promoted"})

        return await self._run_bulk("promote", promote)

    async def _run_bulk(self, action: BulkAction, mutate: MemberMutation) -> BulkActionResult:
        record_ids = sorted(self._selected)
        if not record_ids:
            raise EmptySelectionError(f"select records to {action}")

        with tracer.start_as_current_span("queue.bulk_action") as span:
            span.set_attribute("queue.action", action)
            span.set_attribute("queue.selected_count", len(record_ids))
            results = await asyncio.gather(
                *(self._run_member(record_id, mutate) for record_id in record_ids),
                return_exceptions=True,
            )

        succeeded: list[str] = []
        failed: dict[str, str] = {}
        for record_id, result in zip(record_ids, results):
            if isinstance(result, IngestionRecord):
                self._store(result)
                succeeded.append(record_id)
            elif isinstance(result, Exception):
                failed[record_id] = str(result) or type(result).__name__
            else:
                raise result

        if self.retain_failed_selection:
            self._selected.difference_update(succeeded)
        else:
            self._selected = set()

        if failed:
            logger.warning(
                "bulk action partially failed action=%s succeeded=%s failed=%s",
                action,
                len(succeeded),
                len(failed),
            )
        else:
            logger.info("bulk action completed action=%s count=%s", action, len(succeeded))
        return BulkActionResult(action=action, succeeded=succeeded, failed=failed)

    async def _run_member(self, record_id: str, mutate: MemberMutation) -> IngestionRecord:
        return await mutate(self.get(record_id))

    def _store(self, record: IngestionRecord) -> None:
        self.records[record.id] = record
        if self._detail is not None and self._detail.id == record.id:
            self._detail = record


def _matches_query(record: IngestionRecord, needle: str) -> bool:
    fields = [record.project_title, record.client_name, record.location, *(record.tags or [])]
    return any(value and needle in value.lower() for value in fields)


def _created_at_ms(record: IngestionRecord) -> float:
    created_at = record.created_at
    if created_at is None:
        return 0.0
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return created_at.timestamp() * 1000.0
