from __future__ import annotations

import logging
import re
from datetime import date, datetime, timezone
from typing import Protocol

from opentelemetry import trace

from opportunity_ingestion.schemas.preview import PromotionForm
from opportunity_ingestion.schemas.queue import PromotionOutcome
from opportunity_ingestion.schemas.records import IngestionRecord, RecordStatus, RecordUpdate
from opportunity_ingestion.services.ingestion_client import IngestionClientError
from opportunity_ingestion.services.location import format_location_value
from opportunity_ingestion.services.phone import InvalidPhoneNumberError, format_for_submission
from opportunity_ingestion.services.sources import non_empty_text

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    "pending_review": {"approved", "rejected"},
    "approved": {"promoted", "rejected"},
    "rejected": {"pending_review", "approved"},
    "promoted": set(),
}
REFRESH_SOURCE_KEYS = ("source_url", "sourceUrl", "detail_url", "detailUrl")
_PROJECT_VALUE_RE = re.compile(r"^(\d+(?:\.\d+)?)([kmb])?$", re.IGNORECASE)
_PROJECT_VALUE_MULTIPLIERS = {"k": 1_000, "m": 1_000_000, "b": 1_000_000_000}


class PromotionError(Exception):
    """Base error for workflow rule violations."""


class InvalidTransitionError(PromotionError):
    """Raised when a status change is not permitted by the state machine."""


class MissingSourceUrlError(PromotionError):
    """Raised when a refresh is requested for a record without a source link."""


class PromotionValidationError(PromotionError):
    """Raised when the submitted promotion form has invalid fields."""

    def __init__(self, field_errors: dict[str, str]) -> None:
        self.field_errors = field_errors
        joined = ", ".join(f"{field}: {message}" for field, message in sorted(field_errors.items()))
        super().__init__(f"invalid promotion form ({joined})")


class RecordMutator(Protocol):
    async def update_record(self, record_id: str, update: RecordUpdate) -> IngestionRecord: ...

    async def promote_record(self, record_id: str, account_id: str | None = None) -> dict: ...

    async def refresh_record(self, record_id: str) -> IngestionRecord: ...


def validate_transition(from_status: str, to_status: str, *, via_promote: bool = False) -> None:
    if to_status == from_status:
        return
    if to_status == "promoted" and not via_promote:
        raise InvalidTransitionError("records are promoted through the promote action, not a status change")
    allowed = ALLOWED_TRANSITIONS.get(from_status)
    if not allowed or to_status not in allowed:
        raise InvalidTransitionError(f"invalid status transition: {from_status} -> {to_status}")


def has_refresh_source(record: IngestionRecord) -> bool:
    return any(non_empty_text(record.raw_payload.get(key)) for key in REFRESH_SOURCE_KEYS)


def parse_project_value(raw: str | None) -> float | None:
    if not raw:
        return None
    cleaned = re.sub(r"[\s$,]", "", raw)
    match = _PROJECT_VALUE_RE.match(cleaned)
    if not match:
        return None
    amount = float(match.group(1))
    suffix = match.group(2)
    if suffix:
        amount *= _PROJECT_VALUE_MULTIPLIERS[suffix.lower()]
    return amount


def build_update_payload(form: PromotionForm) -> RecordUpdate:
    """Translate the edited promotion form into the phase-one update payload.

    Raises PromotionValidationError before anything is sent upstream.
    """
    field_errors: dict[str, str] = {}

    deadline: str | None = None
    if form.date.strip():
        try:
            day = date.fromisoformat(form.date.strip())
        except ValueError:
            field_errors["date"] = "enter a valid date (YYYY-MM-DD)"
        else:
            deadline = datetime(day.year, day.month, day.day, tzinfo=timezone.utc).isoformat()

    contact_phone: str | None = None
    try:
        contact_phone = format_for_submission(form.contact_phone)
    except InvalidPhoneNumberError as exc:
        field_errors["contact_phone"] = str(exc)

    if field_errors:
        raise PromotionValidationError(field_errors)

    location = format_location_value(form.city, form.state) or form.location.strip()
    market_sector = form.market_sector.strip()
    return RecordUpdate(
        project_title=form.opportunity_name.strip() or None,
        client_name=form.client_name.strip() or None,
        location=location or None,
        budget_text=form.project_value.strip() or None,
        project_value=parse_project_value(form.project_value),
        deadline=deadline,
        tags=[market_sector] if market_sector else None,
        ai_summary=form.project_description.strip() or None,
        source_url=form.company_website.strip() or None,
        contact_phone=contact_phone,
        reviewer_notes=form.reviewer_notes.strip() or None,
    )


class PromotionWorkflow:
    """Governs record status changes and the update-then-promote commit."""

    def __init__(self, client: RecordMutator) -> None:
        self.client = client

    async def change_status(self, record: IngestionRecord, status: RecordStatus) -> IngestionRecord:
        validate_transition(record.status, status)
        if status == record.status:
            return record
        return await self.client.update_record(record.id, RecordUpdate(status=status))

    async def promote_only(self, record: IngestionRecord, account_id: str | None = None) -> dict:
        validate_transition(record.status, "promoted", via_promote=True)
        return await self.client.promote_record(record.id, account_id)

    async def promote(self, record: IngestionRecord, form: PromotionForm) -> PromotionOutcome:
        validate_transition(record.status, "promoted", via_promote=True)
        update = build_update_payload(form)
        account_id = form.selected_account.strip() or None

        with tracer.start_as_current_span("promotion.update") as span:
            span.set_attribute("record.id", record.id)
            try:
                updated = await self.client.update_record(record.id, update)
            except IngestionClientError as exc:
                logger.warning("promotion update failed record_id=%s error=%s", record.id, exc)
                return PromotionOutcome(record_id=record.id, state="update_failed", error=str(exc))

        # edits stay persisted from here on; a failed promote is reported, not undone
        with tracer.start_as_current_span("promotion.promote") as span:
            span.set_attribute("record.id", record.id)
            try:
                opportunity = await self.client.promote_record(record.id, account_id)
            except IngestionClientError as exc:
                logger.warning(
                    "promotion left record updated but not promoted record_id=%s error=%s",
                    record.id,
                    exc,
                )
                return PromotionOutcome(
                    record_id=record.id,
                    state="promote_failed",
                    updated_record=updated,
                    error=str(exc),
                )

        logger.info("record promoted record_id=%s account_id=%s", record.id, account_id)
        return PromotionOutcome(
            record_id=record.id,
            state="promoted",
            updated_record=updated,
            opportunity=opportunity,
        )

    async def refresh(self, record: IngestionRecord) -> IngestionRecord:
        if not has_refresh_source(record):
            raise MissingSourceUrlError("source link unavailable for this record")
        return await self.client.refresh_record(record.id)
