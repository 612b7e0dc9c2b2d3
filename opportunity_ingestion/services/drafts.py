from __future__ import annotations

from datetime import datetime, timezone

from opportunity_ingestion.schemas.preview import DraftDefaults, PreviewMeta
from opportunity_ingestion.schemas.records import IngestionRecord
from opportunity_ingestion.services.description import compose_description, scope_items_section, scope_section
from opportunity_ingestion.services.location import format_location_value, resolve_location_from_sources
from opportunity_ingestion.services.phone import format_for_input
from opportunity_ingestion.services.preview import extract_preview_meta_from_sources
from opportunity_ingestion.services.sources import RecordSources, as_mapping, non_empty_text, record_sources

_FALLBACK_DATE_FORMATS = ("%m/%d/%Y", "%B %d, %Y", "%b %d, %Y")


def build_draft_defaults(record: IngestionRecord) -> DraftDefaults:
    """Derive promotion-form defaults from one record snapshot.

    Every field is a plain string so nothing null reaches a text input.
    """
    sources = record_sources(record)
    meta = extract_preview_meta_from_sources(sources)
    location = resolve_location_from_sources(sources)
    combined_location = format_location_value(location.city, location.state)

    description = compose_description(
        [
            meta.overview,
            meta.description,
            scope_section(meta.scope_summary),
            scope_items_section(meta.scope_items),
            meta.summary,
            record.ai_summary,
        ]
    )
    expected_date = next(
        (value for value in (meta.expected_rfp_date, meta.deadline, record.deadline) if value is not None),
        None,
    )

    return DraftDefaults(
        company_website=meta.source_url or "",
        opportunity_name=record.project_title or "",
        client_name=record.client_name or "",
        location=combined_location,
        address=_resolve_address(sources, combined_location),
        city=location.city,
        state=location.state,
        project_value=record.budget_text or "",
        market_sector=_first_tag(meta, record),
        date=format_date_for_input(expected_date),
        project_description=description or meta.description or meta.summary or record.ai_summary or "",
        contact_phone=format_for_input(_first_phone(meta)),
    )


def format_date_for_input(value: str | None) -> str:
    """Render a date-like string as ``YYYY-MM-DD``; unparsable input gives ``""``."""
    if not value or not value.strip():
        return ""
    raw = value.strip()
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        parsed = _parse_fallback_date(raw)
        if parsed is None:
            return ""
    if parsed.tzinfo is not None:
        try:
            parsed = parsed.astimezone(timezone.utc)
        except (OverflowError, ValueError):
            return ""
    return parsed.date().isoformat()


def _parse_fallback_date(raw: str) -> datetime | None:
    for date_format in _FALLBACK_DATE_FORMATS:
        try:
            return datetime.strptime(raw, date_format)
        except ValueError:
            continue
    return None


def _resolve_address(sources: RecordSources, combined_location: str) -> str:
    location_details = as_mapping(sources.scraped.get("location_details"))
    return (
        non_empty_text(location_details.get("line1"))
        or non_empty_text(sources.scraped.get("address"))
        or combined_location
        or non_empty_text(sources.raw.get("location"))
        or ""
    )


def _first_tag(meta: PreviewMeta, record: IngestionRecord) -> str:
    if meta.tags:
        return meta.tags[0]
    if record.tags:
        return record.tags[0]
    return ""


def _first_phone(meta: PreviewMeta) -> str | None:
    if meta.contacts.phones:
        return meta.contacts.phones[0]
    for contact in meta.enriched_contacts:
        if contact.phone:
            return contact.phone[0]
    return None
