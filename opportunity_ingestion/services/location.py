from __future__ import annotations

from typing import Any

from opportunity_ingestion.schemas.preview import LocationDetails
from opportunity_ingestion.schemas.records import IngestionRecord
from opportunity_ingestion.services.sources import RecordSources, non_empty_text, record_sources

_SITE_QUALIFIER_DELIMITER = " - "


def resolve_location(record: IngestionRecord) -> LocationDetails:
    """Resolve a city/state pair for a record.

    Structured ``location_details`` objects win when any of them carries a
    non-empty city or state; otherwise the first non-empty free-text location
    is parsed. Never raises.
    """
    return resolve_location_from_sources(record_sources(record))


def resolve_location_from_sources(sources: RecordSources) -> LocationDetails:
    for candidate in _structured_candidates(sources):
        city = _stripped(candidate.get("city"))
        state = _stripped(candidate.get("state"))
        if city or state:
            return LocationDetails(city=city, state=state)

    free_text = next((value for value in _text_candidates(sources) if value), None)
    return parse_location_text(free_text)


def parse_location_text(value: str | None) -> LocationDetails:
    if not value:
        return LocationDetails()
    before_qualifier = value.split(_SITE_QUALIFIER_DELIMITER)[0]
    parts = [part.strip() for part in before_qualifier.split(",")]
    parts = [part for part in parts if part]
    if not parts:
        return LocationDetails()
    if len(parts) == 1:
        return LocationDetails(city=parts[0])
    return LocationDetails(city=", ".join(parts[:-1]), state=parts[-1])


def format_location_value(city: str | None, state: str | None) -> str:
    parts = [part.strip() for part in (city, state) if part and part.strip()]
    return ", ".join(parts)


def display_location(record: IngestionRecord) -> str | None:
    details = resolve_location(record)
    return format_location_value(details.city, details.state) or record.location or None


def _structured_candidates(sources: RecordSources) -> list[dict[str, Any]]:
    return [
        candidate
        for candidate in (
            sources.scraped.get("location_details"),
            sources.scraped.get("locationDetails"),
            sources.raw.get("location_details"),
        )
        if isinstance(candidate, dict)
    ]


def _text_candidates(sources: RecordSources) -> list[str | None]:
    return [
        non_empty_text(sources.scraped.get("location")),
        non_empty_text(sources.raw.get("location")),
        non_empty_text(sources.record.location),
        non_empty_text(sources.preview.get("location")),
    ]


def _stripped(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip()
