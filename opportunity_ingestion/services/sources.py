from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from opportunity_ingestion.schemas.records import IngestionRecord

Accessor = Callable[["RecordSources"], Any]


@dataclass(slots=True, frozen=True)
class RecordSources:
    """Overlapping payloads of one record, each guaranteed to be a mapping.

    ``scraped`` is the scraped opportunity object: ``ai_metadata.opportunity``
    when present, else ``raw_payload.opportunity``. Unknown keys are ignored by
    every reader, so upstream payloads can grow without breaking extraction.
    """

    record: IngestionRecord
    ai_metadata: dict[str, Any]
    preview: dict[str, Any]
    raw: dict[str, Any]
    scraped: dict[str, Any]


def record_sources(record: IngestionRecord) -> RecordSources:
    ai_metadata = as_mapping(record.ai_metadata)
    raw = as_mapping(record.raw_payload)
    scraped = next(
        (
            candidate
            for candidate in (ai_metadata.get("opportunity"), raw.get("opportunity"))
            if isinstance(candidate, dict)
        ),
        {},
    )
    return RecordSources(
        record=record,
        ai_metadata=ai_metadata,
        preview=as_mapping(ai_metadata.get("preview")),
        raw=raw,
        scraped=scraped,
    )


def first_present(sources: RecordSources, accessors: Iterable[Accessor]) -> Any:
    """Evaluate accessors left to right and return the first non-None value."""
    for accessor in accessors:
        value = accessor(sources)
        if value is not None:
            return value
    return None


def as_mapping(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def text(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def non_empty_text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


def number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def text_list(value: Any) -> list[str] | None:
    if not isinstance(value, list):
        return None
    return [str(item) for item in value if item is not None]


def lookup(container: str, name: str) -> Accessor:
    """Accessor for ``sources.<container>[name]``."""

    def read(sources: RecordSources) -> Any:
        return getattr(sources, container).get(name)

    return read
