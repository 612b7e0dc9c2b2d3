from __future__ import annotations

from typing import Any

from opportunity_ingestion.schemas.preview import PreviewContact, PreviewContacts, PreviewDocument, PreviewMeta
from opportunity_ingestion.schemas.records import IngestionRecord
from opportunity_ingestion.services.sources import (
    Accessor,
    RecordSources,
    as_mapping,
    first_present,
    lookup,
    number,
    record_sources,
    text,
    text_list,
)

RISK_HIGH_THRESHOLD = 70
RISK_MEDIUM_THRESHOLD = 40


def _text_at(container: str, name: str) -> Accessor:
    read = lookup(container, name)
    return lambda sources: text(read(sources))


def _number_at(container: str, name: str) -> Accessor:
    read = lookup(container, name)
    return lambda sources: number(read(sources))


def _contact_list(container: str, kind: str) -> Accessor:
    read_contacts = lookup(container, "contacts")

    def read(sources: RecordSources) -> list[str] | None:
        return text_list(as_mapping(read_contacts(sources)).get(kind))

    return read


def _description_sections(sources: RecordSources) -> str | None:
    sections = text_list(sources.raw.get("descriptionSections"))
    if sections is None:
        return None
    return "\n\n".join(sections)


def _risk_level_from_score(sources: RecordSources) -> str | None:
    score = sources.record.risk_score
    if score is None:
        return None
    if score >= RISK_HIGH_THRESHOLD:
        return "High"
    if score >= RISK_MEDIUM_THRESHOLD:
        return "Medium"
    return "Low"


def _joined_record_tags(sources: RecordSources) -> str | None:
    if sources.record.tags is None:
        return None
    return ", ".join(sources.record.tags)


SUMMARY_CHAIN: tuple[Accessor, ...] = (
    lambda sources: sources.record.ai_summary,
    _text_at("preview", "summary"),
    _text_at("preview", "description"),
    _text_at("raw", "summary"),
)
DESCRIPTION_CHAIN: tuple[Accessor, ...] = (
    _text_at("preview", "description"),
    _text_at("raw", "description"),
    _description_sections,
)
PROBABILITY_CHAIN: tuple[Accessor, ...] = (
    _number_at("preview", "probability"),
    lambda sources: sources.record.match_score,
    _number_at("raw", "match_score"),
)
RISK_LEVEL_CHAIN: tuple[Accessor, ...] = (
    _text_at("preview", "riskLevel"),
    _text_at("raw", "risk_level"),
    _risk_level_from_score,
)
EXPECTED_RFP_DATE_CHAIN: tuple[Accessor, ...] = (
    _text_at("preview", "expectedRfpDate"),
    _text_at("raw", "expected_rfp_date"),
    _text_at("raw", "expectedRfpDate"),
)
DEADLINE_CHAIN: tuple[Accessor, ...] = (
    _text_at("preview", "deadline"),
    _text_at("raw", "deadline"),
)
MARKET_SECTOR_CHAIN: tuple[Accessor, ...] = (
    _text_at("preview", "marketSector"),
    _text_at("raw", "market_sector"),
    _joined_record_tags,
)
EMAILS_CHAIN: tuple[Accessor, ...] = (
    _contact_list("preview", "emails"),
    _contact_list("ai_metadata", "emails"),
    _contact_list("raw", "emails"),
)
PHONES_CHAIN: tuple[Accessor, ...] = (
    _contact_list("preview", "phones"),
    _contact_list("ai_metadata", "phones"),
    _contact_list("raw", "phones"),
)
TAGS_CHAIN: tuple[Accessor, ...] = (
    lambda sources: sources.record.tags,
    lambda sources: text_list(sources.raw.get("tags")),
)
SOURCE_URL_CHAIN: tuple[Accessor, ...] = (
    _text_at("raw", "source_url"),
    _text_at("raw", "sourceUrl"),
)
OVERVIEW_CHAIN: tuple[Accessor, ...] = (
    _text_at("scraped", "overview"),
    _text_at("scraped", "description"),
    _text_at("preview", "summary"),
)
SCOPE_SUMMARY_CHAIN: tuple[Accessor, ...] = (
    _text_at("scraped", "scope_summary"),
    _text_at("scraped", "scope"),
)


def extract_preview_meta(record: IngestionRecord) -> PreviewMeta:
    """Project a record's overlapping payloads onto one canonical preview.

    Every field walks its own precedence chain, so a gap in one source never
    blanks an unrelated field. Pure and total: malformed payloads degrade to
    empty values.
    """
    return extract_preview_meta_from_sources(record_sources(record))


def extract_preview_meta_from_sources(sources: RecordSources) -> PreviewMeta:
    return PreviewMeta(
        summary=first_present(sources, SUMMARY_CHAIN),
        description=first_present(sources, DESCRIPTION_CHAIN),
        probability=first_present(sources, PROBABILITY_CHAIN),
        risk_level=first_present(sources, RISK_LEVEL_CHAIN),
        expected_rfp_date=first_present(sources, EXPECTED_RFP_DATE_CHAIN),
        deadline=first_present(sources, DEADLINE_CHAIN),
        market_sector=first_present(sources, MARKET_SECTOR_CHAIN),
        contacts=PreviewContacts(
            emails=first_present(sources, EMAILS_CHAIN) or [],
            phones=first_present(sources, PHONES_CHAIN) or [],
        ),
        tags=list(first_present(sources, TAGS_CHAIN) or []),
        source_url=first_present(sources, SOURCE_URL_CHAIN),
        overview=first_present(sources, OVERVIEW_CHAIN),
        scope_summary=first_present(sources, SCOPE_SUMMARY_CHAIN),
        scope_items=_scope_items(sources.scraped.get("scope_items")),
        documents=_documents(sources.scraped.get("documents")),
        enriched_contacts=_enriched_contacts(sources.scraped.get("contacts")),
    )


def _scope_items(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str) and item.strip()]


def _documents(value: Any) -> list[PreviewDocument]:
    if not isinstance(value, list):
        return []
    documents: list[PreviewDocument] = []
    for entry in value:
        doc = as_mapping(entry)
        documents.append(
            PreviewDocument(
                title=_scalar_text(doc.get("title")),
                url=_scalar_text(doc.get("url")),
                type=_scalar_text(doc.get("type")),
            )
        )
    return documents


def _enriched_contacts(value: Any) -> list[PreviewContact]:
    if not isinstance(value, list):
        return []
    contacts: list[PreviewContact] = []
    for entry in value:
        contact = as_mapping(entry)
        contacts.append(
            PreviewContact(
                name=_scalar_text(contact.get("name")),
                role=_scalar_text(contact.get("role")),
                organization=_scalar_text(contact.get("organization")),
                email=_one_or_many(contact.get("email")),
                phone=_one_or_many(contact.get("phone")),
            )
        )
    return contacts


def _one_or_many(value: Any) -> list[str]:
    as_list = text_list(value)
    if as_list is not None:
        return as_list
    if value:
        return [str(value)]
    return []


def _scalar_text(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None
