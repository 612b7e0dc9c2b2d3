from __future__ import annotations

from collections.abc import Iterable

SECTION_SEPARATOR = "\n\n"


def compose_description(candidates: Iterable[str | None]) -> str:
    """Join narrative fragments in priority order, dropping blanks and exact repeats."""
    sections: list[str] = []
    for candidate in candidates:
        if not candidate:
            continue
        normalized = candidate.strip()
        if not normalized or normalized in sections:
            continue
        sections.append(normalized)
    return SECTION_SEPARATOR.join(sections)


def scope_section(scope_summary: str | None) -> str | None:
    if not scope_summary:
        return None
    return f"Scope: {scope_summary}"


def scope_items_section(scope_items: list[str]) -> str | None:
    if not scope_items:
        return None
    return "Scope Items:\n- " + "\n- ".join(scope_items)
