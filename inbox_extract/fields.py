"""Run a pattern catalog against plaintext and collect matched fields."""

from __future__ import annotations

from .models import ExtractedField
from .patterns import PatternCatalog


def extract_fields(text: str, catalog: PatternCatalog) -> list[ExtractedField]:
    """Apply every rule in catalog order and return the fields that matched.

    Only the first occurrence per rule is used.  Rules that do not match,
    or whose first group did not take part in the match, are omitted.
    """
    if not text:
        return []

    fields: list[ExtractedField] = []
    for rule in catalog:
        match = rule.compiled.search(text)
        if match is None or match.group(1) is None:
            continue
        fields.append(
            ExtractedField(
                name=rule.name,
                value=match.group(1).strip(),
                description=rule.description,
            )
        )
    return fields
