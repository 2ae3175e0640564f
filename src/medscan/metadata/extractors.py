"""Ordered pattern rules that pull label fields out of OCR text.

Each field has an explicit, ordered rule list. Rules are tried in sequence
and the first one that matches anywhere in the text wins; later rules are
not consulted. When nothing matches, the field falls back to a fixed
sentinel so extraction always yields a complete record.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Pattern, Tuple

from ..domain.models import (
    BATCH_NOT_AVAILABLE,
    UNKNOWN_MEDICINE,
    DateOrder,
    Extracted,
    ExtractedFields,
    Fallback,
    Found,
)
from ..logging import get_logger

LOG = get_logger("metadata-extractors")

MIN_NAME_LENGTH = 4

_NOISE = re.compile(
    r"\b(?:expiry|exp|batch|lot|manufacturer|mg|ml|tablet|capsule)",
    re.IGNORECASE,
)

_DMY = r"(?<!\d)\d{1,2}[/-]\d{1,2}[/-](?:\d{4}|\d{2})(?!\d)"
_YMD = r"(?<!\d)(?:\d{4}|\d{2})[/-]\d{1,2}[/-]\d{1,2}(?!\d)"
_BATCH_TOKEN = r"([A-Z0-9-]+)"


@dataclass(frozen=True)
class PatternRule:
    """A labeled regex whose first capture group is the extracted value."""

    key: str
    pattern: Pattern[str]
    order: DateOrder = DateOrder.DMY

    def search(self, text: str) -> Optional[str]:
        match = self.pattern.search(text)
        if match is None:
            return None
        return match.group(1).strip()


def _rule(key: str, regex: str, order: DateOrder = DateOrder.DMY) -> PatternRule:
    return PatternRule(key, re.compile(regex, re.IGNORECASE), order)


BATCH_RULES: Tuple[PatternRule, ...] = (
    # "Batch No:" belongs to the batch_no rule below, not to this one.
    _rule("batch", r"\bBatch\b(?!\s*No\b)\s*:?\s*" + _BATCH_TOKEN),
    _rule("lot", r"\bLot\b\s*:?\s*" + _BATCH_TOKEN),
    _rule("b_no", r"\bB\.\s*No\b\.?\s*:?\s*" + _BATCH_TOKEN),
    _rule("batch_no", r"\bBatch\s*No\b\.?\s*:?\s*" + _BATCH_TOKEN),
)

EXPIRY_RULES: Tuple[PatternRule, ...] = (
    _rule("exp_label", r"\bEXP\b[\s.:]*(" + _DMY + ")"),
    _rule("expiry_label", r"\bExpiry\b[\s.:]*(" + _DMY + ")"),
    _rule("bare_dmy", "(" + _DMY + ")"),
    _rule("bare_ymd", "(" + _YMD + ")", DateOrder.YMD),
)


def _first_rule_match(text: str, rules: Tuple[PatternRule, ...]) -> Optional[Tuple[PatternRule, str]]:
    for rule in rules:
        value = rule.search(text)
        if value:
            LOG.debug(f"Rule {rule.key} matched {value!r}")
            return rule, value
    return None


def extract_name(text: str) -> Extracted[str]:
    """First line longer than three characters that is not label metadata."""
    for line in (text or "").splitlines():
        candidate = line.strip()
        if len(candidate) < MIN_NAME_LENGTH:
            continue
        if _NOISE.search(candidate):
            continue
        return Found(candidate, source="line")
    return Fallback(UNKNOWN_MEDICINE)


def extract_batch_number(text: str) -> Extracted[str]:
    hit = _first_rule_match(text or "", BATCH_RULES)
    if hit is None:
        return Fallback(BATCH_NOT_AVAILABLE)
    rule, value = hit
    return Found(value, source=rule.key)


def extract_expiry_token(text: str) -> Tuple[Extracted[Optional[str]], DateOrder]:
    """Return the first date-shaped token and the field order of its rule."""
    hit = _first_rule_match(text or "", EXPIRY_RULES)
    if hit is None:
        return Fallback(None), DateOrder.DMY
    rule, value = hit
    return Found(value, source=rule.key), rule.order


def extract_fields(text: str) -> ExtractedFields:
    """Extract name, expiry token and batch number from raw OCR text.

    Pure and deterministic; never raises.
    """
    expiry, order = extract_expiry_token(text)
    fields = ExtractedFields(
        name_result=extract_name(text),
        expiry_result=expiry,
        batch_result=extract_batch_number(text),
        expiry_order=order,
    )
    LOG.info(
        "Extracted fields: name=%r expiry_token=%r batch=%r",
        fields.name,
        fields.raw_expiry_token,
        fields.batch_number,
    )
    return fields
