"""Turn a fetched parental guide page into a :class:`Guide`.

The page structure is not under our control, so extraction is layered:

* a page with none of the five category sections yields an empty guide
  (``data_available=False``) rather than an error;
* severities come only from the rating summary list, classified by an ordered
  label rule table;
* item descriptions fall back from structured item cards to list items to
  paragraphs, taking the first tier that yields anything.

Nothing in this module raises for content problems. Callers get a well-typed
guide for every document.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup, Tag

from .guide_config import (
    COMMUNITY_VOTE_MARKERS,
    EMPTY_ITEM_PLACEHOLDER,
    HTML_CONTENT_SELECTOR,
    ITEM_CARD_SELECTOR,
    ITEM_TEXT_SELECTOR,
    MAX_ITEMS_PER_CATEGORY,
    MIN_CARD_TEXT_CHARS,
    MIN_FALLBACK_TEXT_CHARS,
    SECTION_MARKER_TEMPLATE,
    SUMMARY_ITEM_SELECTOR,
)
from .html_normalize import clean_item_text
from .models import CATEGORIES, Category, CategoryRecord, Guide, Severity, empty_guide, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LabelRule:
    needles: Tuple[str, ...]
    category: Category

    def matches(self, label: str) -> bool:
        return any(needle in label for needle in self.needles)


# Evaluated top to bottom; the first matching rule classifies a summary entry.
LABEL_RULES: Tuple[LabelRule, ...] = (
    LabelRule(("nudity", "sex"), Category.NUDITY),
    LabelRule(("violence", "gore"), Category.VIOLENCE),
    LabelRule(("profanity",), Category.PROFANITY),
    LabelRule(("alcohol", "drug", "smoking"), Category.SUBSTANCE_USE),
    LabelRule(("frightening", "intense"), Category.FRIGHTENING_CONTENT),
)


def classify_label(label: str, rules: Sequence[LabelRule] = LABEL_RULES) -> Optional[Category]:
    lowered = (label or "").lower()
    for rule in rules:
        if rule.matches(lowered):
            return rule.category
    return None


def section_marker(category: Category) -> str:
    return SECTION_MARKER_TEMPLATE.format(slug=category.slug)


def _text(node: Tag) -> str:
    return clean_item_text(node.get_text())


def has_guide_sections(soup: BeautifulSoup) -> bool:
    return any(soup.select_one(section_marker(category)) is not None for category in CATEGORIES)


def extract_summary_severities(soup: BeautifulSoup) -> Dict[Category, Severity]:
    """Read the rating summary list into per-category severities.

    Entries whose label matches no rule, or whose stated severity is not one of
    none/mild/moderate/severe, are ignored. A later entry for the same category
    replaces an earlier one.
    """

    ratings: Dict[Category, Severity] = {}
    for entry in soup.select(SUMMARY_ITEM_SELECTOR):
        link = entry.find("a")
        label = link.get_text().strip().lower() if link is not None else ""
        category = classify_label(label)
        if category is None:
            continue
        rating_node = entry.select_one(HTML_CONTENT_SELECTOR)
        stated = rating_node.get_text().strip().lower() if rating_node is not None else ""
        severity = Severity.parse(stated)
        if severity is None:
            logger.debug("unrecognized severity %r for summary label %r", stated, label)
            continue
        ratings[category] = severity
    return ratings


def _accept(text: str, min_chars: int) -> bool:
    return bool(text) and len(text) > min_chars and text != EMPTY_ITEM_PLACEHOLDER


def _card_texts(section: Tag) -> Iterable[str]:
    for card in section.select(ITEM_CARD_SELECTOR):
        parts = [_text(node) for node in card.select(ITEM_TEXT_SELECTOR)]
        yield " ".join(part for part in parts if part).strip()


def _tag_texts(tag_name: str) -> Callable[[Tag], Iterable[str]]:
    def _collect(section: Tag) -> Iterable[str]:
        for node in section.find_all(tag_name):
            yield _text(node)

    return _collect


# (tier name, candidate source, minimum length exclusive)
ITEM_TIERS: Tuple[Tuple[str, Callable[[Tag], Iterable[str]], int], ...] = (
    ("cards", _card_texts, MIN_CARD_TEXT_CHARS),
    ("list", _tag_texts("li"), MIN_FALLBACK_TEXT_CHARS),
    ("paragraphs", _tag_texts("p"), MIN_FALLBACK_TEXT_CHARS),
)


def extract_items(section: Tag, limit: int = MAX_ITEMS_PER_CATEGORY) -> Tuple[str, ...]:
    """Return up to ``limit`` item descriptions from the first tier that yields any."""

    for tier_name, source, min_chars in ITEM_TIERS:
        items: List[str] = [text for text in source(section) if _accept(text, min_chars)]
        if items:
            logger.debug("extracted %d item(s) via %s tier", len(items), tier_name)
            return tuple(items[:limit])
    return ()


def is_certified_section(section: Tag) -> bool:
    """True when the section shows no community-voting affordance.

    This is a best-effort signal only: absence of voting widgets is taken to mean
    the text comes from an official rating rather than crowd votes.
    """

    markup = section.decode_contents()
    return not any(marker in markup for marker in COMMUNITY_VOTE_MARKERS)


def extract_category(soup: BeautifulSoup, category: Category, severity: Optional[Severity]) -> CategoryRecord:
    section = soup.select_one(section_marker(category))
    if section is None:
        return CategoryRecord(category=category)
    return CategoryRecord(
        category=category,
        severity=severity if severity is not None else Severity.NONE,
        items=extract_items(section),
        certified=is_certified_section(section),
    )


def extract_guide(document: str, external_id: str) -> Guide:
    """Parse a guide page into a Guide; pages without sections give an empty guide."""

    soup = BeautifulSoup(document or "", "lxml")
    if not has_guide_sections(soup):
        logger.info("no parental guide sections found for %s", external_id)
        return empty_guide(external_id)

    summary = extract_summary_severities(soup)
    records = {
        category.field_name: extract_category(soup, category, summary.get(category))
        for category in CATEGORIES
    }
    return Guide(external_id=external_id, last_updated=utc_now(), data_available=True, **records)


__all__ = [
    "LabelRule",
    "LABEL_RULES",
    "ITEM_TIERS",
    "classify_label",
    "section_marker",
    "has_guide_sections",
    "extract_summary_severities",
    "extract_items",
    "is_certified_section",
    "extract_category",
    "extract_guide",
]
