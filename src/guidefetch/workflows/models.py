"""Typed records for parental guide data.

A :class:`Guide` always carries one :class:`CategoryRecord` per :class:`Category`,
even when the source page had nothing to offer, so callers never have to branch
on a missing field. Guides are immutable values; the cache hands out the same
objects it stores without risk of callers editing them in place.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional, Tuple

from ..core.keys import (
    K_CATEGORY,
    K_CERTIFIED,
    K_DATA_AVAILABLE,
    K_EXTERNAL_ID,
    K_ITEMS,
    K_LAST_UPDATED,
    K_SECONDARY_ID,
    K_SEVERITY,
)

UNBOUNDED = "any"


class Severity(enum.IntEnum):
    """Ordinal content intensity; comparisons use the integer order."""

    NONE = 0
    MILD = 1
    MODERATE = 2
    SEVERE = 3

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, text: Any) -> Optional["Severity"]:
        """Return the severity named by ``text`` or None when unrecognized."""

        if isinstance(text, Severity):
            return text
        token = str(text or "").strip().lower()
        for member in cls:
            if member.label == token:
                return member
        return None


class Category(enum.Enum):
    VIOLENCE = "violence"
    NUDITY = "nudity"
    PROFANITY = "profanity"
    SUBSTANCE_USE = "substance-use"
    FRIGHTENING_CONTENT = "frightening-content"

    @property
    def slug(self) -> str:
        """Section slug used by the guide page markup."""
        return _SECTION_SLUGS[self]

    @property
    def field_name(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, text: str) -> Optional["Category"]:
        token = (text or "").strip().lower().replace("_", "-")
        for member in cls:
            if token in {member.value, member.slug}:
                return member
        return None


_SECTION_SLUGS = {
    Category.VIOLENCE: "violence",
    Category.NUDITY: "nudity",
    Category.PROFANITY: "profanity",
    Category.SUBSTANCE_USE: "alcohol",
    Category.FRIGHTENING_CONTENT: "frightening",
}

CATEGORIES: Tuple[Category, ...] = tuple(Category)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def parse_timestamp(raw: Any) -> datetime:
    """Parse an ISO-8601 timestamp (``Z`` suffix accepted) into an aware UTC datetime."""

    text = str(raw or "").strip()
    if not text:
        raise ValueError("empty timestamp")
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    value = datetime.fromisoformat(text)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True, slots=True)
class CategoryRecord:
    category: Category
    severity: Severity = Severity.NONE
    items: Tuple[str, ...] = ()
    certified: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            K_CATEGORY: self.category.value,
            K_SEVERITY: self.severity.label,
            K_ITEMS: list(self.items),
            K_CERTIFIED: self.certified,
        }

    @classmethod
    def from_dict(cls, category: Category, payload: Mapping[str, Any]) -> "CategoryRecord":
        severity = Severity.parse(payload.get(K_SEVERITY)) or Severity.NONE
        items = tuple(str(item) for item in (payload.get(K_ITEMS) or []))
        return cls(category, severity, items, bool(payload.get(K_CERTIFIED, False)))


def default_record(category: Category) -> CategoryRecord:
    return CategoryRecord(category=category)


@dataclass(frozen=True, slots=True)
class Guide:
    """Parental guide for one title, keyed by its external identifier."""

    external_id: str
    violence: CategoryRecord = field(default_factory=lambda: default_record(Category.VIOLENCE))
    nudity: CategoryRecord = field(default_factory=lambda: default_record(Category.NUDITY))
    profanity: CategoryRecord = field(default_factory=lambda: default_record(Category.PROFANITY))
    substance_use: CategoryRecord = field(default_factory=lambda: default_record(Category.SUBSTANCE_USE))
    frightening_content: CategoryRecord = field(
        default_factory=lambda: default_record(Category.FRIGHTENING_CONTENT)
    )
    last_updated: datetime = field(default_factory=utc_now)
    data_available: bool = True
    certified: bool = False
    secondary_id: Optional[int] = None

    def __post_init__(self) -> None:
        if not self.external_id:
            raise ValueError("Guide requires an external_id")
        if self.last_updated.tzinfo is None:
            # Naive timestamps are UTC
            object.__setattr__(self, "last_updated", self.last_updated.replace(tzinfo=timezone.utc))
        for category in CATEGORIES:
            record = getattr(self, category.field_name)
            if record.category is not category:
                raise ValueError(f"record for {category.value} carries category {record.category.value}")

    def record(self, category: Category) -> CategoryRecord:
        return getattr(self, category.field_name)

    def records(self) -> Iterator[CategoryRecord]:
        for category in CATEGORIES:
            yield self.record(category)

    def severity(self, category: Category) -> Severity:
        return self.record(category).severity

    def with_secondary_id(self, secondary_id: Optional[int]) -> "Guide":
        if secondary_id is None or secondary_id == self.secondary_id:
            return self
        return replace(self, secondary_id=secondary_id)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {K_EXTERNAL_ID: self.external_id}
        if self.secondary_id is not None:
            payload[K_SECONDARY_ID] = self.secondary_id
        for record in self.records():
            payload[record.category.value] = record.to_dict()
        payload[K_LAST_UPDATED] = format_timestamp(self.last_updated)
        payload[K_DATA_AVAILABLE] = self.data_available
        payload[K_CERTIFIED] = self.certified
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Guide":
        records: Dict[str, CategoryRecord] = {}
        for category in CATEGORIES:
            raw = payload.get(category.value)
            if raw is None:
                # Older files keyed categories by their page slug
                raw = payload.get(category.slug)
            records[category.field_name] = (
                CategoryRecord.from_dict(category, raw) if isinstance(raw, Mapping) else default_record(category)
            )
        secondary = payload.get(K_SECONDARY_ID)
        return cls(
            external_id=str(payload[K_EXTERNAL_ID]),
            last_updated=parse_timestamp(payload.get(K_LAST_UPDATED)),
            data_available=bool(payload.get(K_DATA_AVAILABLE, True)),
            certified=bool(payload.get(K_CERTIFIED, False)),
            secondary_id=int(secondary) if secondary is not None else None,
            **records,
        )


def empty_guide(external_id: str, *, now: Optional[datetime] = None) -> Guide:
    """Guide for a page that exists but has no recognizable category sections."""

    return Guide(external_id=external_id, last_updated=now or utc_now(), data_available=False)


@dataclass(frozen=True, slots=True)
class CacheEntry:
    guide: Guide

    @property
    def external_id(self) -> str:
        return self.guide.external_id

    @property
    def last_updated(self) -> datetime:
        return self.guide.last_updated


@dataclass(frozen=True)
class ContentFilter:
    """Per-category maximum severity; a missing or None bound means unbounded."""

    bounds: Mapping[Category, Optional[Severity]] = field(default_factory=dict)

    def bound(self, category: Category) -> Optional[Severity]:
        return self.bounds.get(category)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "ContentFilter":
        """Build a filter from ``{"violence": "mild", "nudity": "any", ...}``.

        Unknown categories and unrecognized severities raise ValueError so a typo
        never silently widens a filter.
        """

        bounds: Dict[Category, Optional[Severity]] = {}
        for key, value in raw.items():
            category = Category.parse(str(key))
            if category is None:
                raise ValueError(f"Unknown content category: {key}")
            if value is None or str(value).strip().lower() == UNBOUNDED:
                bounds[category] = None
                continue
            severity = Severity.parse(value)
            if severity is None:
                raise ValueError(f"Unknown severity for {key}: {value}")
            bounds[category] = severity
        return cls(bounds)

    def to_dict(self) -> Dict[str, str]:
        out: Dict[str, str] = {}
        for category in CATEGORIES:
            bound = self.bound(category)
            out[category.value] = bound.label if bound is not None else UNBOUNDED
        return out

    def merged(self, overrides: Mapping[Category, Optional[Severity]]) -> "ContentFilter":
        bounds = dict(self.bounds)
        bounds.update(overrides)
        return ContentFilter(bounds)


UNBOUNDED_FILTER = ContentFilter()


def _preset(values: Iterable[Optional[str]]) -> ContentFilter:
    return ContentFilter.from_mapping(
        {category.value: value or UNBOUNDED for category, value in zip(CATEGORIES, values)}
    )


# Order: violence, nudity, profanity, substance-use, frightening-content
FILTER_PRESETS: Dict[str, ContentFilter] = {
    "family": _preset(["none", "none", "none", "mild", "mild"]),
    "teen": _preset(["mild", "none", "mild", "moderate", "moderate"]),
    "mature": _preset(["moderate", "mild", "moderate", None, None]),
    "any": UNBOUNDED_FILTER,
}


__all__ = [
    "UNBOUNDED",
    "Severity",
    "Category",
    "CATEGORIES",
    "CategoryRecord",
    "Guide",
    "CacheEntry",
    "ContentFilter",
    "UNBOUNDED_FILTER",
    "FILTER_PRESETS",
    "default_record",
    "empty_guide",
    "utc_now",
    "format_timestamp",
    "parse_timestamp",
]
