"""Canonical grant record and normalization helpers shared by adapters."""

import math
import re
from dataclasses import dataclass, field
from datetime import datetime, date

from dateutil import parser as date_parser

from grantsync.database.models import GrantStatus
from grantsync.matching.text import extract_domains

SUMMARY_LENGTH = 200


@dataclass
class GrantRecord:
    """A funding opportunity in source-independent form."""

    external_id: str
    source: str
    title: str
    description: str = ""
    summary: str | None = None
    agency: str | None = None
    category: str | None = None
    grant_type: str | None = None
    award_min: int | None = None
    award_max: int | None = None
    open_date: date | None = None
    close_date: date | None = None
    application_deadline: datetime | None = None
    eligible_applicants: list[str] = field(default_factory=list)
    industry_focus: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    requirements: list[str] = field(default_factory=list)
    application_url: str | None = None
    status: GrantStatus = GrantStatus.ACTIVE
    last_synced_at: datetime | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.source, self.external_id)


def slugify(value: str) -> str:
    """Lowercase, hyphen-separated form of a label ("Rural Business" -> "rural-business")."""
    return re.sub(r"[^a-z0-9]+", "-", str(value).lower()).strip("-")


def summarize(description: str | None) -> str | None:
    """First 200 characters of a description, ellipsized when cut."""
    if not description:
        return None
    description = " ".join(description.split())
    if len(description) <= SUMMARY_LENGTH:
        return description
    return description[:SUMMARY_LENGTH].rstrip() + "..."


def build_tags(
    text: str,
    agency: str | None = None,
    categories: list[str] | None = None,
    eligibility: list[str] | None = None,
) -> tuple[list[str], list[str]]:
    """Derive (domain tags, all tags) for a listing.

    Domain tags come from the fixed vocabulary matched against ``text``.
    The full tag list adds slugs of the agency, categories and eligibility
    groups, deduplicated in order of first appearance.
    """
    domains = sorted(extract_domains(text))
    tags: list[str] = []
    candidates = [agency or ""] + list(categories or []) + list(eligibility or [])
    for value in [slugify(c) for c in candidates] + domains:
        if value and value not in tags:
            tags.append(value)
    return domains, tags


_GRANT_TYPE_PATTERNS = (
    ("sbir", re.compile(r"\b(sbir|sttr|small business innovation)\b")),
    ("women_business", re.compile(r"\b(women-owned|women owned|women's business)\b")),
    ("minority_business", re.compile(r"\b(minority|disadvantaged business)\b")),
    ("research", re.compile(r"\b(research|fellowship|scientific)\b")),
    ("innovation", re.compile(r"\b(innovation|technology commercialization)\b")),
)


def infer_grant_type(text: str, default: str | None = None) -> str | None:
    """Grant type keyword for a listing, used for required-element checks."""
    lowered = (text or "").lower()
    for grant_type, pattern in _GRANT_TYPE_PATTERNS:
        if pattern.search(lowered):
            return grant_type
    return default


def parse_date(value) -> datetime | None:
    """Parse a listing date, returning None for anything unusable."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    try:
        parsed = date_parser.parse(str(value))
    except (ValueError, OverflowError, TypeError):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def parse_amount(value) -> int | None:
    """Parse an award amount ("$1,250,000", 50000.0, "") to whole dollars."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        if value < 0:
            return None
        return int(value)
    cleaned = re.sub(r"[^\d.]", "", str(value))
    if not cleaned:
        return None
    try:
        amount = float(cleaned)
    except ValueError:
        return None
    return int(amount) if math.isfinite(amount) else None


def as_text(value) -> str | None:
    """Scalar listing field as stripped text; None for missing or structured values."""
    if value is None or isinstance(value, (bool, dict, list, tuple)):
        return None
    text = str(value).strip()
    return text or None


def as_list(value) -> list[str]:
    """Coerce a listing field that may be a string, list or missing to a list of strings."""
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple)):
        items = []
        for item in value:
            if isinstance(item, dict):
                item = item.get("description") or item.get("name") or item.get("value")
            if item:
                items.append(str(item).strip())
        return items
    return [str(value)]
