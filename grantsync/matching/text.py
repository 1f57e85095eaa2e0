"""Text helpers for keyword, domain and funding-amount extraction."""

import re

from .vocabulary import DOMAIN_PATTERNS, REQUIREMENT_SYNONYMS, STOP_WORDS

KEYWORD_LIMIT = 20

_WORD = re.compile(r"\b\w{4,}\b")
_AMOUNT = re.compile(
    r"\$\s*(\d+(?:,\d{3})*(?:\.\d+)?)\s*(?:(k|m|b|thousand|million|billion)\b)?",
    re.IGNORECASE,
)
_MULTIPLIERS = {
    "k": 1_000,
    "thousand": 1_000,
    "m": 1_000_000,
    "million": 1_000_000,
    "b": 1_000_000_000,
    "billion": 1_000_000_000,
}


def extract_keywords(text: str, limit: int = KEYWORD_LIMIT) -> list[str]:
    """First ``limit`` distinct non-stop-word tokens of four or more characters."""
    keywords: list[str] = []
    seen = set()
    for word in _WORD.findall((text or "").lower()):
        if word in STOP_WORDS or word in seen:
            continue
        seen.add(word)
        keywords.append(word)
        if len(keywords) == limit:
            break
    return keywords


def extract_domains(text: str) -> set[str]:
    """Domain tags whose vocabulary appears in ``text``."""
    lowered = (text or "").lower()
    return {name for name, pattern in DOMAIN_PATTERNS.items() if pattern.search(lowered)}


def extract_amounts(text: str) -> list[float]:
    """Dollar amounts mentioned in ``text``, with k/m/b suffixes applied."""
    amounts = []
    for number, suffix in _AMOUNT.findall(text or ""):
        amount = float(number.replace(",", ""))
        if suffix:
            amount *= _MULTIPLIERS[suffix.lower()]
        amounts.append(amount)
    return amounts


def meets_requirement(text: str, requirement: str) -> bool:
    """True when lowercased ``text`` contains the requirement or one of its synonyms."""
    req = requirement.lower().strip()
    if not req:
        return False
    if req in text:
        return True
    return any(term in text for term in REQUIREMENT_SYNONYMS.get(req, ()))
