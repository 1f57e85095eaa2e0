"""
Proposal-to-grant compatibility scoring.

Combines five weighted sub-scores (content similarity, keyword/tag match,
requirements alignment, domain match, funding alignment) into an integer
0-100 score with human-readable match reasons.
"""

import math
from dataclasses import dataclass, field, fields
from typing import Any, Iterable, Optional

from .text import extract_amounts, extract_domains, extract_keywords, meets_requirement


WEIGHTS = {
    "content": 0.40,
    "keywords": 0.25,
    "requirements": 0.20,
    "domain": 0.10,
    "funding": 0.05,
}

NEUTRAL = 50.0


@dataclass
class ProposalDocument:
    """A proposal or business plan supplied by the caller."""
    title: str = ""
    content: str = ""
    summary: str = ""
    tags: list[str] = field(default_factory=list)

    @property
    def body(self) -> str:
        return self.content or self.summary or ""

    @property
    def text(self) -> str:
        return f"{self.title} {self.body}".strip()


@dataclass(frozen=True)
class MatchThresholds:
    """Sub-score levels above which a match reason is reported."""
    keyword: float = 60
    requirements: float = 70
    funding: float = 70
    high_confidence: float = 70

    @classmethod
    def from_config(cls, values: dict | None) -> "MatchThresholds":
        names = {f.name for f in fields(cls)}
        return cls(**{k: float(v) for k, v in (values or {}).items() if k in names})


@dataclass
class MatchResult:
    """Score of one grant against one document."""
    grant: Any
    score: int
    reasons: list[str]
    confidence: str
    breakdown: dict[str, float] = field(default_factory=dict)


def confidence_level(score: float) -> str:
    """Label for a match score."""
    if score >= 80:
        return "Very High"
    if score >= 60:
        return "High"
    if score >= 40:
        return "Medium"
    if score >= 20:
        return "Low"
    return "Very Low"


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _grant_text(grant) -> str:
    requirements = " ".join(grant.requirements or [])
    return f"{grant.description or ''} {requirements}"


def _grant_domains(grant) -> set[str]:
    if grant.industry_focus:
        return set(grant.industry_focus)
    return extract_domains(f"{grant.title or ''} {_grant_text(grant)}")


def _funding_target(grant) -> Optional[float]:
    target = grant.award_max or grant.award_min
    return float(target) if target else None


class MatchEngine:
    """Scores proposal documents against grant records.

    Grants are read by attribute: description, requirements, tags,
    industry_focus, title, award_min and award_max. Both ``GrantRecord``
    values and ``Grant`` rows work. Stateless apart from thresholds, so
    one instance can be shared across threads.
    """

    def __init__(self, thresholds: MatchThresholds | None = None):
        self.thresholds = thresholds or MatchThresholds()

    # Sub-scores, each 0-100

    def content_similarity(self, document: ProposalDocument, grant) -> float:
        doc_words = set(extract_keywords(document.body or document.title))
        grant_words = set(extract_keywords(_grant_text(grant)))
        union = doc_words | grant_words
        if not union:
            return 0.0
        return len(doc_words & grant_words) / len(union) * 100

    def keyword_match(self, document: ProposalDocument, grant) -> float:
        grant_tags = [t.lower() for t in (grant.tags or []) if t]
        if not grant_tags:
            return 0.0
        doc_terms = {t.lower() for t in document.tags if t}
        doc_terms.update(extract_keywords(document.text))
        matched = [
            tag for tag in grant_tags
            if any(term in tag or tag in term for term in doc_terms)
        ]
        return len(matched) / len(grant_tags) * 100

    def requirements_alignment(self, document: ProposalDocument, grant) -> float:
        requirements = [r for r in (grant.requirements or []) if r and r.strip()]
        if not requirements:
            return NEUTRAL
        text = document.body.lower()
        met = [r for r in requirements if meets_requirement(text, r)]
        return len(met) / len(requirements) * 100

    def domain_match(self, document: ProposalDocument, grant) -> float:
        doc_domains = extract_domains(document.text)
        grant_domains = _grant_domains(grant)
        union = doc_domains | grant_domains
        return len(doc_domains & grant_domains) / max(len(union), 1) * 100

    def funding_alignment(self, document: ProposalDocument, grant) -> float:
        target = _funding_target(grant)
        amounts = extract_amounts(document.body)
        if not target or not amounts:
            return NEUTRAL
        closest = min(amounts, key=lambda a: abs(a - target))
        return max(0.0, 1 - abs(closest - target) / target) * 100

    # Public API

    def breakdown(self, document: ProposalDocument, grant) -> dict[str, float]:
        return {
            "content": self.content_similarity(document, grant),
            "keywords": self.keyword_match(document, grant),
            "requirements": self.requirements_alignment(document, grant),
            "domain": self.domain_match(document, grant),
            "funding": self.funding_alignment(document, grant),
        }

    def score(self, document: ProposalDocument, grant) -> int:
        """Weighted 0-100 compatibility score."""
        return self._combine(self.breakdown(document, grant))

    def reasons(self, document: ProposalDocument, grant) -> list[str]:
        """Human-readable reasons for the score, never empty."""
        return self._reasons(document, grant, self.breakdown(document, grant))

    def rank(
        self,
        document: ProposalDocument,
        grants: Iterable,
        min_score: int | None = None,
    ) -> list[MatchResult]:
        """Score every grant and return results best first.

        Grants with equal scores keep their input order.
        """
        results = []
        for grant in grants:
            parts = self.breakdown(document, grant)
            score = self._combine(parts)
            if min_score is not None and score < min_score:
                continue
            results.append(MatchResult(
                grant=grant,
                score=score,
                reasons=self._reasons(document, grant, parts),
                confidence=confidence_level(score),
                breakdown=parts,
            ))
        results.sort(key=lambda r: r.score, reverse=True)
        return results

    def summarize(self, results: list[MatchResult]) -> dict:
        """Totals for a ranked result list."""
        top_funding = sum(
            (r.grant.award_max or r.grant.award_min or 0) for r in results[:5]
        )
        average = (
            round_half_up(sum(r.score for r in results) / len(results))
            if results else 0
        )
        return {
            "total": len(results),
            "high_confidence": sum(
                1 for r in results if r.score >= self.thresholds.high_confidence
            ),
            "potential_funding": top_funding,
            "average_score": average,
        }

    def _combine(self, parts: dict[str, float]) -> int:
        total = sum(parts[name] * weight for name, weight in WEIGHTS.items())
        return max(0, min(100, round_half_up(total)))

    def _reasons(self, document: ProposalDocument, grant, parts: dict[str, float]) -> list[str]:
        reasons = []
        if parts["keywords"] > self.thresholds.keyword:
            reasons.append("Strong keyword alignment")

        shared = [
            d for d in sorted(extract_domains(document.text))
            if d in _grant_domains(grant)
        ]
        if shared:
            reasons.append(f"{', '.join(shared)} focus match")

        if parts["requirements"] > self.thresholds.requirements:
            reasons.append("Meets key requirements")
        if parts["funding"] > self.thresholds.funding:
            reasons.append("Appropriate funding range")

        return reasons or ["General compatibility"]
