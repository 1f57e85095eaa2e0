"""Multi-factor quality assessment of proposal text."""

import re
from dataclasses import dataclass, field, fields

from .engine import round_half_up
from .text import meets_requirement
from .vocabulary import (
    CASUAL_PATTERN,
    COMMON_REQUIRED_ELEMENTS,
    EMAIL_PATTERN,
    ESSENTIAL_SECTIONS,
    EVIDENCE_PATTERN,
    FORMAL_PATTERN,
    HEADING_PATTERN,
    NUMERIC_PATTERN,
    REFERENCE_HEADINGS,
    REQUIRED_ELEMENTS_BY_TYPE,
    TECHNICAL_TERMS,
    TRANSITION_PATTERN,
)


WEIGHTS = {
    "grant_alignment": 0.30,
    "content_quality": 0.25,
    "structure": 0.20,
    "completeness": 0.15,
    "professionalism": 0.10,
}

# Texts shorter than this give meaningless type/token ratios
DIVERSITY_MIN_WORDS = 300

_TECHNICAL = [re.compile(rf"\b{term}\b", re.IGNORECASE) for term in TECHNICAL_TERMS]
_SENTENCE_SPLIT = re.compile(r"[.!?]+")

RECOMMENDATIONS = {
    "grant_alignment": "Address more specific grant requirements and use terminology from the grant description",
    "content_quality": "Add more technical details, data, and evidence to support your proposal",
    "structure": "Improve document structure with clear section headers and logical flow",
    "completeness": "Include all required sections such as budget, timeline, and methodology",
    "professionalism": "Use more formal, professional language and avoid casual expressions",
}

STRENGTHS = {
    "grant_alignment": "Excellent alignment with grant requirements",
    "content_quality": "High-quality content with good technical depth",
    "structure": "Well-structured document with clear organization",
    "completeness": "Comprehensive coverage of all required elements",
    "professionalism": "Professional presentation and language",
}

DEFAULT_STRENGTH = "Solid foundation for grant proposal"

IMPROVEMENTS = {
    "grant_alignment": "Better align content with grant-specific requirements",
    "content_quality": "Add more supporting evidence and technical details",
    "structure": "Improve document organization and section headers",
    "completeness": "Include missing required sections and elements",
    "professionalism": "Enhance professional tone and language",
}


@dataclass(frozen=True)
class QualityThresholds:
    """Dimension scores that trigger recommendations, strengths and improvements.

    A recommendation or improvement is reported when a dimension is below
    its threshold; a strength when it is at or above.
    """
    recommend_alignment: float = 70
    recommend_content: float = 60
    recommend_structure: float = 70
    recommend_completeness: float = 60
    recommend_professionalism: float = 80
    strength_alignment: float = 85
    strength_content: float = 80
    strength_structure: float = 85
    strength_completeness: float = 85
    strength_professionalism: float = 90
    improve_alignment: float = 70
    improve_content: float = 70
    improve_structure: float = 70
    improve_completeness: float = 70
    improve_professionalism: float = 80

    @classmethod
    def from_config(cls, values: dict | None) -> "QualityThresholds":
        names = {f.name for f in fields(cls)}
        return cls(**{k: float(v) for k, v in (values or {}).items() if k in names})

    def for_prefix(self, prefix: str) -> dict[str, float]:
        return {
            "grant_alignment": getattr(self, f"{prefix}_alignment"),
            "content_quality": getattr(self, f"{prefix}_content"),
            "structure": getattr(self, f"{prefix}_structure"),
            "completeness": getattr(self, f"{prefix}_completeness"),
            "professionalism": getattr(self, f"{prefix}_professionalism"),
        }


@dataclass
class QualityAssessment:
    """Scores and feedback for one proposal."""
    grant_alignment: float
    content_quality: float
    structure: float
    completeness: float
    professionalism: float
    overall: int
    recommendations: list[str] = field(default_factory=list)
    strengths: list[str] = field(default_factory=list)
    improvements: list[str] = field(default_factory=list)

    @property
    def scores(self) -> dict[str, float]:
        return {name: getattr(self, name) for name in WEIGHTS}


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, value))


def required_elements(grant_type: str | None) -> list[str]:
    """Common required elements plus those specific to the grant type."""
    specific = REQUIRED_ELEMENTS_BY_TYPE.get((grant_type or "").lower(), ())
    return list(dict.fromkeys(COMMON_REQUIRED_ELEMENTS + specific))


class QualityScorer:
    """Scores proposal text on five weighted dimensions."""

    def __init__(self, thresholds: QualityThresholds | None = None):
        self.thresholds = thresholds or QualityThresholds()

    def assess(self, text: str, grant) -> QualityAssessment:
        text = text or ""
        scores = {
            "grant_alignment": self.grant_alignment(text, grant),
            "content_quality": self.content_quality(text),
            "structure": self.structure(text),
            "completeness": self.completeness(text, grant),
            "professionalism": self.professionalism(text),
        }
        overall = round_half_up(sum(scores[k] * w for k, w in WEIGHTS.items()))

        return QualityAssessment(
            overall=int(_clamp(overall)),
            recommendations=self._below(scores, "recommend", RECOMMENDATIONS),
            strengths=self._strengths(scores),
            improvements=self._below(scores, "improve", IMPROVEMENTS),
            **scores,
        )

    def grant_alignment(self, text: str, grant) -> float:
        lowered = text.lower()
        score = 60.0

        requirements = [r for r in (grant.requirements or []) if r and r.strip()]
        if requirements:
            met = [r for r in requirements if meets_requirement(lowered, r)]
            score += len(met) / len(requirements) * 25

        tags = [t for t in (grant.tags or []) if t]
        if tags:
            relevant = [t for t in tags if t.lower() in lowered]
            score += len(relevant) / len(tags) * 15

        return _clamp(score)

    def content_quality(self, text: str) -> float:
        words = text.split()
        score = 50.0

        if 1500 <= len(words) <= 3000:
            score += 15
        elif len(words) >= 1000:
            score += 10
        elif len(words) < 500:
            score -= 10

        if len(words) >= DIVERSITY_MIN_WORDS:
            diversity = len({w.lower() for w in words}) / len(words)
            if diversity > 0.6:
                score += 10
            elif diversity > 0.4:
                score += 5

        technical = sum(len(p.findall(text)) for p in _TECHNICAL)
        if technical > 10:
            score += 10
        elif technical > 5:
            score += 5

        score += min(len(EVIDENCE_PATTERN.findall(text)) * 2, 15)
        return _clamp(score)

    def structure(self, text: str) -> float:
        lowered = text.lower()
        score = 40.0

        headings = len(HEADING_PATTERN.findall(text))
        if headings >= 8:
            score += 20
        elif headings >= 5:
            score += 15
        elif headings >= 3:
            score += 10

        found = [
            name for name, phrases in ESSENTIAL_SECTIONS.items()
            if any(p in lowered for p in phrases)
        ]
        score += len(found) / len(ESSENTIAL_SECTIONS) * 20

        score += min(len(TRANSITION_PATTERN.findall(text)) * 2, 20)
        return _clamp(score)

    def completeness(self, text: str, grant) -> float:
        lowered = text.lower()
        score = 50.0

        elements = required_elements(getattr(grant, "grant_type", None))
        found = [e for e in elements if e in lowered]
        score += len(found) / len(elements) * 30

        if EMAIL_PATTERN.search(text):
            score += 10

        numbers = len(NUMERIC_PATTERN.findall(text))
        if numbers >= 5:
            score += 10
        elif numbers >= 3:
            score += 5

        return _clamp(score)

    def professionalism(self, text: str) -> float:
        score = 70.0

        words = text.split()
        sentences = [s for s in _SENTENCE_SPLIT.split(text) if s.strip()]
        if words and sentences:
            average = len(words) / len(sentences)
            if 15 <= average <= 25:
                score += 10
            elif average < 10 or average > 35:
                score -= 5

        score += min(len(FORMAL_PATTERN.findall(text)), 15)
        score -= len(CASUAL_PATTERN.findall(text)) * 2

        if any(heading in text for heading in REFERENCE_HEADINGS):
            score += 5

        return _clamp(score)

    def _below(self, scores: dict, prefix: str, messages: dict) -> list[str]:
        limits = self.thresholds.for_prefix(prefix)
        return [messages[name] for name in WEIGHTS if scores[name] < limits[name]]

    def _strengths(self, scores: dict) -> list[str]:
        limits = self.thresholds.for_prefix("strength")
        strengths = [STRENGTHS[name] for name in WEIGHTS if scores[name] >= limits[name]]
        return strengths or [DEFAULT_STRENGTH]
