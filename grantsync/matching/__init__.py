"""Proposal matching and quality scoring."""

from .engine import (
    MatchEngine,
    MatchResult,
    MatchThresholds,
    ProposalDocument,
    confidence_level,
)
from .quality import QualityAssessment, QualityScorer, QualityThresholds

__all__ = [
    "MatchEngine",
    "MatchResult",
    "MatchThresholds",
    "ProposalDocument",
    "confidence_level",
    "QualityAssessment",
    "QualityScorer",
    "QualityThresholds",
]
