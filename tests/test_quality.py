"""Tests for proposal quality scoring."""

import pytest

from grantsync.matching import QualityScorer, QualityThresholds
from grantsync.matching.quality import (
    DEFAULT_STRENGTH,
    IMPROVEMENTS,
    RECOMMENDATIONS,
    required_elements,
)
from conftest import make_record


SHORT_PLAIN_TEXT = " ".join(["Our bakery wants to grow and serve more neighbors in town."] * 18)

STRUCTURED_TEXT = """# Executive Summary
We outline the plan. However, costs rise.

# Problem
Local firms lack capital. Therefore we act.

# Methodology
Furthermore, we pilot. Moreover, we measure. Additionally, we report.

# Budget
Consequently, funds are split. However, reserves remain.

# Timeline
Therefore, work starts in spring. Furthermore, it ends in fall.

# Team
Staff are hired locally.

# Conclusion
The plan is sound, however modest.

# References
Prior studies.
"""


@pytest.fixture
def scorer():
    return QualityScorer()


def test_short_unstructured_text_scores_low(scorer):
    assessment = scorer.assess(SHORT_PLAIN_TEXT, make_record())

    assert assessment.content_quality < 50
    assert assessment.structure < 50
    assert RECOMMENDATIONS["content_quality"] in assessment.recommendations
    assert RECOMMENDATIONS["structure"] in assessment.recommendations
    assert IMPROVEMENTS["content_quality"] in assessment.improvements
    assert IMPROVEMENTS["structure"] in assessment.improvements
    assert assessment.strengths == [DEFAULT_STRENGTH]


def test_vocabulary_diversity_needs_enough_words(scorer):
    """Type/token ratio only counts once a text reaches 300 words."""
    short = " ".join(f"term{i}" for i in range(200))
    long = " ".join(f"term{i}" for i in range(300))

    # both under 500 words (-10); only the longer one earns the diversity bonus
    assert scorer.content_quality(short) == 40
    assert scorer.content_quality(long) == 50


def test_scores_are_bounded(scorer):
    assessment = scorer.assess("", make_record())

    for value in assessment.scores.values():
        assert 0 <= value <= 100
    assert 0 <= assessment.overall <= 100


def test_structure_rewards_headings_sections_and_transitions(scorer):
    assert scorer.structure(STRUCTURED_TEXT) == 100


def test_casual_language_lowers_professionalism(scorer):
    text = "We are really very happy. Things are pretty good stuff."
    assert scorer.professionalism(text) == 55


def test_completeness_for_sbir_grant(scorer):
    text = (
        "Objective: innovation and commercialization of technical phase work. "
        "Methodology, budget and timeline attached. Contact pi@example.com. "
        "We need $100 over 6 months, $200 over 12 months, a 10% match, "
        "3 years of support and 90 days of testing."
    )
    assert scorer.completeness(text, make_record(grant_type="sbir")) == 100


def test_alignment_counts_requirements_and_tags(scorer):
    grant = make_record(requirements=["job creation", "small business"], tags=["technology"])
    text = "Our small business will hire five workers using new technology."

    assert scorer.grant_alignment(text, grant) == 100


def test_alignment_baseline_without_requirements_or_tags(scorer):
    grant = make_record(requirements=[], tags=[])
    assert scorer.grant_alignment("anything", grant) == 60


def test_thresholds_are_configurable():
    scorer = QualityScorer(QualityThresholds.from_config({
        "recommend_content": 30,
        "improve_content": 30,
    }))
    assessment = scorer.assess(SHORT_PLAIN_TEXT, make_record())

    assert RECOMMENDATIONS["content_quality"] not in assessment.recommendations
    assert IMPROVEMENTS["content_quality"] not in assessment.improvements
    assert RECOMMENDATIONS["structure"] in assessment.recommendations


def test_required_elements():
    assert required_elements(None) == ["budget", "timeline", "objective", "methodology"]
    assert required_elements("research") == [
        "budget", "timeline", "objective", "methodology",
        "hypothesis", "literature review", "data",
    ]
    assert "commercialization" in required_elements("SBIR")
