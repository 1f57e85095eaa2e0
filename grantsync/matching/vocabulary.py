"""Fixed word lists used by keyword extraction, matching and quality scoring."""

import re
from types import MappingProxyType


STOP_WORDS = frozenset({
    "the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
    "this", "that", "these", "those", "will", "would", "could", "should",
    "have", "has", "had", "been", "being", "are", "is", "was", "were",
    "from", "into", "about", "their", "there", "they", "them", "then", "than",
    "what", "when", "where", "which", "while", "who", "whom", "whose", "your",
    "ours", "also", "such", "each", "other", "some", "more", "most", "many",
    "much", "very", "just", "only", "over", "under", "upon", "within",
    "without", "through", "between", "after", "before", "during", "because",
    "does", "doing", "done", "must", "shall", "here", "both", "same", "well",
})

# Domain tag -> pattern matched against lowercased text
DOMAIN_PATTERNS = MappingProxyType({
    "technology": re.compile(
        r"\b(technology|tech|software|hardware|ai|artificial intelligence"
        r"|machine learning|blockchain)\b"
    ),
    "healthcare": re.compile(
        r"\b(health|medical|healthcare|biotech|pharmaceutical|clinical)\b"
    ),
    "research": re.compile(
        r"\b(research|study|analysis|investigation|academic)\b"
    ),
    "environmental": re.compile(
        r"\b(environment|environmental|climate|green|sustainable|renewable"
        r"|clean energy)\b"
    ),
    "education": re.compile(
        r"\b(education|learning|training|academic|school|university)\b"
    ),
})

# Requirement phrase -> terms that count as addressing it
REQUIREMENT_SYNONYMS = MappingProxyType({
    "technology innovation": ("tech", "innovation", "breakthrough", "advanced", "cutting-edge"),
    "commercialization": ("market", "commercial", "business", "revenue", "customers"),
    "small business": ("startup", "small", "entrepreneur", "business", "sme"),
    "job creation": ("employment", "hiring", "hire", "jobs", "workforce"),
    "research": ("study", "analysis", "investigation", "academic"),
    "women-owned": ("women", "female", "gender"),
    "minority-owned": ("minority", "diverse", "inclusion"),
    "community impact": ("community", "social", "benefit", "impact"),
})

TECHNICAL_TERMS = (
    "algorithm", "methodology", "framework", "protocol", "analysis",
    "implementation", "optimization", "evaluation", "assessment",
    "validation", "verification", "calibration", "integration",
)

EVIDENCE_PATTERN = re.compile(
    r"\b(data|research|study|analysis|evidence|statistics|findings)\b", re.IGNORECASE
)
TRANSITION_PATTERN = re.compile(
    r"\b(therefore|however|furthermore|consequently|additionally|moreover)\b", re.IGNORECASE
)
FORMAL_PATTERN = re.compile(
    r"\b(therefore|furthermore|consequently|establish|demonstrate|implement|facilitate)\b",
    re.IGNORECASE,
)
CASUAL_PATTERN = re.compile(
    r"\b(really|pretty|very|stuff|things|gonna|wanna)\b", re.IGNORECASE
)
HEADING_PATTERN = re.compile(r"^#+\s+.+$", re.MULTILINE)
EMAIL_PATTERN = re.compile(r"\b[\w.-]+@[\w.-]+\.\w+\b")
NUMERIC_PATTERN = re.compile(r"\$\d+|\d+%|\d+\s+(?:months?|years?|days?)")

# Section name -> phrases that show the section is present
ESSENTIAL_SECTIONS = MappingProxyType({
    "summary": ("executive summary", "summary", "overview"),
    "problem": ("problem", "statement of need", "need statement"),
    "methodology": ("methodology", "approach", "method"),
    "budget": ("budget", "financial", "cost"),
    "timeline": ("timeline", "schedule", "milestone"),
    "conclusion": ("conclusion", "in closing"),
})

COMMON_REQUIRED_ELEMENTS = ("budget", "timeline", "objective", "methodology")

REQUIRED_ELEMENTS_BY_TYPE = MappingProxyType({
    "sbir": ("innovation", "commercialization", "technical", "phase"),
    "sba": ("business plan", "job creation", "community impact"),
    "research": ("hypothesis", "methodology", "literature review", "data"),
    "innovation": ("technology", "innovation", "market potential"),
    "minority_business": ("diversity", "inclusion", "community"),
    "women_business": ("women-owned", "gender", "empowerment"),
})

REFERENCE_HEADINGS = ("References", "Bibliography")
