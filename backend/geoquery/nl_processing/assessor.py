"""
Pre-parse grounding assessment of a natural-language request.

Before spending an LLM call, scan the message for data concepts that need
specific layers (evictions, wildfire risk, ...) and for place names that
only resolve against boundary layers. If every requested concept is
missing, the request is rejected up front with suggestions instead of
letting the model invent a query over unrelated layers.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Pattern

MAX_SUGGESTIONS = 4

AMBIGUOUS_AREA_PATTERNS = [
    re.compile(r"\bdowntown\b", re.IGNORECASE),
    re.compile(r"\brailyard\b", re.IGNORECASE),
    re.compile(r"\bmidtown\b", re.IGNORECASE),
]
BOUNDARY_LAYERS = ("neighborhoods", "city_limits", "historic_districts")

DISAMBIGUATION_PROMPT = (
    "That place name is ambiguous in the current data. "
    "Please specify a concrete boundary layer or address."
)
DISAMBIGUATION_SUGGESTION = "Try specifying a neighborhood name, coordinates, or a known boundary."


class GroundingStatus(str, Enum):
    EXACT_MATCH = "exact_match"
    PARTIAL_MATCH = "partial_match"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class ConceptRule:
    """A data concept, the phrases that request it, and the layers it needs"""
    concept: str
    patterns: List[Pattern]
    required_layers: List[str]
    suggestion: str

    def matches(self, message: str) -> bool:
        return any(pattern.search(message) for pattern in self.patterns)


def _patterns(*expressions: str) -> List[Pattern]:
    return [re.compile(expression, re.IGNORECASE) for expression in expressions]


CONCEPT_RULES: List[ConceptRule] = [
    ConceptRule(
        concept="affordable_housing",
        patterns=_patterns(
            r"\baffordable housing\b",
            r"\bdeed[- ]restricted\b",
            r"\bincome[- ]restricted\b",
            r"\blihtc\b",
        ),
        required_layers=["affordable_housing_units"],
        suggestion="Affordable housing data is not loaded yet. Try transit, zoning, parcels, or census tracts.",
    ),
    ConceptRule(
        concept="evictions",
        patterns=_patterns(r"\bevictions?\b", r"\beviction filings?\b"),
        required_layers=["eviction_filings"],
        suggestion="Eviction filing data is not loaded yet. Try census tracts or parcels-based analyses.",
    ),
    ConceptRule(
        concept="school_zones",
        patterns=_patterns(r"\bschool zones?\b", r"\battendance zones?\b"),
        required_layers=["school_zones"],
        suggestion=(
            "School attendance zone polygons are not loaded yet. "
            "Try parks, transit, or neighborhood-based filters."
        ),
    ),
    ConceptRule(
        concept="wildfire_risk",
        patterns=_patterns(r"\bwildfire\b", r"\bfire risk\b", r"\bwui\b"),
        required_layers=["wildfire_risk"],
        suggestion="Wildfire risk layer is not loaded yet. Try flood zones or hydrology risk analyses.",
    ),
    ConceptRule(
        concept="vacancy_status",
        patterns=_patterns(r"\bvacancy status\b", r"\busps vacancy\b", r"\blong[- ]term vacancy\b"),
        required_layers=["vacancy_status"],
        suggestion="Vacancy status layer is not loaded yet. Try vacant parcels using parcel land_use filters.",
    ),
]


@dataclass
class GroundingAssessment:
    """What a message asks for and whether the loaded data can answer it"""
    status: GroundingStatus
    requested_concepts: List[str] = field(default_factory=list)
    matched_layers: List[str] = field(default_factory=list)
    missing_concepts: List[str] = field(default_factory=list)
    missing_layers: List[str] = field(default_factory=list)
    disambiguation_prompt: Optional[str] = None
    suggestions: List[str] = field(default_factory=list)

    @property
    def is_unsupported(self) -> bool:
        return self.status == GroundingStatus.UNSUPPORTED

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "status": self.status.value,
            "requestedConcepts": list(self.requested_concepts),
            "matchedLayers": list(self.matched_layers),
            "missingConcepts": list(self.missing_concepts),
            "missingLayers": list(self.missing_layers),
            "suggestions": list(self.suggestions),
        }
        if self.disambiguation_prompt:
            result["disambiguationPrompt"] = self.disambiguation_prompt
        return result


def _dedupe(values: Iterable[str]) -> List[str]:
    seen = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


class GroundingAssessor:
    """Keyword-level check of a message against the loaded layer names."""

    def __init__(self, rules: Optional[List[ConceptRule]] = None):
        self.rules = rules if rules is not None else CONCEPT_RULES

    def assess(self, message: str, loaded_layers: Iterable[str]) -> GroundingAssessment:
        """
        Assess a message.

        Args:
            message: Raw user message
            loaded_layers: Names of layers currently loaded

        Returns:
            GroundingAssessment; status is unsupported only when concepts were
            requested and none of them can be satisfied
        """
        available = set(loaded_layers)
        requested: List[str] = []
        missing_concepts: List[str] = []
        matched_layers = set()
        missing_layers = set()
        suggestions: List[str] = []

        for rule in self.rules:
            if not rule.matches(message):
                continue

            requested.append(rule.concept)
            unavailable = [layer for layer in rule.required_layers if layer not in available]
            if unavailable:
                missing_concepts.append(rule.concept)
                missing_layers.update(unavailable)
                suggestions.append(rule.suggestion)
            else:
                matched_layers.update(rule.required_layers)

        disambiguation_prompt = None
        area_term = any(pattern.search(message) for pattern in AMBIGUOUS_AREA_PATTERNS)
        if area_term and not any(layer in available for layer in BOUNDARY_LAYERS):
            disambiguation_prompt = DISAMBIGUATION_PROMPT
            suggestions.append(DISAMBIGUATION_SUGGESTION)

        status = GroundingStatus.EXACT_MATCH
        if missing_concepts and not matched_layers:
            status = GroundingStatus.UNSUPPORTED
        elif missing_concepts or disambiguation_prompt:
            status = GroundingStatus.PARTIAL_MATCH

        return GroundingAssessment(
            status=status,
            requested_concepts=requested,
            matched_layers=sorted(matched_layers),
            missing_concepts=missing_concepts,
            missing_layers=sorted(missing_layers),
            disambiguation_prompt=disambiguation_prompt,
            suggestions=_dedupe(suggestions)[:MAX_SUGGESTIONS],
        )
