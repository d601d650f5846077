"""
Exception hierarchy for the query orchestration pipeline.

Validation-type errors (shape, normalization, grounding) carry the complete
list of issues found so a caller can fix everything in one round trip.
Compile and execution errors are raised on the first failure because they
point at a defect or at data drift rather than at user input.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Issue:
    """A single problem found in a query, addressed by a dotted path."""
    path: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


class GeoQueryError(Exception):
    """Base class for all pipeline errors."""


class IssueListError(GeoQueryError):
    """Base class for errors that report every issue at once."""

    summary = "Query rejected"

    def __init__(self, issues: List[Issue]):
        self.issues = list(issues)
        details = "; ".join(f"{i.path}: {i.message}" for i in self.issues)
        super().__init__(f"{self.summary}: {details}" if details else self.summary)

    def details(self) -> List[Dict[str, str]]:
        return [issue.to_dict() for issue in self.issues]


class ShapeValidationError(IssueListError):
    """Input is not a well-formed StructuredQuery."""

    summary = "Invalid query payload"


class NormalizationError(IssueListError):
    """A virtual field was used with an operator/value combination that has no rewrite."""

    summary = "Unsupported virtual field usage"


class GroundingError(IssueListError):
    """Query references unloaded layers or fields, or an unsupported feature."""

    summary = "Query validation failed against loaded data"

    def __init__(
        self,
        issues: List[Issue],
        suggestions: Optional[List[str]] = None,
        normalization_notes: Optional[List[str]] = None,
    ):
        super().__init__(issues)
        self.suggestions = suggestions or []
        self.normalization_notes = normalization_notes or []


class CompileError(GeoQueryError):
    """A validated query could not be expressed as SQL. Indicates an internal bug."""


class ExecutionError(GeoQueryError):
    """
    The executor rejected compiled SQL.

    kind is "unsupported_data" when the store no longer matches the registry
    (e.g. a column vanished), "internal" otherwise.
    """

    UNSUPPORTED_DATA = "unsupported_data"
    INTERNAL = "internal"

    def __init__(self, message: str, kind: str = INTERNAL, suggestions: Optional[List[str]] = None):
        super().__init__(message)
        self.kind = kind
        self.suggestions = suggestions or []

    @property
    def is_data_problem(self) -> bool:
        return self.kind == self.UNSUPPORTED_DATA


class LLMUnavailableError(GeoQueryError):
    """The language model service could not be reached."""

    def __init__(self, message: str, remediation: Optional[List[str]] = None):
        super().__init__(message)
        self.remediation = remediation or []


class LLMResponseError(GeoQueryError):
    """The language model answered, but the response was malformed or incomplete."""


class IntentParseError(GeoQueryError):
    """The model output could not be turned into a StructuredQuery."""

    def __init__(self, message: str, issues: Optional[List[Issue]] = None, raw_response: str = ""):
        super().__init__(message)
        self.issues = issues or []
        self.raw_response = raw_response


class UngroundableRequestError(GeoQueryError):
    """A natural-language request needs data layers that are not loaded."""

    def __init__(self, assessment: Any):
        super().__init__("Requested data is not available in the loaded layers")
        self.assessment = assessment
