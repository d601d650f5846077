"""
StructuredQuery data model.

The constrained JSON query language produced by the LLM (or submitted
directly) and consumed by the compiler. Wire names are camelCase; Python
attributes are snake_case. Values are strict: "5" is not a number and
true is not an integer.
"""

import re
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


class AttributeOp(str, Enum):
    """Attribute filter operators"""
    EQ = "eq"           # Equal
    NEQ = "neq"         # Not equal
    GT = "gt"           # Greater than
    GTE = "gte"         # Greater than or equal
    LT = "lt"           # Less than
    LTE = "lte"         # Less than or equal
    IN = "in"           # Value in list
    LIKE = "like"       # SQL LIKE pattern


NUMERIC_OPS = frozenset({AttributeOp.GT, AttributeOp.GTE, AttributeOp.LT, AttributeOp.LTE})


class SpatialOp(str, Enum):
    """Spatial filter operators"""
    WITHIN_DISTANCE = "within_distance"  # Features within X meters of target
    INTERSECTS = "intersects"
    CONTAINS = "contains"
    WITHIN = "within"
    NEAREST = "nearest"                  # k nearest features to target


# Distance-based operators are evaluated in the projected CRS
METRIC_OPS = frozenset({SpatialOp.WITHIN_DISTANCE, SpatialOp.NEAREST})


class LogicalOp(str, Enum):
    AND = "and"
    OR = "or"


class MetricOp(str, Enum):
    COUNT = "count"
    SUM = "sum"
    AVG = "avg"
    MEDIAN = "median"
    MIN = "min"
    MAX = "max"


class OrderDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


NonEmptyStr = Annotated[str, Field(strict=True, min_length=1)]
PositiveInt = Annotated[int, Field(strict=True, gt=0)]
Scalar = Union[StrictBool, StrictInt, StrictFloat, StrictStr]
FilterValue = Union[Scalar, List[Scalar]]

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class QueryModel(BaseModel):
    """Base model: camelCase on the wire, unknown keys ignored."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> Dict[str, Any]:
        """JSON-ready dict using wire names, omitting unset optionals."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class AttributeFilter(QueryModel):
    """Filter on a field value"""
    field: NonEmptyStr
    op: AttributeOp
    value: FilterValue

    @model_validator(mode="after")
    def _check_value_shape(self) -> "AttributeFilter":
        if self.op == AttributeOp.IN:
            if not isinstance(self.value, list):
                raise ValueError("operator 'in' requires an array value")
            if not self.value:
                raise ValueError("operator 'in' requires a non-empty array")
        elif isinstance(self.value, list):
            raise ValueError(f"operator '{self.op.value}' requires a scalar value")
        return self


class SpatialFilter(QueryModel):
    """Spatial relationship to (optionally filtered) features of another layer"""
    op: SpatialOp
    target_layer: NonEmptyStr
    target_filter: Optional[List[AttributeFilter]] = None
    distance: Optional[Union[StrictInt, StrictFloat]] = None  # meters
    limit: Optional[PositiveInt] = None  # k for nearest

    @field_validator("distance")
    @classmethod
    def _positive_distance(cls, value):
        if value is not None and value <= 0:
            raise ValueError("distance must be positive")
        return value

    @model_validator(mode="after")
    def _check_required_params(self) -> "SpatialFilter":
        if self.op == SpatialOp.WITHIN_DISTANCE and self.distance is None:
            raise ValueError("within_distance requires a distance in meters")
        if self.op == SpatialOp.NEAREST and self.limit is None:
            raise ValueError("nearest requires a limit")
        return self


class AggregateMetric(QueryModel):
    field: NonEmptyStr  # "*" allowed for count
    op: MetricOp
    alias: Optional[NonEmptyStr] = None


class AggregateSpec(QueryModel):
    group_by: Annotated[List[NonEmptyStr], Field(min_length=1)]
    metrics: Annotated[List[AggregateMetric], Field(min_length=1)]


class YearRef(QueryModel):
    year: Annotated[int, Field(strict=True, ge=1900, le=2100)]


class DateRef(QueryModel):
    date: StrictStr

    @field_validator("date")
    @classmethod
    def _iso_date(cls, value: str) -> str:
        if not _DATE_PATTERN.match(value):
            raise ValueError("date must be formatted YYYY-MM-DD")
        return value


class TemporalQuery(QueryModel):
    """Comparison of a metric between two points in time"""
    baseline: Union[YearRef, DateRef]
    comparison: Union[YearRef, DateRef]
    metric: NonEmptyStr


class OrderBy(QueryModel):
    field: NonEmptyStr
    direction: OrderDirection


class StructuredQuery(QueryModel):
    """A complete structured query"""
    select_layer: NonEmptyStr
    select_fields: Optional[List[NonEmptyStr]] = None
    attribute_filters: Optional[List[AttributeFilter]] = None
    attribute_logic: Optional[LogicalOp] = None  # default: and
    spatial_filters: Optional[List[SpatialFilter]] = None
    spatial_logic: Optional[LogicalOp] = None  # default: and
    aggregate: Optional[AggregateSpec] = None
    temporal: Optional[TemporalQuery] = None
    limit: Optional[PositiveInt] = None
    order_by: Optional[OrderBy] = None

    def nearest_filters(self) -> List[SpatialFilter]:
        return [f for f in self.spatial_filters or [] if f.op == SpatialOp.NEAREST]

    def source_layers(self) -> List[str]:
        """Every layer the query reads from, sorted."""
        layers = {self.select_layer}
        for spatial_filter in self.spatial_filters or []:
            layers.add(spatial_filter.target_layer)
        return sorted(layers)
