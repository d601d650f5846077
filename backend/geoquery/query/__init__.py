"""
Query package for structured spatial queries.

This package provides:
- StructuredQuery: The JSON query language and its wire model
- QueryNormalizer / GroundingValidator / LimitPolicy: Pre-compilation stages
- QueryCompiler: Converts a query to parameterized DuckDB SQL
"""

from .models import StructuredQuery, AttributeFilter, SpatialFilter
from .validator import validate_query, safe_validate_query
from .normalizer import QueryNormalizer
from .grounding import GroundingValidator
from .limits import LimitPolicy, LimitApplication
from .compiler import QueryCompiler, CompiledQuery

__all__ = [
    'StructuredQuery',
    'AttributeFilter',
    'SpatialFilter',
    'validate_query',
    'safe_validate_query',
    'QueryNormalizer',
    'GroundingValidator',
    'LimitPolicy',
    'LimitApplication',
    'QueryCompiler',
    'CompiledQuery',
]
