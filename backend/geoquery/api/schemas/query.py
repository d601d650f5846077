"""
API schemas for query, chat, layer and template endpoints.

Query responses are GeoJSON assembled as raw JSON text and have no model
here; these cover the small JSON bodies around them.
"""

from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional


class ChatRequest(BaseModel):
    """Natural language request."""
    message: str = Field(..., min_length=1, description="Question about the loaded spatial data")


class LayerSummary(BaseModel):
    """Public view of one layer."""
    name: str
    geometryType: str
    schemaFields: List[str]
    isLoaded: bool
    loadedFields: List[str]
    queryableFields: List[str]
    featureCount: Optional[int] = None
    description: Optional[str] = None


class LayerListResponse(BaseModel):
    """Response containing every declared layer."""
    layers: List[LayerSummary]
    count: int
    loadedCount: int
    generatedAt: str


class CacheStatsResponse(BaseModel):
    """Parse and result cache statistics."""
    cache: Dict[str, Dict[str, Any]]


class TemplateSummary(BaseModel):
    id: str
    name: str
    description: str
    category: str
    dataRequirements: List[str]
    available: bool = Field(..., description="All required layers are loaded")


class TemplateListResponse(BaseModel):
    templates: List[TemplateSummary]
    count: int


class ErrorResponse(BaseModel):
    """Error body shared by all endpoints."""
    error: str
    message: Optional[str] = None
    details: Optional[List[Dict[str, str]]] = None
    suggestions: Optional[List[str]] = None
