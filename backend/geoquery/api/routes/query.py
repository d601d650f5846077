"""
Structured query API route.

Executes a StructuredQuery posted directly or wrapped as {"query": ...}
and returns a GeoJSON FeatureCollection with execution metadata.
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends
from fastapi.responses import Response

from geoquery.api.dependencies import get_pipeline
from geoquery.api.schemas.query import ErrorResponse
from geoquery.query.pipeline import QueryPipeline

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/query", tags=["query"])


@router.post(
    "",
    summary="Execute structured query",
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def execute_structured_query(
    body: Any = Body(...),
    pipeline: QueryPipeline = Depends(get_pipeline),
):
    """
    Execute a StructuredQuery against the loaded layers.

    The query is shape-validated, normalized, checked against the loaded
    data, bounded by the per-geometry limit policy, compiled to
    parameterized SQL and executed.

    Example body:
        {"query": {"selectLayer": "parcels",
                   "spatialFilters": [{"op": "within_distance",
                                       "targetLayer": "hydrology",
                                       "distance": 500}]}}
    """
    logger.info("Structured query request received")
    content = await pipeline.run_structured(body)
    return Response(content=content, media_type="application/json")
