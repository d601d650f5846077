"""
Chat API routes.

Natural language -> StructuredQuery -> SQL -> GeoJSON, with parse and
result caching.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from geoquery.api.dependencies import get_pipeline, get_services
from geoquery.api.schemas.query import CacheStatsResponse, ChatRequest, ErrorResponse
from geoquery.query.pipeline import QueryPipeline
from geoquery.services import QueryServices

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/chat", tags=["chat"])


@router.post(
    "",
    summary="Answer a natural language question",
    responses={
        400: {"model": ErrorResponse},
        422: {"description": "Requested data is not loaded"},
        503: {"model": ErrorResponse},
    },
)
async def chat(request: ChatRequest, pipeline: QueryPipeline = Depends(get_pipeline)):
    """
    Process a natural language query and return results with an explanation.

    Example messages:
        - "Parcels within 500 meters of the Santa Fe River"
        - "Census tracts with median income below 40000"
        - "The 5 transit stops closest to the Canyon Road historic district"
    """
    logger.info(f"Chat request: '{request.message}'")
    content = await pipeline.run_chat(request.message)
    return Response(content=content, media_type="application/json")


@router.get("/stats", response_model=CacheStatsResponse, summary="Cache statistics")
async def chat_stats(services: QueryServices = Depends(get_services)):
    """Return parse and result cache statistics."""
    return {"cache": services.cache_stats()}
