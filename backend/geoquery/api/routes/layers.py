"""
Layer registry API routes.
"""

import asyncio
import logging

from fastapi import APIRouter, Depends

from geoquery.api.dependencies import get_services
from geoquery.api.schemas.query import LayerListResponse
from geoquery.layers.registry import LayerRegistry
from geoquery.services import QueryServices

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/layers", tags=["layers"])


def _layer_list(registry: LayerRegistry) -> dict:
    summaries = registry.summaries()
    return {
        "layers": summaries,
        "count": len(summaries),
        "loadedCount": len(registry.loaded_layer_names),
        "generatedAt": registry.generated_at,
    }


@router.get("", response_model=LayerListResponse, summary="List layers")
async def list_layers(services: QueryServices = Depends(get_services)):
    """
    List every declared layer with its load status and queryable fields.
    """
    return _layer_list(services.registry_holder.current())


@router.post("/reload", response_model=LayerListResponse, summary="Reload layer registry")
async def reload_layers(services: QueryServices = Depends(get_services)):
    """
    Rebuild the registry from the manifest and the database.

    Requests already in flight keep the snapshot they started with.
    """
    registry = await asyncio.to_thread(services.reload_registry)
    logger.info(f"Registry reloaded: {registry.loaded_layer_names}")
    return _layer_list(registry)
