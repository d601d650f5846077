"""
Query template API routes.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from geoquery.api.dependencies import get_services
from geoquery.api.schemas.query import TemplateListResponse
from geoquery.services import QueryServices
from geoquery.templates.equity_queries import (
    EQUITY_TEMPLATES,
    TemplateCategory,
    get_available_templates,
    get_template_by_id,
    get_templates_by_category,
    get_templates_grouped,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/templates", tags=["templates"])


@router.get("", summary="List query templates")
async def list_templates(grouped: bool = False, services: QueryServices = Depends(get_services)):
    """
    List equity analysis templates.

    Args:
        grouped: Return full templates keyed by category instead of summaries
    """
    if grouped:
        return {
            "templates": {
                category: [t.to_dict() for t in templates]
                for category, templates in get_templates_grouped().items()
            },
            "count": len(EQUITY_TEMPLATES),
        }

    loaded = services.registry_holder.current().loaded_layer_names
    available = {t.id for t in get_available_templates(loaded)}
    templates = [dict(t.summary(), available=t.id in available) for t in EQUITY_TEMPLATES]
    return TemplateListResponse(templates=templates, count=len(templates))


@router.get("/category/{category}", summary="List templates in a category")
async def list_templates_by_category(category: str):
    try:
        template_category = TemplateCategory(category)
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail={"error": "Invalid category", "validCategories": [c.value for c in TemplateCategory]},
        )

    templates = get_templates_by_category(template_category)
    return {
        "category": template_category.value,
        "templates": [t.to_dict() for t in templates],
        "count": len(templates),
    }


@router.get("/{template_id}", summary="Get a query template")
async def get_template(template_id: str):
    template = get_template_by_id(template_id)
    if template is None:
        raise HTTPException(
            status_code=404,
            detail={"error": "Template not found", "available": [t.id for t in EQUITY_TEMPLATES]},
        )
    return template.to_dict()
