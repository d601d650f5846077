"""
FastAPI dependencies for route handlers.
"""

from fastapi import Request

from geoquery.query.pipeline import QueryPipeline
from geoquery.services import QueryServices


def get_services(request: Request) -> QueryServices:
    """Service container created in the application lifespan."""
    return request.app.state.services


def get_pipeline(request: Request) -> QueryPipeline:
    return get_services(request).pipeline
