"""
GeoQuery - natural language spatial queries over Santa Fe housing data.
FastAPI main application.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

import duckdb
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from geoquery.api.dependencies import get_services
from geoquery.api.routes import chat, layers, query, templates
from geoquery.config import Settings, get_settings, get_settings_dependency
from geoquery.errors import (
    CompileError,
    ExecutionError,
    GroundingError,
    IntentParseError,
    IssueListError,
    LLMResponseError,
    LLMUnavailableError,
    UngroundableRequestError,
)
from geoquery.services import QueryServices, build_services, load_data
from geoquery.storage.executor import DuckDBExecutor

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

PARSE_SUGGESTIONS = [
    'Try: "Show residential parcels"',
    'Try: "Parcels near the river"',
    'Try: "Census tracts with low income"',
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    """
    # Startup
    logger.info("Starting GeoQuery Spatial Chat API...")
    logger.info(f"Configuration: {settings.app_name} v{settings.app_version}")

    if getattr(app.state, "services", None) is None:
        executor = DuckDBExecutor(settings.database_path)
        try:
            await asyncio.to_thread(load_data, settings, executor)
        except duckdb.Error as e:
            logger.error(f"DuckDB initialization failed: {e}")
            logger.error("Application will start but queries will not work")

        app.state.services = build_services(settings, executor=executor)

    registry = app.state.services.registry_holder.current()
    logger.info(f"Loaded layers: {registry.loaded_layer_names}")

    yield

    # Shutdown
    logger.info("Shutting down...")
    app.state.services.executor.close()


def create_app() -> FastAPI:
    """Build the application; tests pre-populate app.state.services to skip startup wiring."""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Natural language spatial queries with grounded, parameterized DuckDB SQL",
        lifespan=lifespan
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(query.router)      # Structured query execution
    app.include_router(chat.router)       # Natural language queries
    app.include_router(layers.router)     # Layer registry
    app.include_router(templates.router)  # Equity analysis templates

    register_exception_handlers(app)

    @app.get("/")
    async def root():
        """Root endpoint with API information."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "description": "Spatial query API for Santa Fe housing equity analysis",
            "docs": "/docs",
            "endpoints": {
                "query": "/api/query - Execute a StructuredQuery",
                "chat": "/api/chat - Natural language queries",
                "layers": "/api/layers - Layer registry",
                "templates": "/api/templates - Equity analysis templates",
                "health": "/api/health - Health check"
            }
        }

    @app.get("/api/health")
    async def health_check(
        services: QueryServices = Depends(get_services),
        app_settings: Settings = Depends(get_settings_dependency),
    ):
        """
        Health check endpoint for container orchestration.
        Returns 200 OK if the API is responding; "llm" reports whether the
        configured model service is reachable.
        """
        registry = services.registry_holder.current()
        llm_available = await services.llm_client.health_check()
        return {
            "status": "ok",
            "service": "geoquery-backend",
            "version": app_settings.app_version,
            "loadedLayers": len(registry.loaded_layer_names),
            "llm": {
                "provider": services.settings.llm_provider,
                "available": llm_available,
            },
        }

    return app


def register_exception_handlers(app: FastAPI) -> None:
    """Map pipeline errors to HTTP responses."""

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Invalid request body: {exc.errors()}")
        return JSONResponse(
            status_code=400,
            content={
                "error": "Invalid request payload",
                "details": [
                    {"path": ".".join(str(p) for p in e.get("loc", ())), "message": e.get("msg", "")}
                    for e in exc.errors()
                ],
            },
        )

    @app.exception_handler(IssueListError)
    async def issue_list_handler(request: Request, exc: IssueListError):
        logger.warning(f"Rejected query: {exc}")
        content = {"error": exc.summary, "details": exc.details()}
        if isinstance(exc, GroundingError):
            content["suggestions"] = exc.suggestions
            content["normalizationNotes"] = exc.normalization_notes
        return JSONResponse(status_code=400, content=content)

    @app.exception_handler(IntentParseError)
    async def intent_parse_handler(request: Request, exc: IntentParseError):
        logger.warning(f"Could not parse intent: {exc}")
        return JSONResponse(
            status_code=400,
            content={
                "error": "Could not understand query",
                "message": str(exc),
                "details": [issue.to_dict() for issue in exc.issues],
                "suggestions": PARSE_SUGGESTIONS,
            },
        )

    @app.exception_handler(LLMResponseError)
    async def llm_response_handler(request: Request, exc: LLMResponseError):
        logger.warning(f"Unusable LLM response: {exc}")
        return JSONResponse(
            status_code=400,
            content={"error": "Could not understand query", "message": str(exc), "suggestions": PARSE_SUGGESTIONS},
        )

    @app.exception_handler(LLMUnavailableError)
    async def llm_unavailable_handler(request: Request, exc: LLMUnavailableError):
        logger.error(f"LLM unavailable: {exc}")
        return JSONResponse(
            status_code=503,
            content={"error": "LLM service unavailable", "message": str(exc), "suggestions": exc.remediation},
        )

    @app.exception_handler(UngroundableRequestError)
    async def ungroundable_handler(request: Request, exc: UngroundableRequestError):
        assessment = exc.assessment
        return JSONResponse(
            status_code=422,
            content={
                "error": "Requested data is not available",
                "message": str(exc),
                "grounding": assessment.to_dict(),
                "suggestions": assessment.suggestions,
            },
        )

    @app.exception_handler(ExecutionError)
    async def execution_handler(request: Request, exc: ExecutionError):
        if exc.is_data_problem:
            return JSONResponse(
                status_code=400,
                content={
                    "error": "Query references unavailable fields",
                    "message": str(exc),
                    "suggestions": exc.suggestions,
                },
            )
        logger.error(f"Query execution failed: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Query execution failed", "message": str(exc)})

    @app.exception_handler(CompileError)
    async def compile_handler(request: Request, exc: CompileError):
        logger.error(f"Query compilation failed: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Query compilation failed", "message": str(exc)})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler for unhandled errors."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error occurred"}
        )


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "geoquery.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
