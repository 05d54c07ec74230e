"""
FastAPI application factory for the acknowledgment tracking service.

The storage handle is created and connected by the process entry point and
handed in here; the app never opens or closes it.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..core.config import VERSION, debug_enabled, is_development
from ..core.db import Database
from ..core.errors import AcknowledgmentError, InternalError
from ..util.logging import logger
from .acknowledgments import router as acknowledgments_router
from .schemas import HealthResponse

# Request locations that are not part of a field name
_LOCATION_PREFIXES = ("body", "query", "path", "header")


def _field_name(loc) -> str:
    parts = [str(part) for part in loc]
    if len(parts) > 1 and parts[0] in _LOCATION_PREFIXES:
        parts = parts[1:]
    return ".".join(parts)


async def acknowledgment_error_handler(request: Request, exc: AcknowledgmentError):
    """Shape domain errors as {"error": message}."""
    content = {"error": exc.message}
    if exc.status_code < 500:
        if exc.details:
            content["details"] = exc.details
    elif is_development():
        cause = exc.cause if isinstance(exc, InternalError) and exc.cause else exc
        content["details"] = str(cause)
    return JSONResponse(status_code=exc.status_code, content=content)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Shape request validation failures as a 400 with the offending fields."""
    errors = [
        {"field": _field_name(error.get("loc", ())), "message": error.get("msg", "Invalid value")}
        for error in exc.errors()
    ]
    logger.log_operation("request.validation", "rejected", {"path": request.url.path, "errors": len(errors)})
    return JSONResponse(status_code=400, content={"errors": errors})


async def global_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions."""
    logger.log_request_error("request.unhandled", exc, {"path": request.url.path})
    content = {"error": "Internal server error"}
    if is_development():
        content["details"] = str(exc)
    return JSONResponse(status_code=500, content=content)


def create_app(database: Database) -> FastAPI:
    """Build the API around an already connected storage handle."""
    app = FastAPI(
        title="Document Acknowledgment API",
        version=VERSION,
        description="Tracks staff acknowledgment of approved policy documents",
        docs_url="/docs" if debug_enabled() or is_development() else None,
        redoc_url="/redoc" if debug_enabled() or is_development() else None
    )
    app.state.database = database

    # Add CORS middleware to allow frontend connections
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AcknowledgmentError, acknowledgment_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    app.include_router(acknowledgments_router, prefix="/api/acknowledgments", tags=["acknowledgments"])

    @app.get("/health", response_model=HealthResponse)
    def health_check_endpoint():
        """Check system health."""
        db_health = database.health_check()
        return HealthResponse(
            status="healthy" if db_health else "unhealthy",
            version=VERSION,
            db_health=db_health,
        )

    return app
