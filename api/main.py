"""
Lead Routing API - Main Application.

FastAPI application with CORS enabled for the storefront and dashboard.
Domain errors are translated to HTTP responses in one place below.
"""

import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import __version__
from domain.errors import (
    AccessDeniedError,
    DuplicateLeadError,
    InvalidAssigneeError,
    InvalidInputError,
    InvalidStateError,
    LeadRoutingError,
    NotFoundError,
    StoreError,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title="Lead Routing API",
    description="REST API for vehicle inquiry intake, agent ranking and lead assignment",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Configure CORS - Allow all origins for development
# TODO: Restrict origins to the storefront and dashboard hosts in production
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Most specific first: AgentAtCapacityError is matched through InvalidAssigneeError.
_STATUS_BY_ERROR = (
    (NotFoundError, 404),
    (InvalidInputError, 400),
    (DuplicateLeadError, 409),
    (InvalidAssigneeError, 422),
    (InvalidStateError, 409),
    (AccessDeniedError, 403),
    (StoreError, 500),
)


def status_for_error(exc: LeadRoutingError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


@app.exception_handler(LeadRoutingError)
def handle_lead_routing_error(request: Request, exc: LeadRoutingError) -> JSONResponse:
    status_code = status_for_error(exc)
    if status_code >= 500:
        logger.error(
            "Request failed",
            extra={"path": request.url.path, "error": str(exc)},
        )
        return JSONResponse(status_code=status_code, content={"detail": "Internal server error"})

    content = {"detail": str(exc)}
    if isinstance(exc, DuplicateLeadError):
        content["lead_id"] = str(exc.existing_lead_id)
    return JSONResponse(status_code=status_code, content=content)


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status and version.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "lead-routing-api"
    }


@app.get("/", tags=["Root"])
def root():
    """
    Root endpoint with API information.
    """
    return {
        "message": "Lead Routing API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


# Import and include routers
from api.routers import leads, matching

app.include_router(leads.router, prefix="/api/v1", tags=["Leads"])
app.include_router(matching.router, prefix="/api/v1", tags=["Matching"])
