"""
Main FastAPI application with all endpoints.
"""

import logging
from typing import List, Optional

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings, setup_logging, validate_settings
from database import get_db, init_db
from errors import CountryApiError, NotFound
from gateway import ExternalDataGateway
from image_generator import generate_summary_image, get_image_path
from models import (
    CountryResponse,
    ErrorResponse,
    ImageRefreshResponse,
    MessageResponse,
    RefreshResponse,
    StatusResponse,
    ValidationErrorResponse,
)
from refresh import RefreshOrchestrator
from services import CountryQueryService, CountrySort, regenerate_summary_image

logger = logging.getLogger(__name__)


# ============= Dependencies =============

def get_gateway() -> ExternalDataGateway:
    return ExternalDataGateway()


def get_summary_image_path() -> str:
    return settings.IMAGE_PATH


def get_renderer(image_path: str = Depends(get_summary_image_path)):
    """Renderer callable: Summary -> path of the written PNG."""
    def render(summary):
        return generate_summary_image(summary, image_path)
    return render


def get_query_service(db: Session = Depends(get_db)) -> CountryQueryService:
    return CountryQueryService(db)


def get_orchestrator(
    db: Session = Depends(get_db),
    gateway=Depends(get_gateway),
    renderer=Depends(get_renderer),
) -> RefreshOrchestrator:
    return RefreshOrchestrator(db, gateway, renderer)


# ============= Exception Handlers =============

async def country_api_error_handler(request: Request, exc: CountryApiError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    details = {}
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"] if part not in ("query", "path", "body"))
        details[field or "request"] = error["msg"]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Validation failed", "details": details},
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        return JSONResponse(status_code=404, content={"error": "Endpoint not found"})
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


# ============= Endpoints =============
# Specific /countries/* routes must be registered before /countries/{name}

def register_routes(app: FastAPI) -> None:

    @app.get("/")
    async def root():
        """Root endpoint with API information."""
        return {
            "status": "ok",
            "message": f"Welcome to {settings.APP_NAME}",
            "version": settings.APP_VERSION,
            "endpoints": {
                "POST /countries/refresh": "Fetch and cache country data",
                "GET /countries": "Get all countries (supports filters and sorting)",
                "GET /countries/image": "Get summary image",
                "POST /countries/image/refresh": "Regenerate summary image from the database",
                "GET /countries/{name}": "Get specific country by name",
                "DELETE /countries/{name}": "Delete a country",
                "GET /status": "Get total countries and last refresh timestamp",
                "/docs": "Interactive API documentation"
            }
        }

    @app.get("/status", response_model=StatusResponse)
    def get_status(service: CountryQueryService = Depends(get_query_service)):
        """Get total number of countries and last refresh timestamp."""
        total, last_refresh = service.status()
        return StatusResponse(total_countries=total, last_refreshed_at=last_refresh)

    @app.post(
        "/countries/refresh",
        response_model=RefreshResponse,
        responses={503: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    )
    async def refresh_countries(orchestrator: RefreshOrchestrator = Depends(get_orchestrator)):
        """Fetch all countries and exchange rates, then cache them in database."""
        result = await orchestrator.refresh()
        return RefreshResponse(
            message="Refresh successful",
            total_updated_or_inserted=result.total_updated_or_inserted,
            last_refreshed_at=result.last_refreshed_at,
        )

    @app.get("/countries/image", responses={404: {"model": ErrorResponse}})
    async def get_summary_image(image_path: str = Depends(get_summary_image_path)):
        """Serve the generated summary image."""
        path = get_image_path(image_path)
        if not path:
            raise NotFound("Summary image not found")

        return FileResponse(path, media_type="image/png", filename=settings.IMAGE_FILE_NAME)

    @app.post(
        "/countries/image/refresh",
        response_model=ImageRefreshResponse,
        responses={500: {"model": ErrorResponse}},
    )
    async def refresh_summary_image(
        db: Session = Depends(get_db),
        renderer=Depends(get_renderer),
    ):
        """Regenerate the summary image from database contents only."""
        path = await regenerate_summary_image(db, renderer)
        return ImageRefreshResponse(message="Image regenerated", path=path)

    @app.get(
        "/countries",
        response_model=List[CountryResponse],
        responses={400: {"model": ValidationErrorResponse}},
    )
    def get_countries(
        region: Optional[str] = Query(None, description="Filter by region (e.g., Africa, Europe)"),
        currency: Optional[str] = Query(None, description="Filter by currency code (e.g., NGN, USD)"),
        sort: Optional[CountrySort] = Query(None, description="Sort order: gdp_desc, gdp_asc"),
        service: CountryQueryService = Depends(get_query_service),
    ):
        """Get all countries with optional exact-match filters and GDP sorting."""
        countries = service.list_countries(region=region, currency_code=currency, sort=sort)
        return [CountryResponse.model_validate(country) for country in countries]

    @app.delete(
        "/countries/{name}",
        response_model=MessageResponse,
        responses={404: {"model": ErrorResponse}, 400: {"model": ValidationErrorResponse}},
    )
    def delete_country(name: str, service: CountryQueryService = Depends(get_query_service)):
        """Delete a country by name (case-insensitive)."""
        service.delete_by_name(name)
        return MessageResponse(message="Country deleted")

    @app.get(
        "/countries/{name}",
        response_model=CountryResponse,
        responses={404: {"model": ErrorResponse}, 400: {"model": ValidationErrorResponse}},
    )
    def get_country(name: str, service: CountryQueryService = Depends(get_query_service)):
        """Get a specific country by name (case-insensitive)."""
        return CountryResponse.model_validate(service.get_by_name(name))


def create_app() -> FastAPI:
    setup_logging()
    validate_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="RESTful API for country data, currencies, and exchange rates"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(CountryApiError, country_api_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    register_routes(app)

    @app.on_event("startup")
    async def startup_event():
        init_db()
        logger.info("%s v%s starting", settings.APP_NAME, settings.APP_VERSION)
        logger.info("Docs: http://127.0.0.1:%s/docs", settings.PORT)

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("%s shutting down", settings.APP_NAME)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=False
    )
