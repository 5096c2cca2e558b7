from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from jewelbill.config import get_settings
from jewelbill.dependencies.services import get_supabase_client_cached
from jewelbill.api.responses import (
    error_response,
    service_error_response,
    validation_field_errors,
)
from jewelbill.services.exceptions import ServiceError

# Import routers directly from submodules
from jewelbill.api.ai import router as ai_router
from jewelbill.api.invoices import router as invoices_router
from jewelbill.api.loyalty import router as loyalty_router
from jewelbill.health import router as health_router


def configure_logging() -> None:
    """Ensure application logs use the INFO level by default."""
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )
    else:
        root_logger.setLevel(logging.INFO)

# Configure logging as soon as the module is loaded
configure_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manages application startup and shutdown events.
    """
    # --- Startup Logic ---
    settings = get_settings()

    settings_snapshot = settings.model_dump(
        exclude={"supabase_service_key", "google_api_key", "revalidate_secret"},
    )
    logger.info("Application settings on startup: %s", settings_snapshot)

    client = get_supabase_client_cached()
    logger.info("Application startup complete.")

    try:
        yield  # The application is now running
    finally:
        # --- Shutdown Logic ---
        logger.info("Closing Supabase client connection.")
        await client.close()
        logger.info("Application shutdown complete.")


# --- Application Setup ---

settings = get_settings()
app = FastAPI(
    title=settings.app_name,
    lifespan=lifespan,
    redirect_slashes=False,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Error Handlers ---

@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError):
    fields = validation_field_errors(exc)
    logger.info("Validation failed for %s: %s", request.url.path, fields)
    return error_response("Validation failed", 400, "VALIDATION_ERROR", fields=fields)


@app.exception_handler(ServiceError)
async def handle_service_error(request: Request, exc: ServiceError):
    return service_error_response(exc)


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s", request.url.path)
    return error_response("Internal server error", 500, "INTERNAL_ERROR")


# --- Include Routers ---

app.include_router(invoices_router, prefix="/api/v1/invoices")
app.include_router(loyalty_router, prefix="/api/v1/shops")
app.include_router(ai_router, prefix="/api/v1/ai")
app.include_router(health_router)
