"""
FastAPI application for Hostel Finder Service
"""
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.routes import (
    admin, auth, favorites, hostels, media, notifications, preferences, realtime, reviews,
)
from .api.routes import map as map_routes
from .config import settings
from .container import build_container
from .errors import (
    AuthError, AuthErrorKind, ConfigurationError, FetchError, FetchErrorKind,
    GeolocationError, HostelFinderError, MalformedRecordError, MutationError,
    NotFoundError, PermissionDeniedError, UploadError, ValidationError,
)
from .schemas import ErrorResponse

# Configure logging
logging.basicConfig(
    level=logging.INFO if not settings.DEBUG else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    logger.info("Starting Hostel Finder Service...")

    container = getattr(app.state, "container", None)
    if container is None:
        settings.require_credentials()
        container = build_container()
        app.state.container = container

    await container.start()
    logger.info(f"Hostel Finder Service started successfully on port {settings.PORT}")

    yield

    # Shutdown
    logger.info("Shutting down Hostel Finder Service...")
    await container.stop()
    logger.info("Hostel Finder Service shut down successfully")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="UCC Hostel Finder - filtered, cached and paginated hostel discovery",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth.router)
app.include_router(auth.users_router)
app.include_router(hostels.router)
app.include_router(reviews.router)
app.include_router(favorites.router)
app.include_router(preferences.router)
app.include_router(notifications.router)
app.include_router(media.router)
app.include_router(map_routes.router)
app.include_router(admin.router)
app.include_router(realtime.router)


AUTH_STATUS = {
    AuthErrorKind.TOO_MANY_REQUESTS: status.HTTP_429_TOO_MANY_REQUESTS,
    AuthErrorKind.EMAIL_ALREADY_IN_USE: status.HTTP_409_CONFLICT,
    AuthErrorKind.INVALID_EMAIL: status.HTTP_400_BAD_REQUEST,
    AuthErrorKind.WEAK_PASSWORD: status.HTTP_400_BAD_REQUEST,
}

ERROR_STATUS = (
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (UploadError, status.HTTP_400_BAD_REQUEST),
    (GeolocationError, status.HTTP_400_BAD_REQUEST),
    (MutationError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (MalformedRecordError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (ConfigurationError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def status_for(exc: HostelFinderError) -> int:
    """HTTP status for a domain error"""
    if isinstance(exc, AuthError):
        return AUTH_STATUS.get(exc.kind, status.HTTP_401_UNAUTHORIZED)
    if isinstance(exc, FetchError):
        if exc.kind == FetchErrorKind.TIMEOUT:
            return status.HTTP_504_GATEWAY_TIMEOUT
        if exc.kind == FetchErrorKind.INVALID_CURSOR:
            return status.HTTP_400_BAD_REQUEST
        return status.HTTP_503_SERVICE_UNAVAILABLE
    for error_type, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@app.exception_handler(HostelFinderError)
async def hostel_finder_error_handler(request: Request, exc: HostelFinderError):
    code = status_for(exc)
    if code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    headers = {"WWW-Authenticate": "Bearer"} if code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(
        status_code=code,
        content=ErrorResponse.from_exception(exc).model_dump(),
        headers=headers,
    )


# Health check endpoint
@app.get("/", tags=["Health"])
async def root():
    """Health check endpoint"""
    return {
        "service": settings.APP_NAME,
        "status": "healthy",
        "version": settings.APP_VERSION
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "hostel_service.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
