from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.router import api_router
from app.config import get_settings
from app.core.database import close_db, init_db
from app.core.logging import configure_logging
from app.middleware import TelemetryMiddleware
from app.models.ab_test import ABTest, ABTestEvent, ABTestResult, ABTestVariant  # noqa: F401
from app.services.ab_testing import ABTestingError

settings = get_settings()

configure_logging()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("startup", app=settings.APP_NAME, environment=settings.ENVIRONMENT)
    await init_db()
    logger.info("database_initialized")
    yield
    # Shutdown
    await close_db()
    logger.info("shutdown_complete")


app = FastAPI(
    title=settings.APP_NAME,
    description="A/B test allocation, event tracking and significance scoring",
    version="0.1.0",
    docs_url=f"{settings.API_V1_PREFIX}/docs",
    redoc_url=f"{settings.API_V1_PREFIX}/redoc",
    lifespan=lifespan,
)

# CORS middleware
if settings.CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.add_middleware(TelemetryMiddleware)


@app.exception_handler(ABTestingError)
async def ab_testing_error_handler(request: Request, exc: ABTestingError):
    return JSONResponse(
        status_code=exc.status_code, content={"error": exc.error, "message": exc.message}
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'] if part != 'body')}: {err['msg']}"
        for err in errors
    )
    logger.warning("request_validation_failed", path=request.url.path, message=message)
    return JSONResponse(
        status_code=400,
        content={
            "error": "Validation failed",
            "message": message,
            "detail": jsonable_encoder(errors),
        },
    )


# Include routers
app.include_router(api_router, prefix=settings.API_V1_PREFIX)


@app.get("/")
async def root():
    return {
        "app": settings.APP_NAME,
        "version": "0.1.0",
        "environment": settings.ENVIRONMENT,
    }
