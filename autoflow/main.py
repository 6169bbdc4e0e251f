import logging
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from sqlmodel import Session

from autoflow.api import api_router
from autoflow.config import settings
from autoflow.database import engine, init_db
from autoflow.errors import AutoflowError
from autoflow.logger import setup_global_logger

setup_global_logger(settings.LOG_LEVEL)

logger = logging.getLogger(__name__)


def custom_generate_unique_id(route: APIRoute) -> str:
    if route.tags:
        return f"{route.tags[0]}-{route.name}"
    return route.name


if settings.SENTRY_DSN and settings.ENVIRONMENT != "local":
    sentry_sdk.init(dsn=str(settings.SENTRY_DSN), enable_tracing=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    with Session(engine) as session:
        init_db(session)
    yield


app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    generate_unique_id_function=custom_generate_unique_id,
    lifespan=lifespan,
)


@app.exception_handler(AutoflowError)
async def autoflow_exception_handler(request: Request, exc: AutoflowError):
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code} on {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.error_code} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(
            {"detail": exc.message, "error_code": exc.error_code, **exc.detail}
        ),
    )


# Log validation errors for debugging (locations only, inputs may hold secrets)
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    locations = [".".join(str(part) for part in e.get("loc", ())) for e in errors]
    logger.warning(f"Validation error for {request.url.path}: {locations}")
    return JSONResponse(status_code=422, content={"detail": jsonable_encoder(errors)})


@app.get("/health", tags=["health"])
def health() -> dict:
    return {"status": "healthy", "service": settings.PROJECT_NAME}


app.include_router(api_router, prefix=settings.API_V1_STR)
