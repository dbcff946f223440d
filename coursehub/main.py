"""
Main FastAPI application entry point.
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from coursehub.core.config import settings
from coursehub.core.database import init_db, close_db
from coursehub.services.errors import ServiceError
from coursehub.api.auth import router as auth_router
from coursehub.api.profiles import router as profiles_router
from coursehub.api.courses import router as courses_router
from coursehub.api.modules import router as modules_router
from coursehub.api.lessons import router as lessons_router
from coursehub.api.quizzes import router as quizzes_router
from coursehub.api.enrollments import router as enrollments_router
from coursehub.api.progress import router as progress_router
from coursehub.api.certificates import router as certificates_router
from coursehub.api.groups import router as groups_router

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.APP_NAME}...")
    init_db()
    yield
    logger.info(f"Shutting down {settings.APP_NAME}...")
    close_db()


app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    docs_url=None if settings.is_production() else "/docs",
    redoc_url=None if settings.is_production() else "/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    content = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


@app.exception_handler(ServiceError)
async def service_exception_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"error": "Validation error", "details": jsonable_errors(exc)},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    return [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in exc.errors()]


@app.get("/health", tags=["Health"])
def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.get("/", tags=["Root"])
def root():
    return {"name": settings.APP_NAME, "version": settings.APP_VERSION, "api": settings.API_PREFIX}


prefix = settings.API_PREFIX
app.include_router(auth_router, prefix=f"{prefix}/auth", tags=["auth"])
app.include_router(profiles_router, prefix=f"{prefix}/profiles", tags=["profiles"])
app.include_router(courses_router, prefix=f"{prefix}/courses", tags=["courses"])
app.include_router(modules_router, prefix=f"{prefix}/modules", tags=["modules"])
app.include_router(lessons_router, prefix=f"{prefix}/lessons", tags=["lessons"])
app.include_router(quizzes_router, prefix=f"{prefix}/quizzes", tags=["quizzes"])
app.include_router(enrollments_router, prefix=f"{prefix}/enrollments", tags=["enrollments"])
app.include_router(progress_router, prefix=f"{prefix}/progress", tags=["progress"])
app.include_router(certificates_router, prefix=f"{prefix}/certificates", tags=["certificates"])
app.include_router(groups_router, prefix=f"{prefix}/groups", tags=["groups"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("coursehub.main:app", host="0.0.0.0", port=3001, log_level=settings.LOG_LEVEL.lower())
