import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from mktops.api.v1.analytics import router as analytics_router
from mktops.api.v1.auth import router as auth_router
from mktops.api.v1.changes import router as changes_router
from mktops.api.v1.comments import router as comments_router
from mktops.api.v1.demands import router as demands_router
from mktops.api.v1.logs import router as logs_router
from mktops.api.v1.me import router as me_router
from mktops.api.v1.permissions import router as permissions_router
from mktops.api.v1.registers import router as registers_router
from mktops.api.v1.settings import router as settings_router
from mktops.api.v1.users import router as users_router
from mktops.core.config import settings
from mktops.core.errors import (
    ConfigurationError,
    DemandValidationError,
    PermissionDenied,
    PersistenceError,
    RecordNotFound,
)
from mktops.db import session as db_session
from mktops.db.init_db import ensure_schema, seed_initial_data
from mktops.services.storage import StorageError

if not logging.getLogger().handlers:
    logging.basicConfig(level=logging.INFO)

logger = logging.getLogger("mktops")

app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Marketing Ops - demandas, cronometro de producao e indicadores",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

startup_state: dict[str, str | None] = {"status": "starting", "error": None}


def check_configuration() -> None:
    missing = settings.missing()
    if missing:
        raise ConfigurationError(f"Configuracao ausente: {', '.join(missing)}")
    try:
        with db_session.engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        raise ConfigurationError(f"Banco de dados inacessivel: {exc}") from exc


@app.on_event("startup")
def on_startup() -> None:
    try:
        check_configuration()
    except ConfigurationError as exc:
        startup_state.update(status="ERROR", error=str(exc))
        logger.error("Falha de configuracao: %s", exc)
        return
    ensure_schema(db_session.engine)
    seed_initial_data()
    startup_state.update(status="ok", error=None)
    if settings.ENV.lower() == "production":
        if settings.SECRET_KEY == "dev-secret-change-me":
            logger.warning("SECRET_KEY esta usando valor padrao em producao.")
        if settings.SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
            logger.warning("SQLALCHEMY_DATABASE_URI aponta para SQLite em producao.")


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    logger.warning("persistence error path=%s code=%s: %s", request.url.path, exc.code, exc.message)
    return JSONResponse(
        status_code=400 if exc.is_known else 500,
        content={"detail": exc.user_message, "code": exc.code},
    )


@app.exception_handler(DemandValidationError)
async def validation_error_handler(request: Request, exc: DemandValidationError):
    return JSONResponse(status_code=422, content={"detail": str(exc), "missing": exc.missing})


@app.exception_handler(PermissionDenied)
async def permission_denied_handler(request: Request, exc: PermissionDenied):
    return JSONResponse(status_code=403, content={"detail": exc.message})


@app.exception_handler(RecordNotFound)
async def not_found_handler(request: Request, exc: RecordNotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.warning("storage error path=%s: %s", request.url.path, exc)
    return JSONResponse(status_code=400, content={"detail": str(exc)})


app.include_router(auth_router, prefix="/api")
app.include_router(me_router, prefix="/api")
app.include_router(demands_router, prefix="/api")
app.include_router(comments_router, prefix="/api")
app.include_router(logs_router, prefix="/api")
app.include_router(registers_router, prefix="/api")
app.include_router(permissions_router, prefix="/api")
app.include_router(users_router, prefix="/api")
app.include_router(analytics_router, prefix="/api")
app.include_router(settings_router, prefix="/api")
app.include_router(changes_router, prefix="/api")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info(
        "request method=%s path=%s status=%s duration_ms=%.2f",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
    )
    return response


@app.get("/api/health")
def health():
    if startup_state["status"] == "ERROR":
        return JSONResponse(status_code=503, content=dict(startup_state))
    return {"status": "ok"}
