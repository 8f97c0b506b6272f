import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.logging_config import configure_logging
from app.services.exceptions import LedgerError

settings = get_settings()
configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


def _prepare_database() -> None:
    """Create missing tables (when enabled) and ensure a manager account exists."""
    from app import models  # noqa: F401  registers every table on Base.metadata
    from app.database import Base, SessionLocal, engine
    from app.services.auth_service import ensure_default_manager

    if settings.AUTO_CREATE_TABLES:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables checked/created")

    db = SessionLocal()
    try:
        ensure_default_manager(db)
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    _prepare_database()
    logger.info("%s started", settings.APP_NAME)
    yield


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/api/health")
def health_check():
    return {"status": "ok", "app": settings.APP_NAME}


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

from app.routers import auth  # noqa: E402

app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])

# Users, groups, vendors
from app.routers import users  # noqa: E402

app.include_router(users.router, prefix="/api", tags=["Users"])

# Budget envelopes
from app.routers import responsibilities  # noqa: E402

app.include_router(
    responsibilities.router,
    prefix="/api/responsibilities",
    tags=["Responsibilities"],
)

# Expenses
from app.routers import expenses  # noqa: E402

app.include_router(
    expenses.router,
    prefix="/api/expenses",
    tags=["Expenses"],
)

# Notification templates and SMTP relay settings
from app.routers import notifications  # noqa: E402

app.include_router(
    notifications.router,
    prefix="/api/notifications",
    tags=["Notifications"],
)
