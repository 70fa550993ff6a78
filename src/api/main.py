"""
FastAPI application - Main entry point
"""

from dotenv import load_dotenv

load_dotenv()

import logging
import os
from datetime import datetime
from urllib.parse import parse_qs, urlparse

from fastapi import APIRouter, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from src.api.endpoints.agreements import agreements_api
from src.api.endpoints.auth import auth_api
from src.api.endpoints.financial_documents import financial_documents_api
from src.api.endpoints.properties import properties_api
from src.api.endpoints.property_owners import property_owners_api
from src.api.endpoints.requests import requests_api
from src.api.endpoints.telegram import router as telegram_router
from src.api.endpoints.users import roles_api, users_api
from src.api.responses import fail
from src.backoffice import dependencies, security
from src.backoffice.uploads import upload_root
from src.backoffice.validation import FormValidationError
from src.integrations.gemini.agreement_editor import AgreementEditor
from src.integrations.telegram.notifier import TelegramNotifier

SERVICE_NAME = "Nova Back-Office API"

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title=SERVICE_NAME,
    description="Properties, agreements with e-signatures, leads, invoices and the owner portal",
    version="1.0.0",
)

# CORS middleware
cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================================================
# DEPENDENCY INJECTION
# ============================================================================

# Use real Postgres/Redis when env is set, else the in-process fallbacks
if os.getenv("DATABASE_URL"):
    from src.database.postgres_real import PostgresDB

    postgres_db = PostgresDB(connection_string=os.environ["DATABASE_URL"])
else:
    from src.database.postgres import PostgresDB

    postgres_db = PostgresDB()

if os.getenv("REDIS_URL"):
    from src.database.redis_real import RedisCache

    redis_cache = RedisCache(url=os.environ["REDIS_URL"])
else:
    from src.database.redis import RedisCache

    redis_cache = RedisCache()

dependencies.postgres_db = postgres_db
dependencies.redis_cache = redis_cache
dependencies.telegram_notifier = TelegramNotifier()
dependencies.agreement_editor = AgreementEditor()

# ============================================================================
# ROUTERS
# ============================================================================

api_router = APIRouter()
api_router.include_router(auth_api, prefix="/auth")
api_router.include_router(users_api, prefix="/users")
api_router.include_router(roles_api, prefix="/roles")
api_router.include_router(properties_api, prefix="/properties")
api_router.include_router(agreements_api, prefix="/agreements")
api_router.include_router(requests_api, prefix="/requests")
api_router.include_router(financial_documents_api, prefix="/financial-documents")
api_router.include_router(property_owners_api, prefix="/property-owners")
api_router.include_router(telegram_router, prefix="/telegram")
app.include_router(api_router, prefix="/api")

app.mount("/uploads", StaticFiles(directory=str(upload_root()), check_dir=False), name="uploads")


# ============================================================================
# ERROR HANDLERS
# ============================================================================

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(status_code=exc.status_code, content=fail(message), headers=exc.headers)


@app.exception_handler(FormValidationError)
async def form_validation_handler(request: Request, exc: FormValidationError):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=fail(exc.message, error="validation_error", field_errors=exc.field_errors),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    field_errors = {".".join(str(p) for p in err.get("loc", ())[1:]) or "body": err.get("msg", "") for err in exc.errors()}
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=fail("Invalid request", error="validation_error", field_errors=field_errors),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s: %s", request.method, request.url.path, exc, exc_info=True)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=fail(str(exc) or "Internal server error"))


# ============================================================================
# HEALTH
# ============================================================================

@app.get("/", tags=["Health"])
async def root():
    """Health check endpoint."""
    return {"service": SERVICE_NAME, "status": "healthy", "timestamp": datetime.now().isoformat()}


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check including the cache connection."""
    return {
        "service": SERVICE_NAME,
        "status": "healthy",
        "cache": redis_cache.ping(),
        "timestamp": datetime.now().isoformat(),
    }


# ============================================================================
# STARTUP/SHUTDOWN EVENTS
# ============================================================================
@app.on_event("startup")
async def startup_event():
    """Initialize on startup"""
    logger.info("Starting %s...", SERVICE_NAME)

    # Log sanitized DB target details (no credentials) for connectivity debugging.
    db_url = os.getenv("DATABASE_URL", "")
    if db_url:
        try:
            parsed = urlparse(db_url)
            query = parse_qs(parsed.query or "")
            logger.info(
                "DATABASE_URL target: scheme=%s host=%s port=%s db=%s sslmode=%s",
                parsed.scheme,
                parsed.hostname,
                parsed.port or 5432,
                (parsed.path or "").lstrip("/"),
                (query.get("sslmode") or [""])[0],
            )
        except ValueError as e:
            logger.warning("Could not parse DATABASE_URL for startup logging: %s", e)
    else:
        logger.info("DATABASE_URL not set; using in-memory SQLite database")

    # Also seeds the permission catalogue
    postgres_db.create_tables()
    logger.info("Database tables initialized")

    admin_username = os.getenv("ADMIN_USERNAME", "").strip()
    admin_password = os.getenv("ADMIN_PASSWORD", "")
    if admin_username and admin_password:
        created = postgres_db.ensure_super_admin(admin_username, security.hash_password(admin_password))
        if created:
            logger.info("Initial super admin created: %s", admin_username)

    # Test Redis connection
    if redis_cache.ping():
        logger.info("Redis connection successful")
    else:
        logger.warning("Redis connection failed")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown"""
    logger.info("Shutting down %s...", SERVICE_NAME)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("src.api.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "4000")))
