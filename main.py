"""
HCI Social chat backend entry point.
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from app.chat.transport import ChatTransport
from app.core.config import settings
from app.core.database import TenantDatabases
from app.core.exceptions import (
    ChatError,
    InvalidParticipants,
    PersistenceUnavailable,
    UnknownTenant,
)
from app.core.middleware import SessionMiddleware
from app.router.endpoints import api_router
import logging
import uvicorn

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

CHAT_ERROR_STATUS = {
    UnknownTenant: status.HTTP_404_NOT_FOUND,
    InvalidParticipants: 422,
    PersistenceUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Starting application...")

    from app.session import init_redis, close_redis
    try:
        init_redis(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            db=settings.REDIS_DB,
        )
    except Exception as e:
        logger.error(f"Redis initialization failed: {e}")

    # Fails fast on a missing or malformed tenants configuration
    databases: TenantDatabases = app.state.tenant_databases
    tenant_ids = databases.tenant_ids()
    logger.info(f"Serving tenants: {tenant_ids}")
    if settings.create_tables:
        for tenant_id in tenant_ids:
            databases.get(tenant_id)

    yield

    logger.info("Shutting down...")
    databases.dispose()
    close_redis()


app = FastAPI(
    title=settings.PROJECT_NAME,
    version="2.0.0",
    lifespan=lifespan,
)

app.state.tenant_databases = TenantDatabases()
app.state.chat_transport = ChatTransport(app.state.tenant_databases)

# Session middleware
app.add_middleware(SessionMiddleware)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError):
    status_code = CHAT_ERROR_STATUS.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    if status_code >= 500:
        logger.error(f"{exc.code} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=status_code, content={"code": exc.code, "message": exc.message})


# Routes
app.include_router(api_router)


@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
