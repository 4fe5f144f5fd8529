"""
Per-tenant database access.

Every tenant has its own database. A TenantClient (engine + session factory)
is built lazily on first use and kept for the life of the process.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Generator, List, Optional

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from app.core.config import settings
from app.core.exceptions import PersistenceUnavailable, UnknownTenant
from app.core.tenants import TenantsConfig, get_tenants_config

logger = logging.getLogger(__name__)

Base = declarative_base()

SQLITE_BUSY_TIMEOUT = 30  # seconds


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str) -> Engine:
    """Create an engine for a tenant connection string."""
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT},
        )
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine
    return create_engine(url, pool_pre_ping=settings.DB_POOL_PRE_PING)


class TenantClient:
    """Engine and session factory for one tenant database."""

    def __init__(self, tenant_id: str, url: str, create_tables: bool = False):
        self.tenant_id = tenant_id
        self.engine = build_engine(url)
        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        if create_tables:
            self.create_tables()

    def create_tables(self) -> None:
        import app.model  # noqa: F401  (registers models on Base)

        Base.metadata.create_all(bind=self.engine)
        logger.info(f"Chat tables ensured for tenant {self.tenant_id}")

    def dispose(self) -> None:
        self.engine.dispose()


class TenantDatabases:
    """Memoized tenant id -> TenantClient registry."""

    def __init__(self, config: Optional[TenantsConfig] = None, create_tables: Optional[bool] = None):
        self._config = config
        self._create_tables = settings.create_tables if create_tables is None else create_tables
        self._clients: Dict[str, TenantClient] = {}
        self._lock = threading.Lock()

    @property
    def config(self) -> TenantsConfig:
        if self._config is None:
            self._config = get_tenants_config()
        return self._config

    def tenant_ids(self) -> List[str]:
        return sorted(self.config)

    def has_tenant(self, tenant_id: Optional[str]) -> bool:
        return bool(tenant_id) and tenant_id in self.config

    def get(self, tenant_id: str) -> TenantClient:
        """Return the tenant's client, building it on first use."""
        client = self._clients.get(tenant_id)
        if client is not None:
            return client
        url = self.config.get(tenant_id)
        if not url:
            raise UnknownTenant(tenant_id)
        with self._lock:
            client = self._clients.get(tenant_id)
            if client is None:
                client = TenantClient(tenant_id, url, create_tables=self._create_tables)
                self._clients[tenant_id] = client
                logger.info(f"Database client created for tenant {tenant_id}")
        return client

    @contextmanager
    def session(self, tenant_id: str) -> Generator[Session, None, None]:
        """Tenant-scoped session. Connection failures surface as PersistenceUnavailable."""
        db = self.get(tenant_id).SessionLocal()
        try:
            yield db
        except (OperationalError, InterfaceError) as e:
            db.rollback()
            logger.error(f"Database unavailable for tenant {tenant_id}: {e}")
            raise PersistenceUnavailable(f"Storage unavailable for tenant {tenant_id}") from e
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def dispose(self) -> None:
        with self._lock:
            for client in self._clients.values():
                client.dispose()
            self._clients.clear()


def get_tenant_databases(request: Request) -> TenantDatabases:
    return request.app.state.tenant_databases


def get_tenant_db(tenant_id: str, request: Request) -> Generator[Session, None, None]:
    """FastAPI dependency: session for the tenant in the path."""
    with get_tenant_databases(request).session(tenant_id) as db:
        yield db
