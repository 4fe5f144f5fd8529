"""
Tenant registry - tenant id -> database connection string.

Loaded once per process from AWS Secrets Manager (when TENANTS_SECRET_NAME is
set) or from a JSON file, falling back to the example file. Any problem with
the source is fatal: the service cannot route a single request without it.
"""
import json
import logging
import os
import threading
from typing import Any, Dict, Optional

from app.core.config import settings
from app.core.exceptions import TenantConfigError

logger = logging.getLogger(__name__)

TenantsConfig = Dict[str, str]

_tenants_config: Optional[TenantsConfig] = None
_tenants_lock = threading.Lock()


def validate_tenants_config(parsed: Any) -> TenantsConfig:
    """Ensure the parsed source is a flat string -> string mapping."""
    if not isinstance(parsed, dict):
        raise TenantConfigError("Tenants configuration is invalid: expected a JSON object")
    for tenant_id, url in parsed.items():
        if not isinstance(tenant_id, str) or not isinstance(url, str):
            raise TenantConfigError(
                f"Tenants configuration is invalid: entry {tenant_id!r} must map to a connection string"
            )
    return dict(parsed)


def read_tenants_file(path: str, example_path: Optional[str] = None) -> str:
    """Read the tenants file, falling back to the example file."""
    for candidate in (path, example_path):
        if candidate and os.path.exists(candidate):
            with open(candidate, "r", encoding="utf-8") as fh:
                logger.info(f"Loading tenants configuration from {candidate}")
                return fh.read()
    raise TenantConfigError("Tenants configuration not found")


def load_tenants_config(
    path: Optional[str] = None,
    example_path: Optional[str] = None,
    secret_name: Optional[str] = None,
) -> TenantsConfig:
    """Load and validate the tenant map from a secret or a file. Not memoized."""
    if secret_name:
        from app.aws.secrets import get_secret

        try:
            parsed = get_secret(secret_name, region_name=settings.AWS_REGION)
        except Exception as e:
            raise TenantConfigError(f"Tenants secret {secret_name!r} could not be loaded: {e}") from e
        return validate_tenants_config(parsed)

    raw = read_tenants_file(path or settings.TENANTS_FILE, example_path)
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise TenantConfigError(f"Tenants configuration is not valid JSON: {e}") from e
    return validate_tenants_config(parsed)


def get_tenants_config() -> TenantsConfig:
    """Process-wide tenant map, loaded on first call."""
    global _tenants_config
    if _tenants_config is None:
        with _tenants_lock:
            if _tenants_config is None:
                _tenants_config = load_tenants_config(
                    path=settings.TENANTS_FILE,
                    example_path=settings.TENANTS_EXAMPLE_FILE,
                    secret_name=settings.TENANTS_SECRET_NAME if settings.use_secrets_manager else None,
                )
                logger.info(f"Tenants configured: {sorted(_tenants_config)}")
    return _tenants_config
