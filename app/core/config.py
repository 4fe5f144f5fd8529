"""
Application settings.
Tenant connection strings come from a JSON file or, when TENANTS_SECRET_NAME
is set, from AWS Secrets Manager (see app.core.tenants).
"""
from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    # AWS
    AWS_REGION: str = "us-east-1"
    TENANTS_SECRET_NAME: Optional[str] = None  # e.g. hci-social/db-tenants

    # Tenant registry file source
    TENANTS_FILE: str = "db-tenants.json"
    TENANTS_EXAMPLE_FILE: str = "db-tenants.example.json"

    # Database
    AUTO_CREATE_TABLES: Optional[bool] = None  # defaults to DEBUG
    DB_POOL_PRE_PING: bool = True

    # Redis
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    SESSION_TTL: int = 86400  # 24 hours in seconds

    # Optional
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    PROJECT_NAME: str = "HCI Social Chat"
    CORS_ORIGINS: List[str] = ["*"]

    @property
    def use_secrets_manager(self) -> bool:
        return bool(self.TENANTS_SECRET_NAME)

    @property
    def create_tables(self) -> bool:
        if self.AUTO_CREATE_TABLES is None:
            return self.DEBUG
        return self.AUTO_CREATE_TABLES

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
