"""
Client settings loaded from the environment
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientSettings(BaseSettings):
    """Admin API client configuration (``SHOPIFY_*`` environment variables)"""

    model_config = SettingsConfigDict(env_prefix="SHOPIFY_", extra="ignore")

    api_version: str = Field(default="2024-01")
    # Receive timeout handed to the transport, in seconds
    http_timeout: float = Field(default=30.0, gt=0)
    scheme: str = Field(default="https")
    user_agent: str = Field(default="shopify-throttled/0.1.0")

    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    @field_validator("scheme")
    @classmethod
    def validate_scheme(cls, v: str) -> str:
        v = v.lower().rstrip(":/")
        if v not in ("http", "https"):
            raise ValueError("scheme must be 'http' or 'https'")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v not in ("console", "json"):
            raise ValueError("log_format must be 'console' or 'json'")
        return v
