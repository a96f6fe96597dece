import json
import os
from collections.abc import Mapping
from typing import Any, Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from resource_server.services.cache import CacheConfig

load_dotenv()


class Settings(BaseModel):
    # Cache Configuration
    cache_enabled: bool = Field(default=True, alias="CACHE_ENABLED")
    cache_strategy: Literal["time-based", "lru"] = Field(
        default="time-based", alias="CACHE_STRATEGY"
    )
    cache_max_size: int = Field(default=1000, gt=0, alias="CACHE_MAX_SIZE")
    cache_max_age: int = Field(default=300, gt=0, alias="CACHE_MAX_AGE")
    cache_resource_specific_ttl: dict[str, int] = Field(
        default_factory=dict, alias="CACHE_RESOURCE_SPECIFIC_TTL"
    )
    cache_single_flight: bool = Field(default=False, alias="CACHE_SINGLE_FLIGHT")

    # Audit Configuration
    audit_log_enabled: bool = Field(default=True, alias="AUDIT_LOG_ENABLED")
    audit_include_resource_state: bool = Field(
        default=False, alias="AUDIT_INCLUDE_RESOURCE_STATE"
    )

    # Upstream API Configuration
    maas_api_url: str = Field(default="http://localhost:5240/MAAS", alias="MAAS_API_URL")
    maas_request_timeout: float = Field(default=30.0, gt=0, alias="MAAS_REQUEST_TIMEOUT")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    model_config = {"populate_by_name": True}

    @field_validator("cache_resource_specific_ttl", mode="before")
    @classmethod
    def _parse_ttl_map(cls, value: Any) -> Any:
        if isinstance(value, str):
            return json.loads(value) if value.strip() else {}
        return value

    @field_validator("cache_resource_specific_ttl")
    @classmethod
    def _positive_ttls(cls, value: dict[str, int]) -> dict[str, int]:
        bad = [name for name, ttl in value.items() if ttl <= 0]
        if bad:
            raise ValueError(f"TTL must be positive for: {', '.join(bad)}")
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    def cache_config(self) -> CacheConfig:
        return CacheConfig(
            enabled=self.cache_enabled,
            strategy=self.cache_strategy,
            max_size=self.cache_max_size,
            max_age_seconds=self.cache_max_age,
            per_resource_ttl=dict(self.cache_resource_specific_ttl),
        )


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from environment variables (os.environ by default)."""
    source = os.environ if env is None else env
    return Settings.model_validate(
        {name: value for name, value in source.items() if name in _ALIASES}
    )


_ALIASES = {field.alias for field in Settings.model_fields.values() if field.alias}

global_settings = load_settings()
