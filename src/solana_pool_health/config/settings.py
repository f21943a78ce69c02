"""Configuration management for the pool health finder."""

from __future__ import annotations

import math
import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, cast

from pydantic import AnyHttpUrl, BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_CONFIG_FILE = Path("config/app.toml")
CONFIG_FILE_ENV_VAR = "POOL_HEALTH_CONFIG_FILE"
PROFILE_ENV_VAR = "POOL_HEALTH_PROFILE"
DEFAULT_PROFILE = "default"

KNOWN_SOURCES = ("Raydium", "Orca", "MeteoraDynamic", "MeteoraDLMM")


def _resolve_config_path() -> Path:
    env_value = os.getenv(CONFIG_FILE_ENV_VAR)
    if env_value:
        candidate = Path(env_value)
        if not candidate.is_absolute():
            candidate = Path.cwd() / candidate
        return candidate
    return Path.cwd() / DEFAULT_CONFIG_FILE


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result: Dict[str, Any] = {**base}
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(cast(Dict[str, Any], result[key]), value)
        else:
            result[key] = value
    return result


def _select_profile(data: Dict[str, Any]) -> Dict[str, Any]:
    if not data:
        return {}
    base_section = cast(Dict[str, Any], data.get(DEFAULT_PROFILE, {}))
    requested = (os.getenv(PROFILE_ENV_VAR) or DEFAULT_PROFILE).lower()
    if requested != DEFAULT_PROFILE and isinstance(data.get(requested), dict):
        return _deep_merge(base_section, cast(Dict[str, Any], data[requested]))
    if base_section:
        return base_section
    # Files without profile tables are treated as a single flat profile.
    if any(isinstance(value, dict) for value in data.values()):
        return {
            key: value
            for key, value in data.items()
            if key in AppConfig.model_fields
        }
    return {}


def _load_toml_config() -> Tuple[Dict[str, Any], Optional[Path]]:
    path = _resolve_config_path()
    if not path.exists():
        return {}, None
    with path.open("rb") as handle:
        payload = tomllib.load(handle)
    if not isinstance(payload, dict):
        return {}, path
    return _select_profile(payload), path


class DataSourceConfig(BaseModel):
    """Endpoints and transport settings for the four pool listing providers."""

    raydium_base_url: AnyHttpUrl = Field(default="https://api-v3.raydium.io")
    raydium_pool_endpoint: str = Field(default="/pools/info/mint")
    raydium_page_size: int = Field(default=10, ge=1, le=1_000)
    raydium_max_pages: int = Field(default=1, ge=1, le=20)
    orca_base_url: AnyHttpUrl = Field(default="https://api.orca.so")
    orca_pool_endpoint: str = Field(default="/v2/solana/pools")
    orca_page_limit: int = Field(default=50, ge=1, le=1_000)
    meteora_dynamic_base_url: AnyHttpUrl = Field(default="https://amm-v2.meteora.ag")
    meteora_dynamic_pool_endpoint: str = Field(default="/pools/search")
    meteora_dynamic_page_size: int = Field(default=10, ge=1, le=1_000)
    dlmm_base_url: AnyHttpUrl = Field(default="https://dlmm-api.meteora.ag")
    dlmm_pool_endpoint: str = Field(default="/pair/all_by_groups")
    dlmm_page_limit: int = Field(default=10, ge=1, le=1_000)
    retry_attempts: int = Field(default=1, ge=1, le=5)
    user_agent: str = Field(default="solana-pool-health/1.0")

    @field_validator(
        "raydium_pool_endpoint",
        "orca_pool_endpoint",
        "meteora_dynamic_pool_endpoint",
        "dlmm_pool_endpoint",
    )
    @classmethod
    def _leading_slash(cls, value: str) -> str:
        value = value.strip()
        if value and not value.startswith("/"):
            value = "/" + value
        return value


class AggregationConfig(BaseModel):
    """Controls for the concurrent fan-out across sources."""

    per_source_timeout: float = Field(default=20.0, gt=0.0, le=300.0)
    enabled_sources: List[str] = Field(default_factory=lambda: list(KNOWN_SOURCES))

    @field_validator("enabled_sources", mode="before")
    @classmethod
    def _split_sources(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("enabled_sources")
    @classmethod
    def _known_sources(cls, value: List[str]) -> List[str]:
        unknown = [item for item in value if item not in KNOWN_SOURCES]
        if unknown:
            raise ValueError(f"Unknown pool sources: {', '.join(unknown)}")
        return list(dict.fromkeys(value))


class ScoringConfig(BaseModel):
    """Weights of the composite health score."""

    liquidity_weight: float = Field(default=0.45, ge=0.0, le=1.0)
    volume_weight: float = Field(default=0.45, ge=0.0, le=1.0)
    fee_weight: float = Field(default=0.10, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _weights_sum_to_one(self) -> "ScoringConfig":
        total = self.liquidity_weight + self.volume_weight + self.fee_weight
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            raise ValueError(f"Scoring weights must sum to 1.0 (got {total:.6f})")
        return self


class MonitoringConfig(BaseModel):
    """Logging configuration."""

    log_level: str = Field(default="INFO")
    json_logs: bool = True

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.strip().upper() or "INFO"


class AppConfig(BaseSettings):
    """Aggregated application configuration."""

    data_sources: DataSourceConfig = Field(default_factory=DataSourceConfig)
    aggregation: AggregationConfig = Field(default_factory=AggregationConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    config_file: Optional[Path] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        def file_settings(_: Optional[BaseSettings] = None) -> Dict[str, Any]:
            payload, path = _load_toml_config()
            if path is not None:
                payload = {**payload, "config_file": str(path)}
            return payload

        # Runtime environment variables win over static config file defaults.
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            file_settings,
            file_secret_settings,
        )


@lru_cache(maxsize=1)
def get_app_config() -> AppConfig:
    """Create a cached application configuration object."""

    return AppConfig()


__all__ = [
    "AggregationConfig",
    "AppConfig",
    "DataSourceConfig",
    "KNOWN_SOURCES",
    "MonitoringConfig",
    "ScoringConfig",
    "get_app_config",
]
