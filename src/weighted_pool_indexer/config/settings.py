"""Configuration management for the pool indexer."""

from __future__ import annotations

import os
import tomllib
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, cast

from pydantic import AnyHttpUrl, BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..utils.constants import BALANCER_FACTORY_ADDRESS, DAI_ADDRESS, WETH_ADDRESS

DEFAULT_CONFIG_FILE = Path("config/indexer.toml")
CONFIG_FILE_ENV_VAR = "INDEXER_CONFIG_FILE"
NETWORK_ENV_VAR = "INDEXER_NETWORK"


class StorageBackend(str, Enum):
    """Supported entity store implementations."""

    MEMORY = "memory"
    SQLITE = "sqlite"


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
    base_section = cast(Dict[str, Any], data.get("default", {}))
    requested = os.getenv(NETWORK_ENV_VAR)
    if not requested:
        network_section = base_section.get("network")
        if isinstance(network_section, dict):
            requested = cast(Optional[str], network_section.get("name"))
        elif isinstance(network_section, str):
            requested = network_section
    requested = (requested or "mainnet").lower()

    if requested in data and requested != "default":
        merged = _deep_merge(base_section, cast(Dict[str, Any], data[requested]))
    elif base_section:
        merged = base_section
    else:
        merged = data
    network = dict(merged.get("network") or {})
    network["name"] = requested
    merged = {**merged, "network": network}
    return merged


def _load_toml_config() -> Tuple[Dict[str, Any], Optional[Path]]:
    path = _resolve_config_path()
    if not path.exists():
        return {}, None
    with path.open("rb") as handle:
        payload = tomllib.load(handle)
    if not isinstance(payload, dict):
        return {}, path
    merged = _select_profile(payload)
    network = dict(merged.get("network") or {})
    network.setdefault("config_file", str(path))
    merged["network"] = network
    return merged, path


def _normalize_address(value: str) -> str:
    address = str(value).strip().lower()
    if not address.startswith("0x") or len(address) != 42:
        raise ValueError(f"Invalid contract address: {value!r}")
    return address


class NetworkConfig(BaseModel):
    """Which deployment the indexer follows."""

    name: str = Field(default="mainnet")
    factory_address: str = Field(default=BALANCER_FACTORY_ADDRESS)
    config_file: Optional[Path] = None

    @field_validator("factory_address")
    @classmethod
    def _lowercase_factory(cls, value: str) -> str:
        return _normalize_address(value)


class ChainConfig(BaseModel):
    """JSON-RPC access used for ERC20 metadata reads."""

    rpc_url: AnyHttpUrl = Field(default="http://127.0.0.1:8545")
    fallback_urls: List[AnyHttpUrl] = Field(default_factory=list)
    request_timeout: float = Field(default=10.0, ge=1.0, le=60.0)
    max_attempts: int = Field(default=3, ge=1, le=10)
    metadata_cache_size: int = Field(default=4_096, ge=0)

    @field_validator("fallback_urls", mode="before")
    @classmethod
    def _unique_urls(cls, value: Iterable[Any]) -> List[Any]:
        if isinstance(value, str):
            value = [item.strip() for item in value.split(",") if item.strip()]
        seen: set[str] = set()
        unique: List[Any] = []
        for url in value:
            if str(url) not in seen:
                unique.append(url)
                seen.add(str(url))
        return unique


class NumeraireConfig(BaseModel):
    """Reference-currency tokens that only price from two-asset USD pools."""

    weth_address: str = Field(default=WETH_ADDRESS)
    dai_address: str = Field(default=DAI_ADDRESS)

    @field_validator("weth_address", "dai_address")
    @classmethod
    def _lowercase(cls, value: str) -> str:
        return _normalize_address(value)

    @property
    def addresses(self) -> frozenset[str]:
        return frozenset({self.weth_address, self.dai_address})


class StorageConfig(BaseModel):
    """Entity store selection."""

    backend: StorageBackend = Field(default=StorageBackend.SQLITE)
    database_path: Path = Field(default=Path("./indexer.sqlite3"))


class MonitoringConfig(BaseModel):
    """Logging configuration."""

    log_level: str = Field(default="INFO")
    structured: bool = True

    @field_validator("log_level")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.upper()


class AppConfig(BaseSettings):
    """Aggregated application configuration."""

    network: NetworkConfig = Field(default_factory=NetworkConfig)
    chain: ChainConfig = Field(default_factory=ChainConfig)
    numeraires: NumeraireConfig = Field(default_factory=NumeraireConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

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
            payload, _ = _load_toml_config()
            return payload

        # Runtime environment variables win over static config file defaults.
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            file_settings,
            file_secret_settings,
        )

    @model_validator(mode="after")
    def _check_numeraires(self) -> "AppConfig":
        if self.numeraires.weth_address == self.numeraires.dai_address:
            raise ValueError("weth_address and dai_address must differ")
        return self


@lru_cache(maxsize=1)
def get_app_config() -> AppConfig:
    """Create a cached application configuration object."""

    return AppConfig()


__all__ = [
    "AppConfig",
    "ChainConfig",
    "MonitoringConfig",
    "NetworkConfig",
    "NumeraireConfig",
    "StorageBackend",
    "StorageConfig",
    "get_app_config",
]
