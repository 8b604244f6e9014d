"""
Catalog - Configuration.

============================================================
CATALOG SETTINGS
============================================================

Configuration can be loaded from:
- Default values
- Environment variables (a .env file is honoured)
- YAML config file

Environment variables:
- CATALOG_DATABASE_URL (falls back to DATABASE_URL)
- CATALOG_PAGE_SIZE
- CATALOG_POOL_SIZE
- CATALOG_MAX_OVERFLOW
- CATALOG_POOL_TIMEOUT
- CATALOG_POOL_RECYCLE
- CATALOG_ECHO_SQL
- CATALOG_ID_STRATEGY
- CATALOG_CASCADE_DELETE
- CATALOG_REGISTRY_PATH

============================================================
"""

import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union
import logging

import yaml

from core.exceptions import CatalogConfigurationError
from database.engine import get_database_url

from .mutation import ID_STRATEGIES, ID_STRATEGY_MAX_PLUS_ONE
from .pagination import DEFAULT_PAGE_SIZE


logger = logging.getLogger(__name__)


_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_bool(key: str, raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    text = str(raw).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise CatalogConfigurationError(key, f"not a boolean: {raw!r}")


def _parse_int(key: str, raw: Any) -> int:
    if isinstance(raw, bool):
        raise CatalogConfigurationError(key, f"not an integer: {raw!r}")
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise CatalogConfigurationError(key, f"not an integer: {raw!r}") from None


# =============================================================
# CATALOG CONFIG
# =============================================================


@dataclass
class CatalogConfig:
    """Settings of one catalog store."""

    database_url: str = ""
    page_size: int = DEFAULT_PAGE_SIZE

    # Engine pool (ignored for SQLite)
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    echo: bool = False

    id_strategy: str = ID_STRATEGY_MAX_PLUS_ONE
    cascade_delete: bool = True
    registry_path: Optional[str] = None

    def validate(self) -> "CatalogConfig":
        """
        Check every setting.

        Raises:
            CatalogConfigurationError: On the first invalid setting
        """
        if self.page_size < 1:
            raise CatalogConfigurationError("page_size", "must be >= 1")
        for key in ("pool_size", "max_overflow", "pool_timeout", "pool_recycle"):
            if getattr(self, key) < 0:
                raise CatalogConfigurationError(key, "must be >= 0")
        if self.id_strategy not in ID_STRATEGIES:
            raise CatalogConfigurationError("id_strategy", f"must be one of {', '.join(ID_STRATEGIES)}")
        return self

    @classmethod
    def from_env(cls) -> "CatalogConfig":
        """Load configuration from environment variables."""
        config = cls(database_url=get_database_url())

        if os.getenv("CATALOG_PAGE_SIZE"):
            config.page_size = _parse_int("page_size", os.getenv("CATALOG_PAGE_SIZE"))
        if os.getenv("CATALOG_POOL_SIZE"):
            config.pool_size = _parse_int("pool_size", os.getenv("CATALOG_POOL_SIZE"))
        if os.getenv("CATALOG_MAX_OVERFLOW"):
            config.max_overflow = _parse_int("max_overflow", os.getenv("CATALOG_MAX_OVERFLOW"))
        if os.getenv("CATALOG_POOL_TIMEOUT"):
            config.pool_timeout = _parse_int("pool_timeout", os.getenv("CATALOG_POOL_TIMEOUT"))
        if os.getenv("CATALOG_POOL_RECYCLE"):
            config.pool_recycle = _parse_int("pool_recycle", os.getenv("CATALOG_POOL_RECYCLE"))
        if os.getenv("CATALOG_ECHO_SQL"):
            config.echo = _parse_bool("echo", os.getenv("CATALOG_ECHO_SQL"))
        if os.getenv("CATALOG_ID_STRATEGY"):
            config.id_strategy = os.getenv("CATALOG_ID_STRATEGY").strip().lower()
        if os.getenv("CATALOG_CASCADE_DELETE"):
            config.cascade_delete = _parse_bool("cascade_delete", os.getenv("CATALOG_CASCADE_DELETE"))
        if os.getenv("CATALOG_REGISTRY_PATH"):
            config.registry_path = os.getenv("CATALOG_REGISTRY_PATH")

        return config.validate()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CatalogConfig":
        """
        Build configuration from a mapping. Unknown keys are ignored
        with a warning; a missing database_url falls back to the
        environment.
        """
        known = {f.name for f in fields(cls)}
        for key in data:
            if key not in known:
                logger.warning(f"Ignoring unknown catalog setting: {key}")

        config = cls(database_url=data.get("database_url") or get_database_url())
        for key in ("page_size", "pool_size", "max_overflow", "pool_timeout", "pool_recycle"):
            if data.get(key) is not None:
                setattr(config, key, _parse_int(key, data[key]))
        for key in ("echo", "cascade_delete"):
            if data.get(key) is not None:
                setattr(config, key, _parse_bool(key, data[key]))
        if data.get("id_strategy"):
            config.id_strategy = str(data["id_strategy"]).strip().lower()
        if data.get("registry_path"):
            config.registry_path = str(data["registry_path"])

        return config.validate()

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "CatalogConfig":
        """
        Load configuration from YAML file.

        Settings live at the top level or under a "catalog" key.

        Raises:
            CatalogConfigurationError: If the file is unreadable or invalid
        """
        try:
            with open(path, 'r') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise CatalogConfigurationError("config_path", f"cannot load {path}: {e}") from e

        if not isinstance(data, dict):
            raise CatalogConfigurationError("config_path", f"{path} is not a mapping")
        if isinstance(data.get("catalog"), dict):
            data = data["catalog"]

        logger.info(f"Loaded catalog config from {path}")
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary. Credentials in the URL are masked."""
        data = asdict(self)
        if "@" in self.database_url:
            scheme, _, rest = self.database_url.partition("://")
            data["database_url"] = f"{scheme}://***@{rest.split('@')[-1]}"
        return data


# =============================================================
# GLOBAL CONFIG SINGLETON
# =============================================================


_default_config: Optional[CatalogConfig] = None


def get_config() -> CatalogConfig:
    """Get the global catalog configuration."""
    global _default_config
    if _default_config is None:
        _default_config = CatalogConfig.from_env()
    return _default_config


def set_config(config: Optional[CatalogConfig]) -> None:
    """Set the global catalog configuration."""
    global _default_config
    _default_config = config


__all__ = [
    "CatalogConfig",
    "get_config",
    "set_config",
]
