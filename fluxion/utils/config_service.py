"""
ConfigService - Loads and validates the deployment configuration.

Configuration is a single YAML file merged over built-in defaults:
- Static settings (service endpoints, models, retrieval parameters)
- Validation of the values the app depends on at startup
- Resolution of embedding class names to LangChain classes

Secrets are not part of this file; see ``fluxion.utils.env.read_secret``.
"""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from fluxion.utils.logging import get_logger

logger = get_logger(__name__)

CONFIG_PATH_ENV = "FLUXION_CONFIG"
DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "configs" / "config.yaml"

DEFAULT_CONFIG: Dict[str, Any] = {
    "name": "fluxion",
    "global": {
        "verbosity": 3,
    },
    "services": {
        "postgres": {
            "host": "localhost",
            "port": 5432,
            "database": "postgres",
            "user": "postgres",
            "pool": {
                "min_connections": 1,
                "max_connections": 10,
            },
        },
        "chat_app": {
            "host": "0.0.0.0",
            "port": 7861,
            "default_provider": "gemini",
            "default_model": "gemini-2.0-flash",
            "recursion_limit": 25,
            "max_upload_mb": 20,
            "providers": {
                "gemini": {
                    "temperature": 0,
                    "max_output_tokens": 2048,
                },
            },
            "auth": {
                "enabled": True,
                "audience": "authenticated",
                "anonymous_user_id": "00000000-0000-0000-0000-000000000000",
            },
        },
        "web_search": {
            "location": "United States",
            "hl": "en",
            "gl": "us",
            "max_results": 5,
            "timeout": 15,
        },
    },
    "data_manager": {
        "embedding_name": "HuggingFaceEndpointEmbeddings",
        "embedding_class_map": {
            "HuggingFaceEndpointEmbeddings": {
                "class": "HuggingFaceEndpointEmbeddings",
                "kwargs": {"model": "sentence-transformers/all-MiniLM-L6-v2"},
            },
            "HuggingFaceEmbeddings": {
                "class": "HuggingFaceEmbeddings",
                "kwargs": {"model_name": "sentence-transformers/all-MiniLM-L6-v2"},
            },
        },
        "table_name": "documents",
        "query_name": "match_documents",
        "chunk_size": 256,
        "chunk_overlap": 20,
        "num_documents_to_retrieve": 5,
    },
}


@dataclass
class StaticConfig:
    """Deploy-time configuration (immutable at runtime)."""

    deployment_name: str
    source_path: Optional[str] = None

    global_config: Dict[str, Any] = field(default_factory=dict)
    services_config: Dict[str, Any] = field(default_factory=dict)
    data_manager_config: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "name": self.deployment_name,
            "global": self.global_config,
            "services": self.services_config,
            "data_manager": self.data_manager_config,
        }


class ConfigValidationError(Exception):
    """Raised when config validation fails."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


class ConfigService:
    """
    Service for loading the YAML configuration.

    The static config is cached in memory after the first load.

    Example:
        >>> service = ConfigService("configs/config.yaml")
        >>> static = service.get_static_config()
        >>> static.services_config["chat_app"]["default_model"]
        'gemini-2.0-flash'
    """

    def __init__(self, config_path: Optional[str | Path] = None, *, config: Optional[Dict[str, Any]] = None):
        """
        Initialize ConfigService.

        Args:
            config_path: YAML file to load. Defaults to $FLUXION_CONFIG, then
                the packaged configs/config.yaml.
            config: Already-parsed config dict (takes precedence over a path)
        """
        if config_path is None:
            config_path = os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH
        self._config_path = Path(config_path)
        self._raw_override = config
        self._static_cache: Optional[StaticConfig] = None

    def _load_yaml(self) -> Dict[str, Any]:
        if self._raw_override is not None:
            return self._raw_override
        if not self._config_path.exists():
            logger.warning("Config file %s not found; using built-in defaults", self._config_path)
            return {}
        with open(self._config_path, "r") as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ConfigValidationError("config", f"{self._config_path} must contain a mapping at the top level")
        return loaded

    def get_static_config(self, *, force_reload: bool = False) -> StaticConfig:
        """Return the merged and validated static config."""
        if self._static_cache is not None and not force_reload:
            return self._static_cache

        merged = _deep_merge(DEFAULT_CONFIG, self._load_yaml())
        self._validate(merged)

        self._static_cache = StaticConfig(
            deployment_name=merged.get("name") or "fluxion",
            source_path=None if self._raw_override is not None else str(self._config_path),
            global_config=merged.get("global") or {},
            services_config=merged.get("services") or {},
            data_manager_config=merged.get("data_manager") or {},
        )
        logger.debug("Loaded static config '%s'", self._static_cache.deployment_name)
        return self._static_cache

    @staticmethod
    def _validate(config: Dict[str, Any]) -> None:
        services = config.get("services") or {}
        chat_cfg = services.get("chat_app") or {}
        dm_cfg = config.get("data_manager") or {}

        verbosity = (config.get("global") or {}).get("verbosity", 3)
        if not isinstance(verbosity, int) or not 0 <= verbosity <= 4:
            raise ConfigValidationError("global.verbosity", "must be an integer between 0 and 4")

        if not chat_cfg.get("default_provider"):
            raise ConfigValidationError("services.chat_app.default_provider", "is required")
        if not chat_cfg.get("default_model"):
            raise ConfigValidationError("services.chat_app.default_model", "is required")

        embedding_name = dm_cfg.get("embedding_name")
        class_map = dm_cfg.get("embedding_class_map") or {}
        if embedding_name not in class_map:
            raise ConfigValidationError(
                "data_manager.embedding_name",
                f"'{embedding_name}' is not defined in embedding_class_map ({', '.join(class_map) or 'empty'})",
            )

        chunk_size = dm_cfg.get("chunk_size")
        chunk_overlap = dm_cfg.get("chunk_overlap")
        if not isinstance(chunk_size, int) or chunk_size <= 0:
            raise ConfigValidationError("data_manager.chunk_size", "must be a positive integer")
        if not isinstance(chunk_overlap, int) or chunk_overlap < 0 or chunk_overlap >= chunk_size:
            raise ConfigValidationError("data_manager.chunk_overlap", "must be >= 0 and smaller than chunk_size")

        k = dm_cfg.get("num_documents_to_retrieve")
        if not isinstance(k, int) or k <= 0:
            raise ConfigValidationError("data_manager.num_documents_to_retrieve", "must be a positive integer")

    @staticmethod
    def _resolve_embedding_classes(embedding_class_map: Dict[str, Any]) -> Dict[str, Any]:
        """
        Resolve known embedding class names to callables.

        Currently supports: HuggingFaceEndpointEmbeddings, HuggingFaceEmbeddings.
        """
        if not embedding_class_map:
            return {}

        from langchain_huggingface import HuggingFaceEmbeddings, HuggingFaceEndpointEmbeddings

        EMBEDDING_MAPPING = {
            "HuggingFaceEndpointEmbeddings": HuggingFaceEndpointEmbeddings,
            "HuggingFaceEmbeddings": HuggingFaceEmbeddings,
        }

        resolved: Dict[str, Any] = {}
        for name, cfg in embedding_class_map.items():
            entry = dict(cfg or {})
            cls_name = entry.get("class")
            if isinstance(cls_name, str) and cls_name in EMBEDDING_MAPPING:
                entry["class"] = EMBEDDING_MAPPING[cls_name]
            elif cls_name is None and name in EMBEDDING_MAPPING:
                entry["class"] = EMBEDDING_MAPPING[name]
            resolved[name] = entry
        return resolved

    def get_embedding_class_map(self, *, resolved: bool = False) -> Dict[str, Any]:
        """
        Return embedding_class_map from static config.

        Args:
            resolved: If True, map known class names to callables.
        """
        static = self.get_static_config()
        embedding_class_map = static.data_manager_config.get("embedding_class_map", {}) or {}
        if resolved:
            return self._resolve_embedding_classes(embedding_class_map)
        return embedding_class_map
