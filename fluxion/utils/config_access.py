"""
Config access helpers backed by a process-wide ConfigService.
"""

from typing import Any, Dict, Optional

from fluxion.utils.config_service import ConfigService

_config_service: Optional[ConfigService] = None


class ConfigNotReadyError(RuntimeError):
    pass


def set_config_service(service: Optional[ConfigService]) -> None:
    """Install the ConfigService used by the helpers below (None resets it)."""
    global _config_service
    _config_service = service


def get_config_service() -> ConfigService:
    global _config_service
    if _config_service is None:
        _config_service = ConfigService()
    return _config_service


def get_static_config():
    cfg = get_config_service().get_static_config()
    if cfg is None:
        raise ConfigNotReadyError("Static config could not be loaded.")
    return cfg


def get_global_config() -> Dict[str, Any]:
    return get_static_config().global_config or {}


def get_services_config() -> Dict[str, Any]:
    return get_static_config().services_config or {}


def get_data_manager_config(*, resolve_embeddings: bool = False) -> Dict[str, Any]:
    """
    Return the data_manager config.

    Set resolve_embeddings=True to map embedding_class_map 'class' entries
    from string names to actual callables using ConfigService.
    """
    data_manager = dict(get_static_config().data_manager_config or {})
    if resolve_embeddings:
        resolved_map = get_config_service().get_embedding_class_map(resolved=True)
        if resolved_map:
            data_manager["embedding_class_map"] = resolved_map
    return data_manager


def get_full_config(*, resolve_embeddings: bool = False) -> Dict[str, Any]:
    """
    Return the full merged config.

    Set resolve_embeddings=True to map embedding_class_map 'class' entries
    from string names to actual callables using ConfigService.
    """
    static = get_static_config()
    return {
        "name": static.deployment_name,
        "global": static.global_config,
        "services": static.services_config,
        "data_manager": get_data_manager_config(resolve_embeddings=resolve_embeddings),
    }
