"""
Fluxion Providers Package

This package provides a unified interface for accessing LLM providers.
Each provider wraps a specific LLM service; Fluxion ships Google Gemini.

Usage:
    from fluxion.assistant.providers import get_provider, get_model

    provider = get_provider("gemini")
    model = provider.get_chat_model("gemini-2.0-flash")

    # or directly, with settings from services.chat_app.providers.gemini
    model = get_model("gemini", "gemini-2.0-flash", {"extra_kwargs": {"temperature": 0}})
"""

from typing import Dict, Optional, Type

from fluxion.assistant.providers.base import (
    BaseProvider,
    ModelInfo,
    ProviderConfig,
    ProviderType,
)
from fluxion.utils.logging import get_logger

logger = get_logger(__name__)


# Provider registry - maps provider type to provider class
_PROVIDER_REGISTRY: Dict[ProviderType, Type[BaseProvider]] = {}

# Cached provider instances
_PROVIDER_INSTANCES: Dict[ProviderType, BaseProvider] = {}

_DEFAULT_API_KEY_ENV_BY_PROVIDER: Dict[ProviderType, str] = {
    ProviderType.GEMINI: "GOOGLE_API_KEY",
}


def _ensure_provider_config_api_key_env(
    provider_type: ProviderType,
    config: Optional[ProviderConfig],
) -> Optional[ProviderConfig]:
    """
    Fill missing api_key_env on custom ProviderConfig.

    Passing a custom config should not disable environment-based API key loading.
    """
    if config is None:
        return None
    if not getattr(config, "api_key_env", None):
        config.api_key_env = _DEFAULT_API_KEY_ENV_BY_PROVIDER.get(provider_type, "")
    return config


def register_provider(provider_type: ProviderType, provider_class: Type[BaseProvider]) -> None:
    """Register a provider class for a provider type."""
    _PROVIDER_REGISTRY[provider_type] = provider_class


def _ensure_providers_registered() -> None:
    """Lazily register all built-in providers."""
    if _PROVIDER_REGISTRY:
        return

    from fluxion.assistant.providers.gemini_provider import GeminiProvider

    register_provider(ProviderType.GEMINI, GeminiProvider)


def _to_provider_type(provider_type: str | ProviderType) -> ProviderType:
    if isinstance(provider_type, ProviderType):
        return provider_type
    name = provider_type.lower()
    if name == "google":
        return ProviderType.GEMINI
    try:
        return ProviderType(name)
    except ValueError:
        valid_types = ", ".join(t.value for t in ProviderType)
        message = f"Invalid provider type '{provider_type}'. Must be one of: {valid_types}"
        logger.error(message)
        raise ValueError(message)


def get_provider(
    provider_type: str | ProviderType,
    config: Optional[ProviderConfig] = None,
    use_cache: bool = True
) -> BaseProvider:
    """
    Get a provider instance by type.

    Args:
        provider_type: The provider type (string or ProviderType enum)
        config: Optional provider configuration. If not provided, uses defaults.
        use_cache: Whether to use cached provider instances. Default True.

    Returns:
        A provider instance

    Raises:
        ValueError: If the provider type is unknown
    """
    _ensure_providers_registered()
    provider_type = _to_provider_type(provider_type)

    if provider_type not in _PROVIDER_REGISTRY:
        raise ValueError(f"No provider registered for type: {provider_type}")

    config = _ensure_provider_config_api_key_env(provider_type, config)

    # Return cached instance if available and no custom config
    if use_cache and config is None and provider_type in _PROVIDER_INSTANCES:
        return _PROVIDER_INSTANCES[provider_type]

    provider_class = _PROVIDER_REGISTRY[provider_type]
    provider = provider_class(config)

    # Cache if using default config
    if use_cache and config is None:
        _PROVIDER_INSTANCES[provider_type] = provider

    return provider


def get_model(provider_type: str | ProviderType, model_name: str, provider_config: Optional[dict] = None, **kwargs):
    """
    Convenience function to get a chat model directly.

    Args:
        provider_type: The provider type
        model_name: The model name
        provider_config: Dict with optional base_url, default_model and extra_kwargs
        **kwargs: Additional model configuration

    Returns:
        A LangChain chat model instance
    """
    provider_type_enum = _to_provider_type(provider_type)
    provider_config = provider_config if isinstance(provider_config, dict) else {}

    if not provider_config:
        return get_provider(provider_type_enum).get_chat_model(model_name, **kwargs)

    config = ProviderConfig(
        provider_type=provider_type_enum,
        api_key_env=_DEFAULT_API_KEY_ENV_BY_PROVIDER.get(provider_type_enum, ""),
        base_url=provider_config.get("base_url"),
        default_model=provider_config.get("default_model"),
        extra_kwargs=dict(provider_config.get("extra_kwargs") or {}),
    )
    provider = get_provider(provider_type_enum, config)
    return provider.get_chat_model(model_name, **kwargs)


__all__ = [
    "BaseProvider",
    "ModelInfo",
    "ProviderConfig",
    "ProviderType",
    "get_provider",
    "get_model",
    "register_provider",
]
