"""Google Gemini provider implementation."""

from typing import List, Optional

from langchain_google_genai import ChatGoogleGenerativeAI

from fluxion.assistant.providers.base import (
    BaseProvider,
    ModelInfo,
    ProviderConfig,
    ProviderType,
)
from fluxion.utils.logging import get_logger

logger = get_logger(__name__)


DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"

# Default models available from Google
DEFAULT_GEMINI_MODELS = [
    ModelInfo(
        id="gemini-2.0-flash",
        name="gemini-2.0-flash",
        display_name="Gemini 2.0 Flash",
        context_window=1048576,
        supports_tools=True,
        supports_streaming=True,
        supports_vision=True,
        max_output_tokens=8192,
    ),
    ModelInfo(
        id="gemini-2.5-flash",
        name="gemini-2.5-flash",
        display_name="Gemini 2.5 Flash",
        context_window=1048576,
        supports_tools=True,
        supports_streaming=True,
        supports_vision=True,
        max_output_tokens=65536,
    ),
    ModelInfo(
        id="gemini-2.5-pro",
        name="gemini-2.5-pro",
        display_name="Gemini 2.5 Pro",
        context_window=1048576,
        supports_tools=True,
        supports_streaming=True,
        supports_vision=True,
        max_output_tokens=65536,
    ),
]


class GeminiProvider(BaseProvider):
    """Provider for Google Gemini models."""

    provider_type = ProviderType.GEMINI

    def __init__(self, config: Optional[ProviderConfig] = None):
        if config is None:
            config = ProviderConfig(
                provider_type=ProviderType.GEMINI,
                api_key_env="GOOGLE_API_KEY",
                models=DEFAULT_GEMINI_MODELS,
                default_model=DEFAULT_GEMINI_MODEL,
                extra_kwargs={"temperature": 0, "max_output_tokens": 2048},
            )
        super().__init__(config)

    def get_chat_model(self, model_name: str, **kwargs) -> ChatGoogleGenerativeAI:
        """Get a Gemini chat model instance."""
        model_kwargs = {
            "model": model_name or self.config.default_model or DEFAULT_GEMINI_MODEL,
            **self.config.extra_kwargs,
            **kwargs,
        }

        if self.get_model_info(model_kwargs["model"]) is None:
            logger.warning("Model %s is not in the known Gemini model list", model_kwargs["model"])

        if self._api_key:
            model_kwargs["google_api_key"] = self._api_key

        logger.debug("Building Gemini chat model %s", model_kwargs["model"])
        return ChatGoogleGenerativeAI(**model_kwargs)

    def list_models(self) -> List[ModelInfo]:
        """List available Gemini models."""
        if self.config.models:
            return self.config.models
        return DEFAULT_GEMINI_MODELS
