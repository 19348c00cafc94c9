"""Base types shared by all LLM providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from fluxion.utils.env import read_secret


class ProviderType(str, Enum):
    GEMINI = "gemini"


@dataclass
class ModelInfo:
    id: str
    name: str
    display_name: str = ""
    context_window: Optional[int] = None
    supports_tools: bool = True
    supports_streaming: bool = True
    supports_vision: bool = False
    max_output_tokens: Optional[int] = None


@dataclass
class ProviderConfig:
    provider_type: ProviderType
    api_key_env: str = ""
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    models: List[ModelInfo] = field(default_factory=list)
    default_model: Optional[str] = None
    extra_kwargs: Dict[str, Any] = field(default_factory=dict)


class BaseProvider(ABC):
    """Wraps one LLM service and builds LangChain chat models for it."""

    provider_type: ProviderType

    def __init__(self, config: ProviderConfig):
        self.config = config
        self._api_key = config.api_key or (read_secret(config.api_key_env) if config.api_key_env else None)

    @abstractmethod
    def get_chat_model(self, model_name: str, **kwargs):
        """Return a LangChain chat model instance."""

    @abstractmethod
    def list_models(self) -> List[ModelInfo]:
        """List the models this provider offers."""

    def get_model_info(self, model_name: str) -> Optional[ModelInfo]:
        for model in self.list_models():
            if model.id == model_name or model.name == model_name:
                return model
        return None
