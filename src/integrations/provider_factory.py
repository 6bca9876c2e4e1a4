"""
LLM Provider Factory

Central registry for language-model providers and the priority chain the
pipeline stages consult.

Design Considerations:
- Registry-based provider lookup
- Lazy, cached provider instantiation
- Providers that cannot be constructed (missing API key, bad config) are
  skipped when building a chain instead of failing the whole service
"""

import logging
import os
from typing import Dict, List, Optional, Type

from dotenv import load_dotenv

from src.email_processing.analyzers.groq_provider import GroqProvider
from src.email_processing.analyzers.ollama_provider import OllamaProvider
from src.email_processing.base import BaseLLMProvider

logger = logging.getLogger(__name__)


class ProviderFactory:
    """
    Factory for creating LLM provider instances.
    """

    # Provider registry mapping provider names to classes
    _registry: Dict[str, Type[BaseLLMProvider]] = {
        "groq": GroqProvider,
        "ollama": OllamaProvider
    }

    # Provider cache for singleton instances
    _instances: Dict[str, BaseLLMProvider] = {}

    @classmethod
    def register_provider(cls, name: str, provider_class: Type[BaseLLMProvider]) -> None:
        """
        Register a new provider class.

        Raises:
            ValueError: If provider name is already registered
        """
        if name in cls._registry:
            raise ValueError(f"Provider {name} is already registered")

        cls._registry[name] = provider_class
        logger.info(f"Registered LLM provider: {name}")

    @classmethod
    def get_provider(cls, name: str) -> BaseLLMProvider:
        """
        Get provider instance by name.

        Raises:
            ValueError: If provider is not registered or cannot be created
        """
        if name not in cls._registry:
            logger.error(f"No provider registered with name: {name}")
            raise ValueError(f"No provider registered with name: {name}")

        if name not in cls._instances:
            try:
                cls._instances[name] = cls._registry[name]()
                logger.debug(f"Created new provider instance: {name}")
            except Exception as e:
                logger.error(f"Failed to create provider {name}: {str(e)}")
                raise ValueError(f"Failed to create provider {name}: {str(e)}")

        return cls._instances[name]

    @classmethod
    def reset(cls) -> None:
        """Drop cached provider instances."""
        cls._instances.clear()

    @staticmethod
    def configured_order(order: Optional[str] = None) -> List[str]:
        """
        Provider names in priority order.

        LLM_PROVIDER_ORDER (comma-separated) wins. Otherwise LLM_PROVIDER
        selects: "groq" gives groq then ollama, "ollama" gives ollama only,
        "none" disables models. Unset means groq then ollama.
        """
        load_dotenv(override=True)
        explicit = order or os.getenv("LLM_PROVIDER_ORDER")
        if explicit:
            return [name.strip().lower() for name in explicit.split(",") if name.strip()]

        primary = os.getenv("LLM_PROVIDER", "").strip().lower()
        if primary == "none":
            return []
        if primary == "ollama":
            return ["ollama"]
        return ["groq", "ollama"]

    @classmethod
    def build_chain(cls, order: Optional[str] = None) -> List[BaseLLMProvider]:
        """Instantiate the configured providers, skipping any that fail."""
        chain = []
        for name in cls.configured_order(order):
            try:
                chain.append(cls.get_provider(name))
            except ValueError as e:
                logger.warning(f"Skipping LLM provider {name}: {e}")
        logger.info(f"LLM provider chain: {[p.name for p in chain] or 'none'}")
        return chain
