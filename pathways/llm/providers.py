"""
Provider catalog and the process-wide pool of model handles.

The registry knows how to reach each supported provider (LiteLLM route,
base URL, API key) and hands out one ChatModel per (provider, model) pair,
reusing it for every conversation.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from pathways.config.logging import get_logger
from pathways.config.settings import LLMSettings, ProviderSettings, Settings
from pathways.llm.handle import ChatModel

logger = get_logger(__name__)


@dataclass(frozen=True)
class Provider:
    """How to reach one model provider."""

    name: str
    route: str
    api_base: str | None = None
    api_key: str | None = None


def default_providers(settings: ProviderSettings) -> dict[str, Provider]:
    """The providers Pathways supports out of the box."""
    return {
        "openai": Provider(
            name="openai",
            route="openai",
            api_base=settings.openai_base_url,
            api_key=settings.openai_api_key or None,
        ),
        "openrouter": Provider(
            name="openrouter",
            route="openrouter",
            api_base=settings.openrouter_base_url,
            api_key=settings.openrouter_api_key or None,
        ),
        "ollama": Provider(
            name="ollama",
            route="ollama_chat",
            api_base=settings.ollama_base_url,
        ),
    }


class ProviderRegistry:
    """
    Hands out shared ChatModel handles.

    Args:
        providers: Provider catalog keyed by name
        llm_settings: Which models serve which phase, plus call options

    Example::

        registry = ProviderRegistry.from_settings(settings)
        primary = registry.primary()
        reply = await primary.ainvoke([UserTurn(content="Hello")])
    """

    def __init__(self, providers: Mapping[str, Provider], llm_settings: LLMSettings):
        self._providers = dict(providers)
        self._settings = llm_settings
        self._handles: dict[tuple[str, str], ChatModel] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> ProviderRegistry:
        return cls(default_providers(settings.providers), settings.llm)

    @property
    def provider_names(self) -> list[str]:
        return list(self._providers)

    def handle(self, provider: str, model: str) -> ChatModel:
        """
        Get the shared handle for a provider/model pair, creating it once.

        Raises:
            ValueError: If the provider is not in the catalog
        """
        key = (provider, model)
        if key not in self._handles:
            spec = self._providers.get(provider)
            if spec is None:
                raise ValueError(
                    f"Unknown provider: {provider!r}. "
                    f"Available: {', '.join(self._providers)}"
                )
            self._handles[key] = ChatModel(
                provider=provider,
                model=model,
                route=spec.route,
                api_key=spec.api_key,
                api_base=spec.api_base,
                temperature=self._settings.temperature,
                max_tokens=self._settings.max_tokens,
                timeout=self._settings.timeout_seconds,
            )
            logger.debug(f"Created model handle {provider}/{model}")
        return self._handles[key]

    def primary(self) -> ChatModel:
        """Model that answers turns without tool output."""
        return self.handle(self._settings.provider, self._settings.model)

    def online(self) -> ChatModel:
        """Model that answers from tool output; the primary model unless configured."""
        return self.handle(
            self._settings.online_provider or self._settings.provider,
            self._settings.online_model or self._settings.model,
        )

    def caller(self) -> ChatModel:
        """Model that decides which tools a turn needs."""
        return self.handle(self._settings.caller_provider, self._settings.caller_model)
