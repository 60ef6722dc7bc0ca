# FILE: webforge/services/provider_service.py
"""
Provider gateway: one `complete()` capability over whichever text backend is
configured. The orchestrator only talks to ProviderGateway; vendors live
behind the Provider interface and are looked up by id in a registry.
"""
import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from openai import OpenAI

from webforge.core import config
from webforge.services.cost_service import calculate_cost
from webforge.services.model_routing import ModelRoute, resolve_route
from webforge.services.provider_errors import normalize_provider_exception

logger = logging.getLogger("webforge.providers")


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass
class Completion:
    text: str
    model: str
    provider_id: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    cost: float = 0.0
    duration_ms: int = 0


@dataclass
class UsageTotals:
    """Accumulates usage over every provider call of one job."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    cost: float = 0.0
    calls: int = 0
    models: List[str] = field(default_factory=list)

    def add(self, completion: Completion) -> None:
        self.prompt_tokens += completion.usage.prompt_tokens
        self.completion_tokens += completion.usage.completion_tokens
        self.cost = round(self.cost + completion.cost, 6)
        self.calls += 1
        if completion.model not in self.models:
            self.models.append(completion.model)


class Provider(ABC):
    provider_id: str = ""

    @abstractmethod
    async def complete(
            self,
            system_prompt: str,
            user_prompt: str,
            model: str,
            max_tokens: Optional[int] = None,
            timeout: Optional[float] = None,
    ) -> Completion:
        ...


class OpenAIChatProvider(Provider):
    """Chat-completions backend: OpenAI itself or any OpenAI-compatible gateway."""

    def __init__(self, provider_id: str, client_factory: Callable[[], OpenAI], temperature: float = 0.7):
        self.provider_id = provider_id
        self._client_factory = client_factory
        self._client: Optional[OpenAI] = None
        self.temperature = temperature

    def _get_client(self) -> OpenAI:
        # Lazy initialization - only create client when needed
        if self._client is None:
            self._client = self._client_factory()
        return self._client

    async def complete(
            self,
            system_prompt: str,
            user_prompt: str,
            model: str,
            max_tokens: Optional[int] = None,
            timeout: Optional[float] = None,
    ) -> Completion:
        client = self._get_client()

        def _call():
            kwargs = {
                "model": model,
                "messages": [
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                "temperature": self.temperature,
            }
            if max_tokens:
                kwargs["max_tokens"] = max_tokens
            if timeout:
                kwargs["timeout"] = timeout
            return client.chat.completions.create(**kwargs)

        response = await asyncio.to_thread(_call)
        text = (response.choices[0].message.content or "").strip() if response.choices else ""
        usage = getattr(response, "usage", None)
        return Completion(
            text=text,
            model=getattr(response, "model", None) or model,
            provider_id=self.provider_id,
            usage=TokenUsage(
                prompt_tokens=int(getattr(usage, "prompt_tokens", 0) or 0),
                completion_tokens=int(getattr(usage, "completion_tokens", 0) or 0),
            ),
        )


def default_providers() -> Dict[str, Provider]:
    return {
        "openai": OpenAIChatProvider("openai", config.get_openai_client),
        "gateway": OpenAIChatProvider("gateway", config.get_gateway_client),
    }


class ProviderGateway:
    def __init__(
            self,
            providers: Optional[Dict[str, Provider]] = None,
            router: Callable[[str], ModelRoute] = resolve_route,
            timeout_seconds: Optional[float] = None,
    ):
        self.providers = providers if providers is not None else default_providers()
        self.router = router
        self.timeout_seconds = timeout_seconds or config.PROVIDER_TIMEOUT_SECONDS

    def provider_for(self, route: ModelRoute) -> Provider:
        provider = self.providers.get(route.provider_id)
        if provider is None:
            raise ValueError(f"No provider registered for '{route.provider_id}'")
        return provider

    async def complete(
            self,
            system_prompt: str,
            user_prompt: str,
            model_tier: str,
            max_tokens: Optional[int] = None,
            timeout: Optional[float] = None,
    ) -> Completion:
        """
        Run one completion under a hard wall-clock timeout. Every failure is
        re-raised as a pipeline error (rate limit, payment, timeout, generic).
        """
        route = self.router(model_tier)
        provider = self.provider_for(route)
        limit = timeout or self.timeout_seconds
        t0 = time.time()

        try:
            completion = await asyncio.wait_for(
                provider.complete(system_prompt, user_prompt, route.model, max_tokens=max_tokens, timeout=limit),
                timeout=limit,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            err = normalize_provider_exception(e)
            logger.warning(
                "Provider %s/%s failed after %.1fs: %s (%s)",
                route.provider_id, route.model, time.time() - t0, err.code, err.raw or err.message,
            )
            raise err from e

        completion.duration_ms = int((time.time() - t0) * 1000)
        completion.cost = calculate_cost(
            completion.usage.prompt_tokens, completion.usage.completion_tokens, completion.model
        )
        logger.info(
            "Provider %s/%s answered in %dms (%d chars, tokens in=%d out=%d, cost=$%.4f)",
            route.provider_id, completion.model, completion.duration_ms, len(completion.text),
            completion.usage.prompt_tokens, completion.usage.completion_tokens, completion.cost,
        )
        return completion
