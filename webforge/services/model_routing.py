# FILE: webforge/services/model_routing.py
#
# Central place for tier -> (provider, model) routing. Keeps "junior vs senior"
# decisions out of the orchestration code and avoids scattered env parsing.

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, Literal

from webforge.core import config

ProviderId = Literal["openai", "gateway"]
ModelTier = Literal["junior", "senior"]

MODEL_TIERS = ("junior", "senior")


@dataclass(frozen=True)
class ModelRoute:
    provider_id: ProviderId
    model: str


def normalize_model_name(value: str) -> str:
    v = (value or "").strip()
    # Accept common shorthand used in team chat/config.
    if v == "4o":
        return "gpt-4o"
    if v == "4o-mini":
        return "gpt-4o-mini"
    return v


def model_from_env(env_name: str, default: str) -> str:
    value = os.getenv(env_name, "").strip()
    if not value:
        return default
    return normalize_model_name(value)


OPENAI_ROUTES: Dict[str, ModelRoute] = {
    "junior": ModelRoute("openai", model_from_env("OPENAI_JUNIOR_MODEL", "gpt-4o-mini")),
    "senior": ModelRoute("openai", model_from_env("OPENAI_SENIOR_MODEL", "gpt-4o")),
}

GATEWAY_ROUTES: Dict[str, ModelRoute] = {
    "junior": ModelRoute("gateway", model_from_env("GATEWAY_JUNIOR_MODEL", "google/gemini-2.5-flash")),
    "senior": ModelRoute("gateway", model_from_env("GATEWAY_SENIOR_MODEL", "google/gemini-2.5-pro")),
}


def resolve_route(tier: str) -> ModelRoute:
    """Gateway models when a gateway key is configured, OpenAI otherwise."""
    t = (tier or "").lower().strip()
    if t not in MODEL_TIERS:
        raise ValueError(f"model_tier must be one of {list(MODEL_TIERS)}")
    routes = GATEWAY_ROUTES if config.AI_GATEWAY_API_KEY else OPENAI_ROUTES
    return routes[t]
