# FILE: webforge/services/cost_service.py
from typing import Dict, Tuple

# USD per 1M tokens: (input, output). Internal accounting only,
# never used for the customer-facing price.
TOKEN_PRICING: Dict[str, Tuple[float, float]] = {
    "gpt-4o": (2.5, 10.0),
    "gpt-4o-mini": (0.15, 0.6),
    "o3-mini": (1.1, 4.4),
    "google/gemini-2.5-pro": (2.5, 15.0),
    "google/gemini-2.5-flash": (0.15, 0.6),
}
FALLBACK_MODEL = "gpt-4o-mini"


def calculate_cost(prompt_tokens: int, completion_tokens: int, model: str) -> float:
    price_in, price_out = TOKEN_PRICING.get(model) or TOKEN_PRICING[FALLBACK_MODEL]
    cost = (int(prompt_tokens or 0) / 1_000_000) * price_in
    cost += (int(completion_tokens or 0) / 1_000_000) * price_out
    return round(cost, 6)
