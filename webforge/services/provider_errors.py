# FILE: webforge/services/provider_errors.py
from __future__ import annotations

import asyncio
from typing import Any

import openai

from webforge.core.errors import (
    PipelineError,
    ProviderError,
    ProviderPaymentRequired,
    ProviderRateLimited,
    ProviderTimeout,
)

# This module only maps SDK/HTTP failures onto the pipeline error taxonomy.
# Works even if the SDK is swapped later: message heuristics cover the rest.


def _safe_str(x: Any) -> str:
    try:
        return str(x)
    except Exception:
        return "<unprintable>"


def _looks_like_payment(msg: str) -> bool:
    m = msg.lower()
    return "402" in m or "insufficient_quota" in m or "credits exhausted" in m or "payment required" in m


def _looks_like_rate_limit(msg: str) -> bool:
    m = msg.lower()
    return "rate limit" in m or "too many requests" in m or "429" in m


def _looks_like_timeout(msg: str) -> bool:
    m = msg.lower()
    return "timeout" in m or "timed out" in m


def _looks_like_auth(msg: str) -> bool:
    m = msg.lower()
    return "invalid api key" in m or "api key" in m and "invalid" in m or "unauthorized" in m or "401" in m


def normalize_provider_exception(err: Exception) -> PipelineError:
    """Map whatever the provider raised to a stable pipeline error."""
    if isinstance(err, PipelineError):
        return err

    msg = _safe_str(err)
    raw = msg[:4000]

    # Typed SDK errors first
    if isinstance(err, openai.APITimeoutError):
        return ProviderTimeout("AI request timed out. Try again.", raw=raw)
    if isinstance(err, openai.APIStatusError):
        status = getattr(err, "status_code", None)
        if status == 402 or _looks_like_payment(msg):
            return ProviderPaymentRequired("AI credits exhausted. Please add funds.", raw=raw)
        if status == 429:
            return ProviderRateLimited("Rate limit exceeded. Please try again later.", raw=raw)
        if status in (401, 403):
            return ProviderError("AI authentication failed (API key/permission).", raw=raw)
        return ProviderError(f"AI provider error (HTTP {status}).", raw=raw)
    if isinstance(err, openai.APIConnectionError):
        return ProviderError("AI service is unreachable. Try again later.", raw=raw)

    if isinstance(err, (TimeoutError, asyncio.TimeoutError)):
        return ProviderTimeout("AI request timed out. Try again.", raw=raw)

    # Heuristics on the message
    if _looks_like_payment(msg):
        return ProviderPaymentRequired("AI credits exhausted. Please add funds.", raw=raw)
    if _looks_like_rate_limit(msg):
        return ProviderRateLimited("Rate limit exceeded. Please try again later.", raw=raw)
    if _looks_like_timeout(msg):
        return ProviderTimeout("AI request timed out. Try again.", raw=raw)
    if _looks_like_auth(msg):
        return ProviderError("AI authentication failed (API key/permission).", raw=raw)

    return ProviderError(f"AI request failed: {msg[:300]}", raw=raw)
