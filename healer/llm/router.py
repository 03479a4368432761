"""
Policy Router
=============
Decides which policy provider to use and manages provider switching.

Routing Strategy:
    1. Always attempt Anthropic first (primary provider)
    2. On failure (HTTP error, timeout, rate limit, unusable response) → Groq
    3. When every provider fails → PolicyUnavailableError (session-fatal)

Provider Health Tracking:
    - Track consecutive failures per provider
    - After PROVIDER_COOLDOWN_THRESHOLD failures in a row, skip the provider
      for PROVIDER_COOLDOWN_SKIP_COUNT selections
    - Providers without an API key are never routed to
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from healer.core.config import (
    ANTHROPIC_API_KEY, CLAUDE_MODEL, GROQ_API_KEY, GROQ_MODEL,
    HTTP_TIMEOUT_SECONDS, PROVIDER_COOLDOWN_THRESHOLD, PROVIDER_COOLDOWN_SKIP_COUNT,
)
from healer.core.errors import PolicyUnavailableError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Provider Configuration
# ---------------------------------------------------------------------------
@dataclass
class ProviderConfig:
    """Configuration for a single policy provider."""
    name: str
    api_key: str
    base_url: str
    model: str
    api_style: str = "openai"   # anthropic | openai
    max_retries: int = 2
    timeout_seconds: float = HTTP_TIMEOUT_SECONDS


ANTHROPIC_CONFIG = ProviderConfig(
    name="anthropic",
    api_key=ANTHROPIC_API_KEY or "",
    base_url="https://api.anthropic.com/v1",
    model=CLAUDE_MODEL,
    api_style="anthropic",
)

GROQ_CONFIG = ProviderConfig(
    name="groq",
    api_key=GROQ_API_KEY or "",
    base_url="https://api.groq.com/openai/v1",
    model=GROQ_MODEL,
    api_style="openai",
)


# ---------------------------------------------------------------------------
# Provider Health Tracker
# ---------------------------------------------------------------------------
@dataclass
class ProviderHealth:
    """Tracks consecutive failures and cooldown for a provider."""
    consecutive_failures: int = 0
    is_healthy: bool = True
    max_failures: int = PROVIDER_COOLDOWN_THRESHOLD
    cooldown_remaining: int = 0

    def record_failure(self) -> None:
        """Record a failure. Enter cooldown after max consecutive failures."""
        self.consecutive_failures += 1
        if self.consecutive_failures >= self.max_failures:
            self.is_healthy = False
            self.cooldown_remaining = PROVIDER_COOLDOWN_SKIP_COUNT
            logger.warning(
                "Provider entering cooldown after %d failures (skip %d calls)",
                self.consecutive_failures, self.cooldown_remaining,
            )

    def record_success(self) -> None:
        """Record a success. Reset failure counter."""
        self.consecutive_failures = 0

    def tick_cooldown(self) -> None:
        """Decrement cooldown. Auto-re-enable when cooldown expires."""
        if self.cooldown_remaining > 0:
            self.cooldown_remaining -= 1
            if self.cooldown_remaining <= 0:
                self.is_healthy = True
                # One more failure puts it straight back into cooldown
                self.consecutive_failures = max(1, self.max_failures - 1)
                logger.info("Provider cooldown expired, re-enabled (cautious)")


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------
class LLMRouter:
    """
    Routes policy requests to the best available provider.

    Usage:
        router = LLMRouter()
        provider = router.get_provider()
        # ... make request ...
        router.report_success(provider.name)   # or report_failure(...)
    """

    def __init__(self, providers: Optional[List[ProviderConfig]] = None) -> None:
        if providers is None:
            providers = [p for p in (ANTHROPIC_CONFIG, GROQ_CONFIG) if p.api_key]
        self._providers: List[ProviderConfig] = list(providers)
        self._health: Dict[str, ProviderHealth] = {p.name: ProviderHealth() for p in self._providers}

    def get_provider(self) -> ProviderConfig:
        """
        Get the best available provider.

        Raises
        ------
        PolicyUnavailableError
            If no provider is configured.
        """
        if not self._providers:
            raise PolicyUnavailableError("No policy provider configured (set ANTHROPIC_API_KEY or GROQ_API_KEY)")

        for h in self._health.values():
            h.tick_cooldown()

        for provider in self._providers:
            if self._health[provider.name].is_healthy:
                logger.debug("Selected provider: %s", provider.name)
                return provider

        # All providers unhealthy, try primary anyway as last resort
        logger.warning("All providers unhealthy, falling back to primary")
        return self._providers[0]

    def get_fallback_provider(self, *exclude_names: str) -> Optional[ProviderConfig]:
        """Next healthy provider not in ``exclude_names``, or None."""
        for provider in self._providers:
            if provider.name not in exclude_names and self._health[provider.name].is_healthy:
                logger.info("Falling back to %s (skipping %s)", provider.name, ", ".join(exclude_names))
                return provider
        return None

    def report_success(self, provider_name: str) -> None:
        health = self._health.get(provider_name)
        if health:
            health.record_success()

    def report_failure(self, provider_name: str) -> None:
        health = self._health.get(provider_name)
        if health:
            health.record_failure()

    @property
    def provider_health_state(self) -> Dict[str, Any]:
        """Expose per-provider health and cooldown for GET /health."""
        return {
            name: {
                "is_healthy": h.is_healthy,
                "consecutive_failures": h.consecutive_failures,
                "cooldown_remaining": h.cooldown_remaining,
            }
            for name, h in self._health.items()
        }
