"""Clients for the natural-language analysis service."""

from __future__ import annotations

import logging
import os
from typing import Any, Mapping, Optional, Protocol

import anthropic

from csp_scanner.config.loader import AnalysisSettings

logger = logging.getLogger(__name__)


class AnalysisUnavailableError(Exception):
    """Raised when the analysis service cannot be reached or its reply cannot be used."""


class AnalysisClient(Protocol):
    """Anything that turns a prompt into free-form text."""

    def complete(self, prompt: str, *, timeout: float) -> str:
        """Return the service's text reply to ``prompt``."""


class AnthropicAnalysisClient:
    """Thin wrapper over the Anthropic SDK's Messages API."""

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        base_url: str | None = None,
        max_tokens: int = 400,
        client: anthropic.Anthropic | None = None,
    ) -> None:
        self.model = model
        self._max_tokens = max_tokens
        # Retries are left to the scan's own fallback path.
        self._client = client or anthropic.Anthropic(api_key=api_key, base_url=base_url, max_retries=0)

    def complete(self, prompt: str, *, timeout: float) -> str:
        try:
            message = self._client.messages.create(
                model=self.model,
                max_tokens=self._max_tokens,
                messages=[{"role": "user", "content": prompt}],
                timeout=timeout,
            )
        except anthropic.APIError as exc:
            raise AnalysisUnavailableError(f"analysis request failed: {exc}") from exc

        text = _extract_text(getattr(message, "content", None))
        if not text:
            raise AnalysisUnavailableError("analysis service returned no text")
        return text


def _extract_text(blocks: Any) -> str:
    return "".join(
        str(getattr(block, "text", "") or "")
        for block in blocks or []
        if getattr(block, "type", None) == "text"
    )


def create_analysis_client(
    settings: AnalysisSettings,
    environ: Mapping[str, str] | None = None,
) -> Optional[AnalysisClient]:
    """Build the configured client, or ``None`` when analysis is disabled or has no key."""

    if not settings.enabled:
        return None
    environ = os.environ if environ is None else environ
    provider = settings.provider.strip().lower()
    if provider != "anthropic":
        raise ValueError(f"Unsupported analysis provider: {settings.provider}")

    api_key = environ.get(settings.api_key_env)
    if not api_key:
        logger.info("%s is not set; narratives will use the rule-based fallback", settings.api_key_env)
        return None
    return AnthropicAnalysisClient(
        api_key,
        settings.model,
        base_url=settings.base_url,
        max_tokens=settings.max_tokens,
    )


__all__ = [
    "AnalysisClient",
    "AnalysisUnavailableError",
    "AnthropicAnalysisClient",
    "create_analysis_client",
]
