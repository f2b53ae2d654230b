"""
Provider Router - Automatic Failover Between Caption Providers

Routes requests to CLIProxyAPI (primary) with automatic fallback to Gemini (backup).
"""

import logging
from typing import Optional

from .base import LLMProvider, TaskType, GenerationConfig, LLMResponse

logger = logging.getLogger(__name__)


class ProviderRouter:
    """
    Routes LLM requests with automatic failover.

    Primary: CLIProxyAPI (OpenAI-compatible gateway)
    Fallback: Direct Gemini SDK

    Usage:
        router = ProviderRouter(CLIProxyProvider(url, key), GeminiBackupProvider(keys))
        response = await router.generate_text(prompt, task_type=TaskType.CAPTIONS)
    """

    def __init__(
        self,
        primary: LLMProvider,
        fallback: LLMProvider,
        failure_threshold: int = 3
    ):
        self.primary = primary
        self.fallback = fallback

        # Consecutive failures before the primary is skipped for the process lifetime
        self._primary_failures = 0
        self._primary_failure_threshold = failure_threshold
        self._primary_disabled = False

        logger.info(f"ProviderRouter initialized: primary={self.primary.name}, fallback={self.fallback.name}")

    def _record_primary_failure(self):
        self._primary_failures += 1
        if self._primary_failures >= self._primary_failure_threshold:
            self._primary_disabled = True
            logger.warning(f"Primary provider disabled after {self._primary_failures} failures")

    def is_available(self) -> bool:
        return self.primary.is_available() or self.fallback.is_available()

    def get_active_provider(self) -> LLMProvider:
        """Get the currently active provider."""
        if self._primary_disabled or not self.primary.is_available():
            return self.fallback
        return self.primary

    async def generate_text(
        self,
        prompt: str,
        task_type: TaskType = TaskType.CAPTIONS,
        model: Optional[str] = None,
        config: Optional[GenerationConfig] = None
    ) -> LLMResponse:
        """
        Generate text with automatic failover.

        Returns:
            LLMResponse from whichever provider succeeds, or the last error
        """
        response = None

        if not self._primary_disabled and self.primary.is_available():
            model_name = model or self.primary.get_model_for_task(task_type)

            logger.info(f"Trying primary ({self.primary.name}) with model {model_name}")
            response = await self.primary.generate_text(prompt, model_name, config)

            if not response.error:
                self._primary_failures = 0
                return response

            logger.warning(f"Primary failed: {response.error}")
            self._record_primary_failure()

        if self.fallback.is_available():
            model_name = model or self.fallback.get_model_for_task(task_type)

            logger.info(f"Falling back to {self.fallback.name} with model {model_name}")
            return await self.fallback.generate_text(prompt, model_name, config)

        if response is not None:
            return response

        return LLMResponse(
            text="",
            model_used="none",
            provider="none",
            error="all_providers_unavailable"
        )
