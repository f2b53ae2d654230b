"""
Gemini Backup Provider - Fallback caption provider

Direct Gemini SDK with multi-key rotation, used when CLIProxyAPI is not
configured or failing. The SDK call is blocking, so it runs in a worker
thread under a timeout.
"""

import asyncio
import logging
from typing import Optional, List

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from .base import LLMProvider, TaskType, GenerationConfig, LLMResponse

logger = logging.getLogger(__name__)


class GeminiBackupProvider(LLMProvider):
    """
    Backup LLM provider using the Gemini SDK.

    Rate-limited keys are skipped until every key has failed, then the
    failed set is reset.
    """

    def __init__(self, api_keys: List[str], model: str = "gemini-2.5-flash"):
        """
        Args:
            api_keys: Gemini API keys to rotate through
            model: Default text model
        """
        self.api_keys = list(api_keys)
        self.model = model
        self._current_key_idx = 0
        self._failed_keys: set = set()

        logger.info(f"GeminiBackupProvider initialized with {len(self.api_keys)} API keys")

    @property
    def name(self) -> str:
        return "gemini_backup"

    def is_available(self) -> bool:
        return len(self.api_keys) > 0

    def get_model_for_task(self, task_type: TaskType) -> str:
        if task_type == TaskType.SIMPLE:
            return "gemini-2.5-flash-lite"
        return self.model

    def _get_current_key(self) -> Optional[str]:
        available_keys = [k for k in self.api_keys if k not in self._failed_keys]
        if not available_keys:
            self._failed_keys.clear()
            available_keys = self.api_keys

        if not available_keys:
            return None

        self._current_key_idx = self._current_key_idx % len(available_keys)
        return available_keys[self._current_key_idx]

    def _mark_key_failed(self, key: str):
        self._failed_keys.add(key)
        self._current_key_idx += 1
        logger.warning(f"Marked key ...{key[-6:]} as rate limited")

    def _generate_sync(self, api_key: str, model_name: str, prompt: str, config: GenerationConfig) -> str:
        genai.configure(api_key=api_key)
        gmodel = genai.GenerativeModel(model_name)
        response = gmodel.generate_content(
            prompt,
            generation_config={
                "temperature": config.temperature,
                "top_p": config.top_p,
                "top_k": config.top_k,
                "max_output_tokens": config.max_tokens,
            }
        )
        return (response.text or "").strip()

    async def generate_text(
        self,
        prompt: str,
        model: Optional[str] = None,
        config: Optional[GenerationConfig] = None
    ) -> LLMResponse:
        if config is None:
            config = GenerationConfig()

        model_name = model or self.get_model_for_task(TaskType.CAPTIONS)

        def failed(error: str) -> LLMResponse:
            return LLMResponse(text="", model_used=model_name, provider=self.name, error=error)

        for attempt in range(len(self.api_keys)):
            api_key = self._get_current_key()
            if not api_key:
                return failed("no_api_keys_available")

            try:
                logger.info(f"Gemini backup: model={model_name}, key=...{api_key[-6:]}")
                text = await asyncio.wait_for(
                    asyncio.to_thread(self._generate_sync, api_key, model_name, prompt, config),
                    timeout=config.timeout
                )

                if not text:
                    logger.warning("Empty response from Gemini")
                    return failed("empty_response")

                logger.info(f"Gemini backup success: {len(text)} chars")
                return LLMResponse(text=text, model_used=model_name, provider=self.name)

            except asyncio.TimeoutError:
                logger.warning(f"Gemini backup timed out after {config.timeout}s")
                return failed(f"timeout: no response after {config.timeout}s")

            except google_exceptions.ResourceExhausted as e:
                logger.warning(f"Gemini rate limited: {e}")
                self._mark_key_failed(api_key)
                continue

            except (google_exceptions.GoogleAPIError, ValueError) as e:
                error_str = str(e)
                logger.error(f"Gemini error: {error_str}")

                if "429" in error_str or "quota" in error_str.lower():
                    self._mark_key_failed(api_key)
                    continue

                return failed(f"gemini_error: {error_str}")

        return failed("all_keys_exhausted")
