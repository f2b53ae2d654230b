"""
CLIProxyAPI Provider - Primary caption provider

OpenAI-compatible gateway in front of Gemini/Claude accounts. Optional:
only used when both base URL and API key are configured.
"""

import logging
from typing import Optional, Dict

from openai import AsyncOpenAI
from openai import APIError, APIConnectionError, APITimeoutError, RateLimitError

from .base import LLMProvider, TaskType, GenerationConfig, LLMResponse

logger = logging.getLogger(__name__)


class CLIProxyProvider(LLMProvider):
    """
    Primary LLM provider using the CLIProxyAPI gateway.
    """

    def __init__(
        self,
        base_url: Optional[str],
        api_key: Optional[str],
        models: Optional[Dict[TaskType, str]] = None,
        default_model: str = "gemini-2.5-flash"
    ):
        """
        Args:
            base_url: Gateway base URL, e.g. http://host:8317/v1
            api_key: Gateway API key
            models: Model per TaskType
            default_model: Used for task types without a mapping
        """
        self.base_url = base_url
        self.api_key = api_key
        self.default_model = default_model
        self.models = {
            TaskType.CAPTIONS: default_model,
            TaskType.SIMPLE: "gemini-2.5-flash-lite",
        }
        if models:
            self.models.update(models)

        self._client: Optional[AsyncOpenAI] = None

    @property
    def name(self) -> str:
        return "cliproxy"

    @property
    def client(self) -> AsyncOpenAI:
        """Lazy initialization of the OpenAI client."""
        if self._client is None:
            self._client = AsyncOpenAI(base_url=self.base_url, api_key=self.api_key)
        return self._client

    def is_available(self) -> bool:
        return bool(self.base_url and self.api_key)

    def get_model_for_task(self, task_type: TaskType) -> str:
        return self.models.get(task_type, self.default_model)

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

        try:
            logger.info(f"CLIProxy generate_text: model={model_name}")

            response = await self.client.chat.completions.create(
                model=model_name,
                messages=[{"role": "user", "content": prompt}],
                temperature=config.temperature,
                top_p=config.top_p,
                max_tokens=config.max_tokens,
                timeout=config.timeout,
            )

            text = response.choices[0].message.content or ""
            tokens = response.usage.total_tokens if response.usage else None

            if not text.strip():
                return failed("empty_response")

            logger.info(f"CLIProxy success: {len(text)} chars, {tokens} tokens")
            return LLMResponse(
                text=text,
                model_used=model_name,
                provider=self.name,
                tokens_used=tokens
            )

        except APITimeoutError as e:
            logger.warning(f"CLIProxy timeout after {config.timeout}s: {e}")
            return failed(f"timeout: {e}")

        except RateLimitError as e:
            logger.warning(f"CLIProxy rate limit: {e}")
            return failed(f"rate_limit: {e}")

        except APIConnectionError as e:
            logger.error(f"CLIProxy connection error: {e}")
            return failed(f"connection_error: {e}")

        except APIError as e:
            logger.error(f"CLIProxy API error: {e}")
            return failed(f"api_error: {e}")
