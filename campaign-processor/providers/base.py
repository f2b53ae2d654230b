"""
Base LLM Provider Interface

Abstract base class for caption text providers (CLIProxyAPI, Gemini).
Providers never raise for service failures - they report them in
LLMResponse.error so the router can fail over.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
from enum import Enum


class TaskType(Enum):
    """Types of tasks for model selection."""
    CAPTIONS = "captions"    # Structured campaign copy (JSON)
    SIMPLE = "simple"        # Short one-off text


@dataclass
class GenerationConfig:
    """Configuration for text generation."""
    temperature: float = 0.8
    top_p: float = 0.95
    top_k: int = 40
    max_tokens: int = 4096
    timeout: float = 45.0


@dataclass
class LLMResponse:
    """Unified response from LLM providers."""
    text: str
    model_used: str
    provider: str
    tokens_used: Optional[int] = None
    error: Optional[str] = None

    @property
    def timed_out(self) -> bool:
        return bool(self.error and self.error.startswith("timeout"))


class LLMProvider(ABC):
    """
    Abstract base class for LLM providers.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name for logging."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if provider is configured."""

    @abstractmethod
    async def generate_text(
        self,
        prompt: str,
        model: Optional[str] = None,
        config: Optional[GenerationConfig] = None
    ) -> LLMResponse:
        """
        Generate text response from prompt.

        Args:
            prompt: Text prompt
            model: Optional model override
            config: Generation configuration

        Returns:
            LLMResponse with generated text, or error set
        """

    def get_model_for_task(self, task_type: TaskType) -> str:
        """Best model for a task type. Override per provider."""
        return "default"
