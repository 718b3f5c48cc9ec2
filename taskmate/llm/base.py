"""Chat-completions contract shared by the supervisor and every agent."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from taskmate.models import LLMResponse


class LLMProvider(ABC):
    """One chat-completions endpoint that supports function calling."""

    @property
    @abstractmethod
    def model(self) -> str:
        """Model identifier sent with each request."""

    @abstractmethod
    async def generate(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> LLMResponse:
        """Complete ``messages`` in OpenAI wire format.

        ``tools`` are function specs; the response carries at most the calls
        the model chose, each with already-decoded arguments.
        """
