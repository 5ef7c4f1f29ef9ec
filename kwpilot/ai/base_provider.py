"""KWPilot: Abstract AI Provider."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List


class AIProviderError(Exception):
    """Raised when an AI provider is unavailable or a completion fails."""

    def __init__(self, message: str, status_code: int = 0, provider: str = ""):
        self.status_code = status_code
        self.provider = provider
        super().__init__(message)


@dataclass
class CompletionResult:
    content: str
    tokens_used: int
    provider: str
    model: str


class AIProvider(ABC):
    """Abstract base for chat-completion backends.

    Every provider takes OpenAI-style messages ({"role", "content"}) and
    returns the raw text of the first choice.
    """

    name: str = ""

    @abstractmethod
    async def chat_completion(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int = 4000,
        json_mode: bool = False,
    ) -> CompletionResult:
        """Run one chat completion.

        Args:
            messages: Ordered chat messages; a leading "system" message is
                      mapped to the provider's system prompt slot.
            temperature: Sampling temperature.
            max_tokens: Upper bound on generated tokens.
            json_mode: Ask for a JSON object where the provider supports it.

        Returns:
            CompletionResult with the response text and usage.
        """
        ...

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this provider is configured and ready."""
        ...
