"""KWPilot: OpenAI & OpenRouter Provider."""

from typing import Dict, List, Optional
from openai import AsyncOpenAI

from kwpilot.ai.base_provider import AIProvider, AIProviderError, CompletionResult
from kwpilot.config import settings
from kwpilot.core.logging import get_logger

logger = get_logger("ai.openai")

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class OpenAIProvider(AIProvider):
    """OpenAI chat completions. With openrouter=True, talks to OpenRouter's
    OpenAI-compatible endpoint instead."""

    def __init__(self, openrouter: bool = False):
        self.openrouter = openrouter
        if openrouter:
            self.name = "openrouter"
            self.api_key: Optional[str] = settings.openrouter_api_key
            self.model = settings.openrouter_model
            self.client = (
                AsyncOpenAI(
                    api_key=self.api_key,
                    base_url=OPENROUTER_BASE_URL,
                    default_headers={
                        "HTTP-Referer": settings.openrouter_site_url,
                        "X-Title": settings.openrouter_app_name,
                    },
                )
                if self.api_key
                else None
            )
        else:
            self.name = "openai"
            self.api_key = settings.openai_api_key
            self.model = settings.openai_model
            self.client = AsyncOpenAI(api_key=self.api_key) if self.api_key else None

    def is_available(self) -> bool:
        return self.client is not None and bool(self.api_key)

    async def chat_completion(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int = 4000,
        json_mode: bool = False,
    ) -> CompletionResult:
        if not self.is_available():
            raise AIProviderError(f"{self.name} provider not configured", 503, self.name)

        kwargs: dict = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        # OpenRouter routes to models that may reject response_format
        if json_mode and not self.openrouter:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await self.client.chat.completions.create(**kwargs)
        except Exception as e:
            logger.error(f"{self.name} completion failed: {e}", extra={"provider": self.name})
            raise AIProviderError(f"{self.name} completion failed: {e}", 502, self.name) from e

        if not response.choices:
            raise AIProviderError(f"{self.name} returned no choices", 502, self.name)

        content = response.choices[0].message.content or ""
        usage = getattr(response, "usage", None)
        return CompletionResult(
            content=content,
            tokens_used=getattr(usage, "total_tokens", 0) or 0,
            provider=self.name,
            model=getattr(response, "model", None) or self.model,
        )
