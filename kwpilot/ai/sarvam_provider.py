"""KWPilot: Sarvam AI Provider."""

from typing import Dict, List
from sarvamai import AsyncSarvamAI

from kwpilot.ai.base_provider import AIProvider, AIProviderError, CompletionResult
from kwpilot.config import settings
from kwpilot.core.logging import get_logger

logger = get_logger("ai.sarvam")

SARVAM_MODEL = "sarvam-m"


class SarvamProvider(AIProvider):
    """Sarvam AI provider (model: sarvam-m). No native JSON mode."""

    name = "sarvam"

    def __init__(self):
        self.client = (
            AsyncSarvamAI(api_subscription_key=settings.sarvam_api_key)
            if settings.sarvam_api_key
            else None
        )

    def is_available(self) -> bool:
        return self.client is not None and bool(settings.sarvam_api_key)

    async def chat_completion(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int = 4000,
        json_mode: bool = False,
    ) -> CompletionResult:
        if not self.is_available():
            raise AIProviderError("Sarvam provider not configured", 503, self.name)

        try:
            response = await self.client.chat.completions(
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except Exception as e:
            logger.error(f"Sarvam completion failed: {e}", extra={"provider": self.name})
            raise AIProviderError(f"Sarvam completion failed: {e}", 502, self.name) from e

        if not getattr(response, "choices", None):
            raise AIProviderError("Sarvam returned no choices", 502, self.name)

        usage = getattr(response, "usage", None)
        return CompletionResult(
            content=response.choices[0].message.content or "",
            tokens_used=getattr(usage, "total_tokens", 0) or 0,
            provider=self.name,
            model=SARVAM_MODEL,
        )
