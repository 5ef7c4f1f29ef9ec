"""KWPilot: Anthropic Claude Provider."""

from typing import Dict, List
from anthropic import AsyncAnthropic

from kwpilot.ai.base_provider import AIProvider, AIProviderError, CompletionResult
from kwpilot.config import settings
from kwpilot.core.logging import get_logger

logger = get_logger("ai.claude")

JSON_SUFFIX = "\n\nRespond with a single valid JSON object and nothing else."


class ClaudeProvider(AIProvider):
    """Anthropic Claude provider."""

    name = "claude"

    def __init__(self):
        self.client = (
            AsyncAnthropic(api_key=settings.anthropic_api_key)
            if settings.anthropic_api_key
            else None
        )

    def is_available(self) -> bool:
        return self.client is not None and bool(settings.anthropic_api_key)

    async def chat_completion(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int = 4000,
        json_mode: bool = False,
    ) -> CompletionResult:
        if not self.is_available():
            raise AIProviderError("Claude provider not configured", 503, self.name)

        system_parts = [m["content"] for m in messages if m["role"] == "system"]
        chat = [m for m in messages if m["role"] != "system"]
        system = "\n\n".join(system_parts)
        if json_mode:
            system += JSON_SUFFIX

        try:
            response = await self.client.messages.create(
                model=settings.anthropic_model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system,
                messages=chat,
            )
        except Exception as e:
            logger.error(f"Claude completion failed: {e}", extra={"provider": self.name})
            raise AIProviderError(f"Claude completion failed: {e}", 502, self.name) from e

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        usage = response.usage
        return CompletionResult(
            content=text,
            tokens_used=(usage.input_tokens + usage.output_tokens) if usage else 0,
            provider=self.name,
            model=response.model or settings.anthropic_model,
        )
