"""KWPilot: AI Provider Selection & Fallback."""

from typing import Callable, Dict, List, Optional, Tuple

from kwpilot.ai.base_provider import AIProvider, AIProviderError, CompletionResult
from kwpilot.ai.claude_provider import ClaudeProvider
from kwpilot.ai.openai_provider import OpenAIProvider
from kwpilot.ai.sarvam_provider import SarvamProvider
from kwpilot.config import settings
from kwpilot.core.logging import get_logger

logger = get_logger("ai.client")

PROVIDERS: Dict[str, Callable[[], AIProvider]] = {
    "openrouter": lambda: OpenAIProvider(openrouter=True),
    "openai": lambda: OpenAIProvider(),
    "claude": ClaudeProvider,
    "sarvam": SarvamProvider,
}


def available_providers() -> List[str]:
    return [name for name, factory in PROVIDERS.items() if factory().is_available()]


def select_provider(provider_name: str = "auto") -> Tuple[str, AIProvider]:
    """Select and return an available AI provider.

    When provider_name is 'auto', tries DEFAULT_AI_PROVIDER first,
    then falls through remaining providers.
    """
    if provider_name == "auto":
        default = settings.default_ai_provider
        if default in PROVIDERS:
            p = PROVIDERS[default]()
            if p.is_available():
                return default, p
        for name, factory in PROVIDERS.items():
            if name == default:
                continue  # already tried
            provider = factory()
            if provider.is_available():
                return name, provider
        raise AIProviderError(
            "No AI provider configured. Set OPENROUTER_API_KEY, OPENAI_API_KEY, "
            "ANTHROPIC_API_KEY, or SARVAM_API_KEY in .env.",
            503,
        )
    if provider_name in PROVIDERS:
        provider = PROVIDERS[provider_name]()
        if not provider.is_available():
            raise AIProviderError(f"{provider_name} provider not configured.", 503, provider_name)
        return provider_name, provider
    raise ValueError(f"Unknown provider: {provider_name}.")


async def chat_completion_with_fallback(
    messages: List[Dict[str, str]],
    temperature: float = 0.7,
    max_tokens: int = 4000,
    json_mode: bool = False,
    provider: str = "auto",
) -> CompletionResult:
    """Try the selected provider, then each other configured one once."""
    primary_name, primary = select_provider(provider)
    candidates: List[Tuple[str, AIProvider]] = [(primary_name, primary)]
    for name, factory in PROVIDERS.items():
        if name == primary_name:
            continue
        p = factory()
        if p.is_available():
            candidates.append((name, p))

    last_error: Optional[Exception] = None
    for name, p in candidates:
        try:
            result = await p.chat_completion(
                messages,
                temperature=temperature,
                max_tokens=max_tokens,
                json_mode=json_mode,
            )
            if name != primary_name:
                logger.info(f"🔁 Completed on fallback provider {name}", extra={"provider": name})
            return result
        except AIProviderError as e:
            logger.warning(f"Provider {name} failed: {e}", extra={"provider": name})
            last_error = e

    raise last_error or AIProviderError("All AI providers failed", 502)
