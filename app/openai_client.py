from typing import Optional

from openai import OpenAI, OpenAIError

from .errors import ConfigurationError, ProviderError
from .settings import settings

# Gemini through its OpenAI-compatible endpoint; built on first use so a missing key
# only fails the draft route
_client: Optional[OpenAI] = None


def get_client() -> OpenAI:
    global _client
    if _client is None:
        if not settings.GEMINI_API_KEY:
            raise ConfigurationError("GEMINI_API_KEY missing")
        _client = OpenAI(
            api_key=settings.GEMINI_API_KEY,
            base_url=settings.GEMINI_BASE_URL,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )
    return _client


def chat_once(
    system: str,
    user: str,
    temperature: float = 0.6,
    model: Optional[str] = None,
    max_tokens: Optional[int] = None,
) -> str:
    client = get_client()
    kwargs = {}
    if max_tokens:
        kwargs["max_tokens"] = max_tokens
    try:
        r = client.chat.completions.create(
            model=model or settings.GEMINI_MODEL,
            temperature=temperature,
            messages=[
                {"role": "system", "content": system or ""},
                {"role": "user", "content": user or ""},
            ],
            **kwargs,
        )
    except OpenAIError as e:
        raise ProviderError(f"Gemini API error: {e}") from e
    text = (r.choices[0].message.content or "").strip() if r.choices else ""
    if not text:
        raise ProviderError("Gemini API returned empty response")
    return text
