"""Model-agnostic LLM interface using the OpenAI-compatible API.

Groq is the default provider; OpenAI, DeepSeek and Ollama work through the
same client. Non-Ollama providers require ``BUILDERGRAPH_LLM_API_KEY``.
Calls are retried on timeouts and transient HTTP errors (429, 500, 502, 503).
"""

import functools
import logging
import time

from openai import APIStatusError, APITimeoutError, OpenAI

from buildergraph.config import BuilderGraphConfig, get_config

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Retry decorator for LLM calls
# ---------------------------------------------------------------------------

_LLM_RETRYABLE_STATUS = (429, 500, 502, 503)


def _llm_retry(max_attempts: int = 3, backoff_seconds: tuple[float, ...] = (2.0, 5.0)):
    """Retry decorator for LLM API calls on timeout or transient HTTP errors."""
    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            for attempt in range(1, max_attempts + 1):
                try:
                    return fn(*args, **kwargs)
                except APITimeoutError:
                    if attempt == max_attempts:
                        logger.error("All %d LLM attempts failed for %s", max_attempts, fn.__name__)
                        raise
                    wait = backoff_seconds[min(attempt - 1, len(backoff_seconds) - 1)]
                    logger.warning(
                        "LLM retry %d/%d for %s after timeout: sleeping %.1fs",
                        attempt, max_attempts, fn.__name__, wait,
                    )
                    time.sleep(wait)
                except APIStatusError as exc:
                    if exc.status_code not in _LLM_RETRYABLE_STATUS or attempt == max_attempts:
                        raise
                    wait = backoff_seconds[min(attempt - 1, len(backoff_seconds) - 1)]
                    logger.warning(
                        "LLM retry %d/%d for %s after HTTP %d: sleeping %.1fs",
                        attempt, max_attempts, fn.__name__, exc.status_code, wait,
                    )
                    time.sleep(wait)
        return wrapper
    return decorator


class LLMAdapter:
    """Unified chat-completion interface over OpenAI-compatible providers."""

    PROVIDER_CONFIGS = {
        "groq": {"base_url": "https://api.groq.com/openai/v1", "default_model": "llama-3.3-70b-versatile"},
        "openai": {"base_url": "https://api.openai.com/v1", "default_model": "gpt-4o"},
        "deepseek": {"base_url": "https://api.deepseek.com/v1", "default_model": "deepseek-chat"},
        "ollama": {"base_url": "http://localhost:11434/v1", "default_model": "llama3.1:8b"},
    }

    def __init__(self, config: BuilderGraphConfig | None = None):
        self.config = config or get_config()
        provider = self.config.llm_provider.lower()
        provider_cfg = self.PROVIDER_CONFIGS.get(provider, {})

        base_url = self.config.llm_base_url or provider_cfg.get("base_url", "")
        api_key = self.config.llm_api_key

        if not api_key and provider != "ollama":
            raise ValueError(
                f"BUILDERGRAPH_LLM_API_KEY is required for provider '{provider}'. "
                "Set it in .env or as an environment variable."
            )
        if not api_key:
            api_key = "ollama"

        self.default_model = self.config.llm_model or provider_cfg.get("default_model", "")

        self.client = OpenAI(
            base_url=base_url,
            api_key=api_key,
            timeout=self.config.llm_timeout,
        )
        logger.info("LLMAdapter initialized: provider=%s, model=%s", provider, self.default_model)

    @_llm_retry(max_attempts=3, backoff_seconds=(2.0, 5.0))
    def complete(self, messages: list[dict], model: str | None = None, temperature: float | None = None) -> str:
        """Send messages to the LLM and return the text response."""
        response = self.client.chat.completions.create(
            model=model or self.default_model,
            messages=messages,
            temperature=self.config.llm_temperature if temperature is None else temperature,
            max_tokens=self.config.llm_max_tokens,
        )
        return (response.choices[0].message.content or "").strip()
