"""
LLM connections for the OpenAI Assistants API
"""
from functools import lru_cache
from typing import Optional

from openai import AsyncOpenAI

from apps.lectures.config import get_lectures_settings


def build_openai_client(
    api_key: Optional[str],
    base_url: Optional[str] = None,
    timeout: float = 60.0
) -> AsyncOpenAI:
    """
    Create an async OpenAI client.

    Raises:
        ValueError: if no API key is configured
    """
    if not api_key:
        raise ValueError(
            "Missing required environment variable: LECTURES_OPENAI_API_KEY\n"
            "Please add it to your .env file:\n"
            "LECTURES_OPENAI_API_KEY=your_api_key\n"
            "LECTURES_OPENAI_BASE_URL=https://api.openai.com/v1 (optional)"
        )
    return AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)


@lru_cache()
def get_openai_client() -> AsyncOpenAI:
    """Shared client built from settings on first use"""
    settings = get_lectures_settings()
    return build_openai_client(
        api_key=settings.OPENAI_API_KEY,
        base_url=settings.OPENAI_BASE_URL,
        timeout=settings.OPENAI_TIMEOUT
    )


def is_llm_configured() -> bool:
    """Check whether an API key is available without calling the API"""
    return bool(get_lectures_settings().OPENAI_API_KEY)
