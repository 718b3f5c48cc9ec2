"""Builds the LLM client for a chat turn from settings."""

from __future__ import annotations

import logging

from taskmate.config import Settings
from taskmate.llm.base import LLMProvider
from taskmate.llm.openai_compatible import OpenAICompatibleProvider

LOGGER = logging.getLogger(__name__)


def create_llm(settings: Settings) -> LLMProvider:
    """Prefer the relay credential when present, else the default provider."""

    if settings.aihubmix_api_key:
        LOGGER.debug("Using relay LLM endpoint %s", settings.aihubmix_base_url)
        return OpenAICompatibleProvider(
            api_key=settings.aihubmix_api_key,
            model=settings.aihubmix_model_name,
            base_url=settings.aihubmix_base_url,
            temperature=settings.llm_temperature,
            request_timeout_seconds=settings.request_timeout_seconds,
        )
    if settings.openai_api_key:
        return OpenAICompatibleProvider(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            base_url=settings.openai_base_url,
            temperature=settings.llm_temperature,
            request_timeout_seconds=settings.request_timeout_seconds,
        )
    raise RuntimeError("No LLM credentials configured: set AIHUBMIX_API_KEY or OPENAI_API_KEY")
