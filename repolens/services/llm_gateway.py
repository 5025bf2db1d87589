"""LLM Gateway - text generation via LiteLLM with an offline fallback.

``generate()`` never raises: when no API key is configured, or the provider
call fails for any reason, a fixed canned narrative matching the prompt's
granularity is returned instead so downstream parsing always has input.

Note: LiteLLM is imported lazily; importing it spins up aiohttp machinery
we do not want at module import time.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any

from repolens.core.config import settings

logger = logging.getLogger(__name__)

# Module-level flag to track if litellm is initialized
_litellm_initialized = False


def _ensure_litellm():
    """Lazy initialize LiteLLM on first use."""
    global _litellm_initialized
    if _litellm_initialized:
        return

    import litellm

    if settings.debug:
        os.environ["LITELLM_LOG"] = "DEBUG"

    litellm.drop_params = True  # Drop unsupported params instead of error

    # No callback workers; they time out and spam logs
    litellm.success_callback = []
    litellm.failure_callback = []

    _litellm_initialized = True
    logger.debug("LiteLLM initialized")


class LLMError(Exception):
    """LLM Gateway error."""
    pass


# =============================================================================
# Offline Fallback Responses
# =============================================================================

FALLBACK_FILE_RESPONSE = """
Summary: This file defines a self-contained unit of application logic.

Key functions/components:
- Entry point: Wires the module's public functions together
- Input handling: Validates and normalizes incoming data
- Output handling: Formats results for callers

Integration: The module is imported by neighbouring components and relies on their shared utilities.

Potential improvements: Add focused unit tests and more explicit error handling.
"""

FALLBACK_DIRECTORY_RESPONSE = """
Summary: This directory groups related modules that implement one area of the application.

Main features:
- Request handling
- Data validation
- Shared helpers

Structure: Each file covers a single responsibility with a small public surface.

Dependencies: Relies on the project's shared configuration and utility modules.
"""

FALLBACK_REPOSITORY_RESPONSE = """
Summary: This repository contains an application organized into source, configuration and documentation areas.

Main features:
- Core application logic
- Configuration management
- Automated tests
- Project documentation

Architecture: Follows a layered layout with entry points, services and shared utilities.

Key implementation details:
- Dependencies are declared in the project manifest
- Configuration is read from files and environment variables
- Source files are grouped by feature
"""


def fallback_response(prompt: str) -> str:
    """Pick the canned narrative for a prompt.

    Matches keywords in the prompt's opening instruction line: ``file``,
    then ``directory``; anything else gets the repository narrative.
    """
    opening = prompt.strip().split("\n", 1)[0].lower()
    if "file" in opening:
        return FALLBACK_FILE_RESPONSE
    if "directory" in opening:
        return FALLBACK_DIRECTORY_RESPONSE
    return FALLBACK_REPOSITORY_RESPONSE


@dataclass
class GenerationResult:
    """Generated text plus where it came from."""
    text: str
    model: str | None = None
    used_fallback: bool = False


class LLMGateway:
    """
    Text generation gateway using LiteLLM.

    Model naming follows LiteLLM's provider prefix convention, e.g.
    ``gemini/gemini-pro``. Sampling parameters are fixed per gateway.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ):
        """Initialize LLM Gateway.

        Args:
            api_key: Gemini API key; defaults to ``GEMINI_API_KEY`` from settings.
            model: LiteLLM model name.
            temperature: Sampling temperature.
            max_tokens: Output length ceiling.
        """
        self.api_key = settings.gemini_api_key if api_key is None else api_key
        self.model = model or settings.generation_model
        self.temperature = settings.generation_temperature if temperature is None else temperature
        self.max_tokens = max_tokens or settings.generation_max_tokens
        self._setup_api_keys()

    def _setup_api_keys(self):
        """Expose the configured key to LiteLLM's provider lookup."""
        if self.api_key:
            os.environ["GEMINI_API_KEY"] = self.api_key

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def complete(self, prompt: str, **kwargs) -> dict[str, Any]:
        """
        Generate a completion.

        Args:
            prompt: User prompt
            **kwargs: Additional parameters passed to LiteLLM

        Returns:
            dict with:
                - content: Response text
                - model: Model used

        Raises:
            LLMError: If the call fails or the response carries no text.
        """
        try:
            _ensure_litellm()
            from litellm import acompletion

            response = await acompletion(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                **kwargs,
            )
        except Exception as e:
            logger.error(f"LLM completion failed: {e}")
            raise LLMError(f"Generation failed: {str(e)}") from e

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, KeyError, TypeError):
            content = None

        if not isinstance(content, str) or not content.strip():
            raise LLMError("Unexpected response format from generation service")

        return {
            "content": content,
            "model": getattr(response, "model", self.model),
        }

    async def generate_with_metadata(self, prompt: str) -> GenerationResult:
        """Generate text, falling back to the canned response on any failure."""
        if not self.is_configured:
            logger.warning("GEMINI_API_KEY not provided. Using offline fallback response.")
            return GenerationResult(text=fallback_response(prompt), used_fallback=True)

        try:
            result = await self.complete(prompt)
        except LLMError as e:
            logger.warning(f"Generation unavailable, using offline fallback response: {e}")
            return GenerationResult(text=fallback_response(prompt), used_fallback=True)

        return GenerationResult(text=result["content"], model=result["model"])

    async def generate(self, prompt: str) -> str:
        """Generate text for a prompt. Never raises."""
        result = await self.generate_with_metadata(prompt)
        return result.text


# Singleton instance
_llm_gateway: LLMGateway | None = None


def get_llm_gateway() -> LLMGateway:
    """Get or create LLM Gateway singleton."""
    global _llm_gateway
    if _llm_gateway is None:
        _llm_gateway = LLMGateway()
    return _llm_gateway
