"""
Client for the hosted text-generation service used for carbon multipliers,
spending/carbon tips and benchmarks.

Consumers depend only on CompletionClient.complete(prompt) -> str. The helpers
at the bottom of the module turn failures into the local fallbacks the rest of
the backend expects (a null multiplier, or an error-marker string).
"""
import os
import re
import time
import logging
from abc import ABC, abstractmethod
from typing import Optional

from app.services.errors import ExternalServiceError, ValidationError

logger = logging.getLogger(__name__)

# Degraded recommendation responses start with this marker.
ERROR_MARKER = "Error fetching recommendation:"

_NUMBER_PATTERN = re.compile(r"-?\d+(\.\d+)?")


class CompletionClient(ABC):
    """Abstract text-generation client."""

    @abstractmethod
    def complete(self, prompt: str) -> str:
        """
        Send a prompt and return the generated text.

        Raises:
            ExternalServiceError: on timeout, transport/API errors or an empty reply
        """
        pass


class OpenAICompletionClient(CompletionClient):
    """
    CompletionClient backed by the OpenAI chat completions API.

    Environment Variables:
    - OPENAI_API_KEY: OpenAI API key
    - ADVICE_LLM_MODEL: model to use (default: gpt-4o-mini)
    - ADVICE_LLM_TEMPERATURE: sampling temperature (default: 0.7)
    - ADVICE_LLM_MAX_TOKENS: max tokens per reply (default: 600)
    - ADVICE_LLM_TIMEOUT: per-request timeout in seconds (default: 30)
    - ADVICE_LLM_MAX_RETRIES: attempts per prompt (default: 3)
    - ADVICE_LLM_RETRY_DELAY: base delay between attempts in seconds (default: 1.0)
    """

    LLM_MODEL = os.getenv("ADVICE_LLM_MODEL", "gpt-4o-mini")
    LLM_TEMPERATURE = float(os.getenv("ADVICE_LLM_TEMPERATURE", "0.7"))
    LLM_MAX_TOKENS = int(os.getenv("ADVICE_LLM_MAX_TOKENS", "600"))
    LLM_TIMEOUT = float(os.getenv("ADVICE_LLM_TIMEOUT", "30"))
    LLM_MAX_RETRIES = int(os.getenv("ADVICE_LLM_MAX_RETRIES", "3"))
    LLM_RETRY_DELAY = float(os.getenv("ADVICE_LLM_RETRY_DELAY", "1.0"))

    def __init__(self, api_key: Optional[str] = None, openai_client=None):
        """
        Args:
            api_key: OpenAI API key, defaults to OPENAI_API_KEY
            openai_client: pre-built client object exposing chat.completions.create
        """
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self._openai_client = openai_client

    def _get_openai_client(self):
        """Get or create the OpenAI client instance (cached)."""
        if self._openai_client is None:
            if not self.api_key:
                raise ExternalServiceError("OPENAI_API_KEY is not set")
            from openai import OpenAI

            # Retries are handled by complete() so they show up in our logs.
            self._openai_client = OpenAI(
                api_key=self.api_key,
                timeout=self.LLM_TIMEOUT,
                max_retries=0,
            )
            logger.info("OpenAI client initialized successfully")
        return self._openai_client

    def complete(self, prompt: str) -> str:
        client = self._get_openai_client()

        last_error: Optional[Exception] = None
        for attempt in range(self.LLM_MAX_RETRIES):
            try:
                logger.debug(f"[LLM] Completion attempt {attempt + 1}/{self.LLM_MAX_RETRIES}")
                response = client.chat.completions.create(
                    model=self.LLM_MODEL,
                    messages=[{"role": "system", "content": prompt}],
                    temperature=self.LLM_TEMPERATURE,
                    max_tokens=self.LLM_MAX_TOKENS,
                )
                content = response.choices[0].message.content
                if not content or not content.strip():
                    raise ExternalServiceError("Empty completion returned by the model")
                logger.debug(f"[LLM] Response text:\n{content}")
                return content.strip()

            except Exception as e:
                last_error = e
                error_type = type(e).__name__
                error_msg = str(e)
                logger.warning(f"[LLM] Completion attempt {attempt + 1} failed: {error_type}: {error_msg}")

                error_lower = error_msg.lower()
                if "401" in error_msg or "authentication" in error_lower or "api key" in error_lower:
                    logger.error("[LLM] DIAGNOSIS: Authentication error - API key may be invalid or expired")
                elif "429" in error_msg or "rate limit" in error_lower:
                    logger.error("[LLM] DIAGNOSIS: Rate limit exceeded - wait before retrying")
                elif "timeout" in error_lower or "timed out" in error_lower:
                    logger.error(f"[LLM] DIAGNOSIS: Request timeout after {self.LLM_TIMEOUT}s")
                elif "network" in error_lower or "connection" in error_lower:
                    logger.error("[LLM] DIAGNOSIS: Network connectivity issue")

                if attempt < self.LLM_MAX_RETRIES - 1:
                    delay = self.LLM_RETRY_DELAY * (attempt + 1)
                    logger.debug(f"[LLM] Retrying in {delay} seconds...")
                    time.sleep(delay)

        raise ExternalServiceError(
            f"Completion failed after {self.LLM_MAX_RETRIES} attempts: {last_error}"
        ) from last_error


def extract_multiplier(text: str) -> float:
    """
    Return the first signed decimal number found in text.

    Raises:
        ValidationError: if text contains no number
    """
    match = _NUMBER_PATTERN.search(text or "")
    if not match:
        raise ValidationError(f"No numeric multiplier found in response: {text!r}")
    return float(match.group())


def get_carbon_multiplier(client: CompletionClient, prompt: str) -> Optional[float]:
    """
    Ask the client for a carbon multiplier.
    Any client error or unparseable reply yields None.
    """
    try:
        completion = client.complete(prompt)
        multiplier = extract_multiplier(completion)
    except (ExternalServiceError, ValidationError) as e:
        logger.warning(f"Carbon multiplier unavailable: {type(e).__name__}: {e}")
        return None
    logger.info(f"Parsed carbon multiplier: {multiplier}")
    return multiplier


def get_recommendation(client: CompletionClient, prompt: str) -> str:
    """
    Ask the client for free-form advice text.
    Failures come back as a string starting with ERROR_MARKER instead of raising.
    """
    try:
        return client.complete(prompt)
    except ExternalServiceError as e:
        logger.error(f"Recommendation request failed: {e}")
        return f"{ERROR_MARKER} {e}"


def is_degraded(text: Optional[str]) -> bool:
    return text is None or text.startswith(ERROR_MARKER)


def build_carbon_multiplier_prompt(category_name: str, description: Optional[str] = None) -> str:
    if description is None or not description.strip():
        return (
            "Provide a single numeric carbon footprint multiplier in kilograms of CO2 per dollar spent "
            f"for a transaction in the '{category_name}' category. Only provide the numeric multiplier."
        )
    return (
        "Provide a single numeric carbon footprint multiplier in kilograms of CO2 per dollar spent "
        f"for a transaction in the '{category_name}' category. "
        f"This is a description of the transaction: {description}. "
        "Only provide the numeric multiplier."
    )


_default_client: Optional[CompletionClient] = None


def get_completion_client() -> CompletionClient:
    """Dependency for FastAPI returning the process-wide completion client."""
    global _default_client
    if _default_client is None:
        _default_client = OpenAICompletionClient()
    return _default_client
