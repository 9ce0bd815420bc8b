"""
LLM client for OpenAI-compatible scoring backends.

Provides a wrapper around the OpenAI SDK pointed at a configurable endpoint,
so the same client serves a local rule-backed model and a hosted reasoning
model. Includes retry logic with exponential backoff and error handling.
"""

import logging
import time

from openai import APIConnectionError, APIStatusError, APITimeoutError, OpenAI, RateLimitError

from exam_grader.config import BackendConfig

logger = logging.getLogger(__name__)


class LLMError(Exception):
    """Raised when a backend call fails."""

    def __init__(self, message: str, cause: Exception | None = None, retryable: bool = False):
        self.cause = cause
        self.retryable = retryable
        super().__init__(message)


class LLMClient:
    """
    Client for one OpenAI-compatible chat completions backend.

    Implements retry logic with exponential backoff. Timeouts and
    cancellation of individual requests are handled here, not by callers.
    """

    def __init__(self, backend: BackendConfig):
        """
        Initialize the LLM client.

        Args:
            backend: Connection details for the backend.
        """
        self._backend = backend
        self._client = OpenAI(
            api_key=backend.api_key,
            base_url=backend.base_url,
            timeout=backend.timeout_seconds,
            max_retries=0,
        )

        # Retry configuration
        self._max_retries = backend.max_retries
        self._base_delay = 1.0  # seconds
        self._max_delay = 30.0  # seconds

    @property
    def model(self) -> str:
        """Model identifier requests are sent to."""
        return self._backend.model

    @property
    def name(self) -> str:
        """Human-readable backend name used in logs."""
        return self._backend.name

    def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_mode: bool = True,
    ) -> str:
        """
        Generate a response from the backend.

        Args:
            system_prompt: System message defining the model's role.
            user_prompt: User message with the actual request.
            temperature: Override temperature (uses backend default if None).
            max_tokens: Override maximum tokens in response.
            json_mode: Ask the backend to return a JSON object.

        Returns:
            The generated text response.

        Raises:
            LLMError: If generation fails after all retries.
        """
        temp = temperature if temperature is not None else self._backend.temperature
        tokens = max_tokens or self._backend.max_tokens

        messages: list[dict[str, str]] = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]

        return self._call_with_retry(messages, temp, tokens, json_mode)

    def _call_with_retry(
        self,
        messages: list[dict[str, str]],
        temperature: float,
        max_tokens: int,
        json_mode: bool,
    ) -> str:
        """
        Call the API with exponential backoff retry.

        Args:
            messages: Chat messages to send.
            temperature: Temperature setting.
            max_tokens: Maximum response tokens.
            json_mode: Request a JSON object response format.

        Returns:
            Generated text.

        Raises:
            LLMError: If all retries fail.
        """
        last_error: Exception | None = None
        extra: dict[str, object] = {"response_format": {"type": "json_object"}} if json_mode else {}

        for attempt in range(self._max_retries + 1):
            try:
                response = self._client.chat.completions.create(
                    model=self._backend.model,
                    messages=messages,  # type: ignore[arg-type]
                    temperature=temperature,
                    max_tokens=max_tokens,
                    **extra,  # type: ignore[arg-type]
                )

                # Extract content from response
                if response.choices and response.choices[0].message.content:
                    return response.choices[0].message.content

                raise LLMError(f"Empty response from {self.name} backend")

            except LLMError:
                raise

            except (RateLimitError, APIConnectionError, APITimeoutError) as e:
                last_error = e
                if attempt < self._max_retries:
                    delay = self._calculate_delay(attempt)
                    logger.warning(
                        "%s backend unavailable (%s), retrying in %.1fs",
                        self.name,
                        type(e).__name__,
                        delay,
                    )
                    time.sleep(delay)
                    continue
                raise LLMError(
                    f"{self.name} backend unavailable after {self._max_retries} retries",
                    cause=e,
                    retryable=True,
                ) from e

            except APIStatusError as e:
                # Don't retry on client errors (4xx except 429)
                if 400 <= e.status_code < 500 and e.status_code != 429:
                    raise LLMError(
                        f"{self.name} backend rejected request: {e.message}",
                        cause=e,
                        retryable=False,
                    ) from e

                last_error = e
                if attempt < self._max_retries:
                    delay = self._calculate_delay(attempt)
                    logger.warning(
                        "%s backend returned %s, retrying in %.1fs",
                        self.name,
                        e.status_code,
                        delay,
                    )
                    time.sleep(delay)
                    continue
                raise LLMError(
                    f"{self.name} backend error after {self._max_retries} retries: {e.message}",
                    cause=e,
                    retryable=True,
                ) from e

            except Exception as e:
                raise LLMError(f"Unexpected error: {e}", cause=e, retryable=False) from e

        # Should not reach here, but just in case
        raise LLMError(f"Failed after {self._max_retries} retries", cause=last_error)

    def _calculate_delay(self, attempt: int) -> float:
        """
        Calculate delay for exponential backoff.

        Args:
            attempt: Current attempt number (0-indexed).

        Returns:
            Delay in seconds.
        """
        delay = self._base_delay * (2**attempt)
        return min(delay, self._max_delay)

    def health_check(self) -> bool:
        """
        Check if the backend is reachable.

        Returns:
            True if the backend answers, False otherwise.
        """
        try:
            response = self._client.chat.completions.create(
                model=self._backend.model,
                messages=[{"role": "user", "content": "ping"}],
                max_tokens=5,
            )
            return bool(response.choices)
        except Exception as e:
            logger.warning("%s backend health check failed: %s", self.name, e)
            return False
