"""Generation capability backed by the Groq chat completions API."""
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional
from groq import Groq
from groq import RateLimitError, AuthenticationError, APIError, APITimeoutError
import logging

from config import GROQ_API_KEY, CHAT_MODEL

logger = logging.getLogger(__name__)

ChatMessage = Dict[str, str]


@dataclass
class LLMResponse:
    """Response from a single (non-streaming) completion."""
    text: str
    tokens_input: int
    tokens_output: int
    latency_ms: int
    model_used: str


@dataclass
class LLMError:
    """Structured error response from LLM operations."""
    code: str
    message: str
    details: Dict[str, Any]


class LLMClientError(Exception):
    """Custom exception for LLM client errors with structured error information."""

    def __init__(self, error: LLMError):
        self.error = error
        super().__init__(error.message)


def _classify(e: Exception) -> tuple:
    if isinstance(e, RateLimitError):
        return "RATE_LIMIT_ERROR", "Rate limit exceeded. Please try again in a few moments."
    if isinstance(e, AuthenticationError):
        return "AUTHENTICATION_ERROR", "Authentication failed. Please check your API key."
    if isinstance(e, APITimeoutError):
        return "TIMEOUT_ERROR", "Request timed out. Please try again."
    if isinstance(e, APIError):
        return "API_ERROR", f"Groq API error: {str(e)}"
    return "UNKNOWN_ERROR", f"Unexpected error during generation: {str(e)}"


class LLMClient:
    """Client for interfacing with Groq API for completions and token streams."""

    def __init__(self, api_key: Optional[str] = None, model: str = CHAT_MODEL):
        """
        Initialize LLM client with Groq API key.

        Args:
            api_key: Groq API key (defaults to GROQ_API_KEY from environment)
            model: Default chat model
        """
        self.api_key = api_key or GROQ_API_KEY
        if not self.api_key:
            raise ValueError("GROQ_API_KEY must be provided or set in environment")

        self.model = model
        self.client = Groq(api_key=self.api_key)
        logger.info("LLMClient initialized successfully")

    def complete(
        self,
        messages: List[ChatMessage],
        temperature: float = 0.2,
        max_tokens: int = 500,
        model: Optional[str] = None
    ) -> LLMResponse:
        """
        Generate a single completion.

        Args:
            messages: Ordered role-tagged messages
            temperature: Determinism control
            max_tokens: Maximum tokens to generate
            model: Override for the default model

        Returns:
            LLMResponse with text, token counts, and latency

        Raises:
            LLMClientError: Structured error with code, message, and details
        """
        model = model or self.model
        start_time = time.time()

        try:
            logger.debug(f"Generating completion with model: {model}")
            response = self.client.chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature
            )
        except Exception as e:
            raise self._wrap_error(e, model, start_time)

        latency_ms = int((time.time() - start_time) * 1000)
        text = response.choices[0].message.content or ""
        tokens_input = response.usage.prompt_tokens
        tokens_output = response.usage.completion_tokens

        logger.info(
            f"Generated response: model={model}, "
            f"input_tokens={tokens_input}, output_tokens={tokens_output}, "
            f"latency={latency_ms}ms"
        )

        return LLMResponse(
            text=text,
            tokens_input=tokens_input,
            tokens_output=tokens_output,
            latency_ms=latency_ms,
            model_used=model
        )

    def stream(
        self,
        messages: List[ChatMessage],
        temperature: float = 0.2,
        model: Optional[str] = None
    ) -> Iterator[str]:
        """
        Stream a completion as incremental text fragments in arrival order.

        Closing the generator early releases the provider connection.

        Raises:
            LLMClientError: On any provider failure, before or during the stream
        """
        model = model or self.model
        start_time = time.time()

        try:
            stream = self.client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=temperature,
                stream=True
            )
        except Exception as e:
            raise self._wrap_error(e, model, start_time)

        try:
            for chunk in stream:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    yield content
        except Exception as e:
            raise self._wrap_error(e, model, start_time)
        finally:
            stream.close()

    @staticmethod
    def _wrap_error(e: Exception, model: str, start_time: float) -> LLMClientError:
        latency_ms = int((time.time() - start_time) * 1000)
        code, message = _classify(e)
        details = {
            "model": model,
            "latency_ms": latency_ms,
            "original_error": str(e)
        }
        if code == "RATE_LIMIT_ERROR":
            details["retry_after"] = 60
        elif code == "UNKNOWN_ERROR":
            details["error_type"] = type(e).__name__

        error = LLMError(code=code, message=message, details=details)
        logger.error(
            f"LLM error: code={code}, model={model}, latency={latency_ms}ms, error={e}",
            exc_info=True,
            extra={"error_code": error.code, "error_details": error.details}
        )
        return LLMClientError(error)
