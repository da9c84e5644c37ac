"""Embedding capability backed by the Hugging Face Inference API."""
import time
import logging
from numbers import Number
from typing import Any, List
import httpx
from config import HUGGINGFACE_API_KEY, EMBEDDING_MODEL

logger = logging.getLogger(__name__)

MAX_BACKOFF_SECONDS = 60.0
SLOW_REQUEST_SECONDS = 10.0


class EmbeddingRequestError(RuntimeError):
    """A single failed request; ``retryable`` marks transient failures."""

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class EmbeddingModel:
    """Turns batches of strings into fixed-length vectors, order preserved."""

    def __init__(
        self,
        api_key: str = HUGGINGFACE_API_KEY,
        model_name: str = EMBEDDING_MODEL,
        max_retries: int = 5,
        initial_delay: float = 5.0,
        timeout: float = 120.0
    ):
        """
        Initialize the embedding model client.

        Args:
            api_key: Hugging Face API key
            model_name: Model identifier
            max_retries: Attempts per batch for 503, timeout and network errors
            initial_delay: First backoff delay in seconds; doubles up to 60s
            timeout: Request timeout in seconds
        """
        if not api_key:
            raise ValueError("HUGGINGFACE_API_KEY environment variable is required")

        self.api_key = api_key
        self.model_name = model_name
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.timeout = timeout
        self.api_url = f"https://api-inference.huggingface.co/models/{model_name}"

        logger.info(f"Initialized EmbeddingModel with model: {model_name}")

    def embed_text(self, text: str) -> List[float]:
        """
        Embed a single string.

        Raises:
            ValueError: If text is empty
            RuntimeError: If the request fails after all retries
        """
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")

        return self._embed_with_retry([text])[0]

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Embed many strings in one request.

        Blank strings are rejected rather than skipped: callers re-align the
        returned vectors with their inputs by position.

        Args:
            texts: Texts to embed

        Returns:
            One vector per input text, in input order

        Raises:
            ValueError: If texts is empty or contains blank strings
            RuntimeError: If the request fails after all retries or returns
                the wrong number of vectors
        """
        if not texts:
            raise ValueError("Texts list cannot be empty")

        blank = [i for i, t in enumerate(texts) if not t or not t.strip()]
        if blank:
            raise ValueError(f"Texts at positions {blank} are empty")

        embeddings = self._embed_with_retry(texts)
        if len(embeddings) != len(texts):
            raise RuntimeError(
                f"Embedding API returned {len(embeddings)} vectors for {len(texts)} texts"
            )
        return embeddings

    def _embed_with_retry(self, texts: List[str]) -> List[List[float]]:
        """
        Retry transient failures with exponential backoff.

        Free-tier models sleep when idle and answer 503 for the 15-20s they
        take to load.
        """
        delay = self.initial_delay
        last_error = None

        for attempt in range(1, self.max_retries + 1):
            try:
                return self._request(texts, attempt)
            except EmbeddingRequestError as e:
                if not e.retryable:
                    raise
                last_error = str(e)
                logger.warning(f"{last_error} on attempt {attempt}/{self.max_retries}")

            if attempt < self.max_retries:
                logger.info(f"Retrying embedding request in {delay}s")
                time.sleep(delay)
                delay = min(delay * 2, MAX_BACKOFF_SECONDS)

        error_msg = f"Failed to generate embeddings after {self.max_retries} attempts. Last error: {last_error}"
        logger.error(error_msg)
        raise RuntimeError(error_msg)

    def _request(self, texts: List[str], attempt: int) -> List[List[float]]:
        """One POST to the inference endpoint."""
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }
        payload = {"inputs": texts, "options": {"wait_for_model": True}}

        start_time = time.time()
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(self.api_url, headers=headers, json=payload)
        except httpx.TimeoutException:
            raise EmbeddingRequestError(f"Request timeout after {self.timeout}s", retryable=True)
        except httpx.RequestError as e:
            raise EmbeddingRequestError(f"Network error: {e}", retryable=True)
        elapsed = time.time() - start_time

        if response.status_code == 503:
            raise EmbeddingRequestError("Model loading (503)", retryable=True)
        if response.status_code == 429:
            logger.error("Rate limit exceeded for Hugging Face API")
            raise EmbeddingRequestError("Rate limit exceeded. Please try again later.")
        if response.status_code == 401:
            logger.error("Authentication failed for Hugging Face API")
            raise EmbeddingRequestError("Invalid API key")
        if response.status_code != 200:
            error_msg = f"API request failed with status {response.status_code}: {response.text}"
            logger.error(error_msg)
            raise EmbeddingRequestError(error_msg)

        if elapsed > SLOW_REQUEST_SECONDS:
            logger.info(f"Model loading delay detected: {elapsed:.1f}s for {len(texts)} texts (attempt {attempt})")
        else:
            logger.debug(f"Generated embeddings for {len(texts)} texts in {elapsed:.2f}s")

        return _as_vectors(response.json())


def _as_vectors(payload: Any) -> List[List[float]]:
    """Validate the response is a list of numeric vectors."""
    if not isinstance(payload, list) or not all(
        isinstance(row, list) and row and all(isinstance(x, Number) for x in row)
        for row in payload
    ):
        raise EmbeddingRequestError("Unexpected embedding response shape")
    return [[float(x) for x in row] for row in payload]
