"""Token estimation strategies."""
import math
import logging

import tiktoken

from config import CHARS_PER_TOKEN

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "..."


class TokenEstimator:
    """Base strategy: estimate tokens for a string and truncate to a budget."""

    def estimate(self, text: str) -> int:
        raise NotImplementedError

    def truncate(self, text: str, max_tokens: int, marker: str = TRUNCATION_MARKER) -> str:
        """
        Return the longest prefix of ``text`` plus ``marker`` whose estimate fits ``max_tokens``.

        Returns an empty string when not even the marker fits.
        """
        if max_tokens <= 0 or self.estimate(marker) > max_tokens:
            return ""
        if self.estimate(text) <= max_tokens:
            return text

        char_limit = max(0, max_tokens * CHARS_PER_TOKEN - len(marker))
        truncated = text[:char_limit] + marker
        while char_limit > 0 and self.estimate(truncated) > max_tokens:
            char_limit = max(0, char_limit - CHARS_PER_TOKEN)
            truncated = text[:char_limit] + marker
        return truncated


class CharRatioTokenEstimator(TokenEstimator):
    """Rough approximation: 1 token ~= ``ratio`` characters."""

    def __init__(self, ratio: int = CHARS_PER_TOKEN):
        if ratio <= 0:
            raise ValueError("ratio must be positive")
        self.ratio = ratio

    def estimate(self, text: str) -> int:
        return math.ceil(len(text) / self.ratio)


class TiktokenEstimator(TokenEstimator):
    """Exact token counts from a tiktoken encoding."""

    def __init__(self, encoding_name: str = "o200k_base"):
        self.encoder = tiktoken.get_encoding(encoding_name)
        logger.info(f"Initialized tiktoken estimator ({encoding_name})")

    def estimate(self, text: str) -> int:
        return len(self.encoder.encode(text))


default_estimator = CharRatioTokenEstimator()
