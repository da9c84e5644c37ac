"""Chunking engine: greedy word accumulation with overlap and page provenance."""
import logging
from typing import List, Mapping, NamedTuple, Optional

from models.chunk import Chunk
from services.tokens import TokenEstimator, default_estimator
from config import CHUNK_SIZE, CHUNK_OVERLAP

logger = logging.getLogger(__name__)


class _Word(NamedTuple):
    text: str
    page: int
    tokens: int


class ChunkingEngine:
    """Segments per-page document text into token-bounded, overlapping chunks."""

    def __init__(
        self,
        chunk_size: int = CHUNK_SIZE,
        chunk_overlap: int = CHUNK_OVERLAP,
        estimator: Optional[TokenEstimator] = None
    ):
        """
        Initialize ChunkingEngine.

        Args:
            chunk_size: Maximum estimated tokens per chunk
            chunk_overlap: Number of trailing words carried into the next chunk
            estimator: Token estimation strategy (defaults to 4 chars per token)
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if chunk_overlap < 0:
            raise ValueError("chunk_overlap cannot be negative")

        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.estimator = estimator or default_estimator

    def chunk(
        self,
        page_texts: Mapping[int, str],
        chunk_size: Optional[int] = None,
        overlap: Optional[int] = None
    ) -> List[Chunk]:
        """
        Chunk page texts in reading order.

        A chunk closes when adding the next word would push its running token
        estimate past ``chunk_size``. The next chunk is seeded with the last
        ``overlap`` words of the closed one. The final partial buffer is always
        flushed.

        Args:
            page_texts: Mapping of page number to text
            chunk_size: Override for the configured chunk size
            overlap: Override for the configured overlap

        Returns:
            Chunks with dense zero-based sequence numbers
        """
        chunk_size = self.chunk_size if chunk_size is None else chunk_size
        overlap = self.chunk_overlap if overlap is None else overlap

        chunks: List[Chunk] = []
        buffer: List[_Word] = []
        running_tokens = 0

        for page_number in sorted(page_texts):
            for word in page_texts[page_number].split():
                word_tokens = self.estimator.estimate(word + " ")

                if buffer and running_tokens + word_tokens > chunk_size:
                    chunks.append(self._make_chunk(len(chunks), buffer))

                    buffer = buffer[-overlap:] if overlap > 0 else []
                    running_tokens = sum(w.tokens for w in buffer)
                    # Overlap may never crowd out the word that triggered the split
                    while buffer and running_tokens + word_tokens > chunk_size:
                        running_tokens -= buffer.pop(0).tokens

                buffer.append(_Word(word, page_number, word_tokens))
                running_tokens += word_tokens

        if buffer:
            chunks.append(self._make_chunk(len(chunks), buffer))

        logger.info(f"Created {len(chunks)} chunks from {len(page_texts)} pages")
        return chunks

    def _make_chunk(self, sequence_no: int, words: List[_Word]) -> Chunk:
        text = " ".join(w.text for w in words)
        return Chunk(
            sequence_no=sequence_no,
            page_start=words[0].page,
            page_end=words[-1].page,
            text=text,
            token_estimate=self.estimator.estimate(text),
        )
