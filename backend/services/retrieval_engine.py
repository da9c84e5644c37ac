"""Retrieval engine: query expansion, boosted MMR ranking and context compression."""
import logging
import re
import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from models.chunk import Chunk, RetrievedChunk
from services.embedding_model import EmbeddingModel
from services.index_store import FileIndexStore
from services.llm_client import LLMClient
from services.tokens import TokenEstimator, default_estimator
from config import RETRIEVAL_TOP_K, MMR_LAMBDA, MAX_CONTEXT_TOKENS, EXPANSION_MODEL

logger = logging.getLogger(__name__)

NO_INDEX_ERROR = "No index found or index is empty"

MAX_EXPANSIONS = 2
MIN_PARTIAL_TOKENS = 50

POSITION_BOOST = 0.15
DEFINITION_BOOST = 0.10
LENGTH_BOOST = 0.05
LENGTH_BOOST_RANGE = (50, 200)

EXPANSION_PROMPT = (
    "Generate 2 alternative phrasings of the user's question. "
    "Return only the alternatives, one per line."
)

DEFINITION_PATTERNS = [
    re.compile(r"\bis defined as\b", re.IGNORECASE),
    re.compile(r"\brefers to\b", re.IGNORECASE),
    re.compile(r"\bmeans that\b", re.IGNORECASE),
    re.compile(r"\bis an?\b", re.IGNORECASE),
    re.compile(r"\bdefin(e|ition|ed)\b", re.IGNORECASE),
    re.compile(r"\bcharacterized by\b", re.IGNORECASE),
    re.compile(r"\bcan be described as\b", re.IGNORECASE),
    re.compile(r"\bessentially\b", re.IGNORECASE),
    re.compile(r"\bin other words\b", re.IGNORECASE),
    re.compile(r"^[A-Z][a-z]+:?\s", re.MULTILINE),  # capitalized term at line start
]


def has_definition_indicators(text: str) -> bool:
    """Check if a chunk likely contains a definition."""
    return any(pattern.search(text) for pattern in DEFINITION_PATTERNS)


def priority_boost(chunk: Chunk, total_chunks: int) -> float:
    """
    Boost early, definition-like and concise chunks.

    The position boost decays linearly from 0.15 on the first chunk to 0 on
    the last one.
    """
    if total_chunks > 1:
        position = POSITION_BOOST * (1 - chunk.sequence_no / (total_chunks - 1))
    else:
        position = POSITION_BOOST
    boost = max(0.0, position)

    if has_definition_indicators(chunk.text):
        boost += DEFINITION_BOOST

    low, high = LENGTH_BOOST_RANGE
    if low <= chunk.token_estimate <= high:
        boost += LENGTH_BOOST

    return boost


def _normalize_rows(matrix: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return matrix / norms


@dataclass
class RetrievalResult:
    chunks: List[RetrievedChunk] = field(default_factory=list)
    total_tokens: int = 0
    error: Optional[str] = None
    index_found: bool = True  # False only when no artifact exists


class RetrievalEngine:
    """Ranks a document's chunks against a query and fits them to a token budget."""

    def __init__(
        self,
        index_store: FileIndexStore,
        embedding_model: EmbeddingModel,
        llm_client: Optional[LLMClient] = None,
        top_k: int = RETRIEVAL_TOP_K,
        mmr_lambda: float = MMR_LAMBDA,
        max_context_tokens: int = MAX_CONTEXT_TOKENS,
        estimator: Optional[TokenEstimator] = None
    ):
        """
        Initialize the retrieval engine.

        Args:
            index_store: Source of persisted document indexes
            embedding_model: Embedding capability for queries
            llm_client: Generation capability for query expansion (None disables it)
            top_k: Number of chunks selected by MMR
            mmr_lambda: Relevance/diversity trade-off (1.0 = pure relevance)
            max_context_tokens: Budget for the compressed result set
            estimator: Token estimation strategy
        """
        self.index_store = index_store
        self.embedding_model = embedding_model
        self.llm_client = llm_client
        self.top_k = top_k
        self.mmr_lambda = mmr_lambda
        self.max_context_tokens = max_context_tokens
        self.estimator = estimator or default_estimator
        logger.info("Initialized RetrievalEngine")

    def expand_query(self, query: str) -> List[str]:
        """
        Ask the model for up to 2 alternative phrasings.

        Falls back to ``[query]`` when no generation capability is configured
        or the provider fails.
        """
        if self.llm_client is None:
            return [query]

        try:
            response = self.llm_client.complete(
                messages=[
                    {"role": "system", "content": EXPANSION_PROMPT},
                    {"role": "user", "content": query},
                ],
                temperature=0.3,
                max_tokens=150,
                model=EXPANSION_MODEL
            )
        except Exception as e:
            logger.warning(f"Query expansion failed, using original query: {e}")
            return [query]

        alternatives = [
            line.strip() for line in (response.text or "").split("\n")
            if line.strip() and len(line.strip()) < 500
        ]
        return [query] + alternatives[:MAX_EXPANSIONS]

    def embed_queries(self, queries: List[str]) -> List[List[float]]:
        """Embed the whole expansion set in one call."""
        return self.embedding_model.embed_batch(queries)

    def rank(
        self,
        query_vectors: Sequence[Sequence[float]],
        chunks: List[Chunk],
        k: Optional[int] = None,
        mmr_lambda: Optional[float] = None
    ) -> List[RetrievedChunk]:
        """
        Maximal Marginal Relevance selection over priority-boosted similarities.

        The first pick is the highest boosted similarity; each later pick
        maximises ``lambda * relevance - (1 - lambda) * max_sim_to_selected``,
        ties going to the earlier candidate.
        """
        k = self.top_k if k is None else k
        mmr_lambda = self.mmr_lambda if mmr_lambda is None else mmr_lambda

        if not chunks or k <= 0 or len(query_vectors) == 0:
            return []
        if any(chunk.embedding is None for chunk in chunks):
            logger.warning("Index contains chunks without embeddings; nothing to rank")
            return []

        centroid = np.mean(np.asarray(query_vectors, dtype=float), axis=0)
        centroid_norm = np.linalg.norm(centroid)
        embeddings = _normalize_rows(np.asarray([c.embedding for c in chunks], dtype=float))

        if centroid_norm == 0:
            base = np.zeros(len(chunks))
        else:
            base = embeddings @ (centroid / centroid_norm)

        total = len(chunks)
        boosted = np.array([
            min(1.0, max(0.0, base[i] + priority_boost(chunk, total)))
            for i, chunk in enumerate(chunks)
        ])

        # Stable sort keeps reading order among equal scores
        order = sorted(range(total), key=lambda i: -boosted[i])
        pairwise = embeddings @ embeddings.T

        selected: List[int] = [order[0]]
        remaining = order[1:]

        while len(selected) < k and remaining:
            best_score = -np.inf
            best_pos = 0
            for pos, candidate in enumerate(remaining):
                redundancy = max(pairwise[candidate, s] for s in selected)
                score = mmr_lambda * boosted[candidate] - (1 - mmr_lambda) * redundancy
                if score > best_score:
                    best_score = score
                    best_pos = pos
            selected.append(remaining.pop(best_pos))

        return [RetrievedChunk(chunk=chunks[i], similarity=float(boosted[i])) for i in selected]

    def compress(
        self,
        ranked_chunks: List[RetrievedChunk],
        max_tokens: Optional[int] = None
    ) -> List[RetrievedChunk]:
        """
        Keep chunks in rank order while they fit ``max_tokens``.

        The first chunk that overflows is truncated to the remaining budget
        (when more than 50 tokens remain) and accumulation stops.
        """
        max_tokens = self.max_context_tokens if max_tokens is None else max_tokens
        compressed: List[RetrievedChunk] = []
        total_tokens = 0

        for item in ranked_chunks:
            if total_tokens + item.chunk.token_estimate <= max_tokens:
                compressed.append(item)
                total_tokens += item.chunk.token_estimate
                continue

            remaining = max_tokens - total_tokens
            if remaining > MIN_PARTIAL_TOKENS:
                text = self.estimator.truncate(item.chunk.text, remaining)
                compressed.append(item.with_text(text, self.estimator.estimate(text)))
            break

        return compressed

    def retrieve(self, document_id: str, query: str) -> RetrievalResult:
        """
        Full retrieval pipeline for one query.

        Never raises: failures come back in ``RetrievalResult.error``.
        """
        if not query or not query.strip():
            logger.warning("Empty query string provided, returning empty results")
            return RetrievalResult()

        try:
            start_time = time.time()

            index = self.index_store.load(document_id)
            if index is None:
                return RetrievalResult(error=NO_INDEX_ERROR, index_found=False)
            if index.is_empty:
                logger.warning(f"Index for {document_id} has no chunks")
                return RetrievalResult(error=NO_INDEX_ERROR)
            logger.info(f"Loaded index for {document_id} with {index.chunk_count} chunks")

            stage = time.time()
            queries = self.expand_query(query)
            expand_ms = int((time.time() - stage) * 1000)

            stage = time.time()
            query_vectors = self.embed_queries(queries)
            embed_ms = int((time.time() - stage) * 1000)

            stage = time.time()
            ranked = self.rank(query_vectors, index.chunks)
            rank_ms = int((time.time() - stage) * 1000)

            compressed = self.compress(ranked)
            total_tokens = sum(item.chunk.token_estimate for item in compressed)

            definition_like = sum(1 for item in ranked if has_definition_indicators(item.chunk.text))
            logger.info(
                f"Retrieved {len(compressed)} chunks ({total_tokens} tokens) for {document_id}: "
                f"{len(queries)} query variants, {definition_like} definition-like, "
                f"expand={expand_ms}ms embed={embed_ms}ms rank={rank_ms}ms "
                f"total={int((time.time() - start_time) * 1000)}ms"
            )

            return RetrievalResult(chunks=compressed, total_tokens=total_tokens)

        except Exception as e:
            logger.error(f"Failed to retrieve chunks for {document_id}: {e}", exc_info=True)
            return RetrievalResult(error=str(e) or type(e).__name__)
