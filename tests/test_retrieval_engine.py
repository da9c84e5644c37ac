"""Unit tests for RetrievalEngine."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from unittest.mock import Mock
from models.chunk import Chunk, RetrievedChunk
from models.document_index import DocumentIndex
from services.llm_client import LLMResponse
from services.retrieval_engine import (
    NO_INDEX_ERROR,
    RetrievalEngine,
    has_definition_indicators,
    priority_boost,
)


def _chunk(seq, embedding=None, text=None, tokens=0, pages=(1, 1)):
    return Chunk(
        sequence_no=seq,
        page_start=pages[0],
        page_end=pages[1],
        text=text if text is not None else f"plain section number {seq}",
        token_estimate=tokens,
        embedding=embedding,
    )


def _llm_response(text):
    return LLMResponse(text=text, tokens_input=10, tokens_output=10, latency_ms=5, model_used="llama-3.1-8b-instant")


@pytest.fixture
def embedding_model():
    return Mock()


@pytest.fixture
def index_store():
    return Mock()


@pytest.fixture
def engine(index_store, embedding_model):
    return RetrievalEngine(index_store, embedding_model, llm_client=None)


class TestPriorityBoost:
    """Test suite for the ranking boosts."""

    def test_position_boost_decays_to_zero(self):
        assert priority_boost(_chunk(0), 5) == pytest.approx(0.15)
        assert priority_boost(_chunk(2), 5) == pytest.approx(0.075)
        assert priority_boost(_chunk(4), 5) == pytest.approx(0.0)

    def test_single_chunk_gets_full_position_boost(self):
        assert priority_boost(_chunk(0), 1) == pytest.approx(0.15)

    def test_definition_and_length_boosts(self):
        chunk = _chunk(4, text="entropy is defined as the measure of disorder", tokens=120)
        assert priority_boost(chunk, 5) == pytest.approx(0.15)

    def test_length_boost_bounds(self):
        assert priority_boost(_chunk(1, tokens=50), 2) == pytest.approx(0.05)
        assert priority_boost(_chunk(1, tokens=200), 2) == pytest.approx(0.05)
        assert priority_boost(_chunk(1, tokens=201), 2) == pytest.approx(0.0)

    def test_definition_indicators(self):
        assert has_definition_indicators("entropy refers to disorder")
        assert has_definition_indicators("Entropy: the amount of disorder")
        assert not has_definition_indicators("plain section number 3")


class TestRank:
    """Test suite for boosted MMR ranking."""

    @pytest.fixture
    def three_chunks(self):
        return [
            _chunk(0, embedding=[0.0, 1.0]),
            _chunk(1, embedding=[1.0, 0.0]),
            _chunk(2, embedding=[1.0, 0.1]),
        ]

    def test_top_one_is_best_match(self, engine, three_chunks):
        ranked = engine.rank([[1.0, 0.0]], three_chunks, k=1)

        assert len(ranked) == 1
        assert ranked[0].chunk.sequence_no == 1
        assert ranked[0].similarity == pytest.approx(1.0)

    def test_pure_relevance_orders_by_boosted_similarity(self, engine, three_chunks):
        ranked = engine.rank([[1.0, 0.0]], three_chunks, k=3, mmr_lambda=1.0)
        assert [r.chunk.sequence_no for r in ranked] == [1, 2, 0]

    def test_diversity_prefers_dissimilar_chunk(self, engine, three_chunks):
        ranked = engine.rank([[1.0, 0.0]], three_chunks, k=3, mmr_lambda=0.3)
        assert [r.chunk.sequence_no for r in ranked] == [1, 0, 2]

    def test_returns_min_of_k_and_n_distinct_chunks(self, engine, three_chunks):
        ranked = engine.rank([[1.0, 0.0]], three_chunks, k=8)

        assert len(ranked) == 3
        assert len({r.chunk.sequence_no for r in ranked}) == 3

    def test_similarity_is_capped(self, engine, three_chunks):
        ranked = engine.rank([[1.0, 0.0]], three_chunks, k=3)
        for item in ranked:
            assert 0.0 <= item.similarity <= 1.0

    def test_query_centroid(self, engine):
        chunks = [_chunk(0, embedding=[1.0, 0.0]), _chunk(1, embedding=[0.0, 1.0])]
        # centroid of the two queries points at chunk 1's direction more strongly
        ranked = engine.rank([[0.0, 1.0], [0.2, 1.0]], chunks, k=1)
        assert ranked[0].chunk.sequence_no == 1

    def test_missing_embeddings_rank_nothing(self, engine):
        assert engine.rank([[1.0, 0.0]], [_chunk(0, embedding=None)], k=1) == []

    def test_empty_inputs(self, engine):
        assert engine.rank([[1.0, 0.0]], [], k=3) == []
        assert engine.rank([], [_chunk(0, embedding=[1.0, 0.0])], k=3) == []


class TestCompress:
    """Test suite for context compression."""

    @pytest.fixture
    def ranked(self):
        return [
            RetrievedChunk(chunk=_chunk(i, text=f"{i}" * 400, tokens=100), similarity=0.9 - i * 0.1)
            for i in range(3)
        ]

    def test_keeps_whole_chunks_within_budget(self, engine, ranked):
        compressed = engine.compress(ranked, max_tokens=300)
        assert [c.chunk.sequence_no for c in compressed] == [0, 1, 2]

    def test_small_remainder_is_dropped(self, engine, ranked):
        compressed = engine.compress(ranked, max_tokens=250)

        assert [c.chunk.sequence_no for c in compressed] == [0, 1]
        assert sum(c.chunk.token_estimate for c in compressed) <= 250

    def test_overflowing_chunk_is_truncated(self, engine, ranked):
        compressed = engine.compress(ranked, max_tokens=280)

        assert len(compressed) == 3
        last = compressed[-1]
        assert last.chunk.text.endswith("...")
        assert last.chunk.token_estimate == 80
        assert sum(c.chunk.token_estimate for c in compressed) <= 280
        # the stored chunk is untouched
        assert ranked[2].chunk.token_estimate == 100

    def test_stops_after_first_overflow(self, engine):
        ranked = [
            RetrievedChunk(chunk=_chunk(0, text="a" * 400, tokens=100), similarity=0.9),
            RetrievedChunk(chunk=_chunk(1, text="b" * 1200, tokens=300), similarity=0.8),
            RetrievedChunk(chunk=_chunk(2, text="c" * 40, tokens=10), similarity=0.7),
        ]
        compressed = engine.compress(ranked, max_tokens=180)

        assert [c.chunk.sequence_no for c in compressed] == [0, 1]
        assert compressed[1].chunk.token_estimate == 80


class TestQueryExpansion:
    """Test suite for query expansion."""

    def test_no_llm_returns_original(self, engine):
        assert engine.expand_query("What is entropy?") == ["What is entropy?"]

    def test_alternatives_are_appended(self, index_store, embedding_model):
        llm = Mock()
        llm.complete.return_value = _llm_response(
            "How is entropy defined?\n\nWhat does entropy mean?\nA third one\n"
        )
        engine = RetrievalEngine(index_store, embedding_model, llm_client=llm)

        queries = engine.expand_query("What is entropy?")

        assert queries == ["What is entropy?", "How is entropy defined?", "What does entropy mean?"]
        kwargs = llm.complete.call_args.kwargs
        assert kwargs["temperature"] == 0.3
        assert kwargs["max_tokens"] == 150

    def test_overlong_lines_are_dropped(self, index_store, embedding_model):
        llm = Mock()
        llm.complete.return_value = _llm_response("x" * 600 + "\nShort alternative")
        engine = RetrievalEngine(index_store, embedding_model, llm_client=llm)

        assert engine.expand_query("q") == ["q", "Short alternative"]

    def test_provider_failure_falls_back(self, index_store, embedding_model):
        llm = Mock()
        llm.complete.side_effect = Exception("provider down")
        engine = RetrievalEngine(index_store, embedding_model, llm_client=llm)

        assert engine.expand_query("What is entropy?") == ["What is entropy?"]


class TestRetrieve:
    """Test suite for the full retrieval pipeline."""

    def test_blank_query_returns_empty_result(self, engine, index_store):
        result = engine.retrieve("doc.pdf", "   ")

        assert result.chunks == []
        assert result.error is None
        index_store.load.assert_not_called()

    def test_missing_index(self, engine, index_store):
        index_store.load.return_value = None

        result = engine.retrieve("never-indexed.pdf", "What is entropy?")

        assert result.error == NO_INDEX_ERROR
        assert result.chunks == []
        assert not result.index_found

    def test_empty_index(self, engine, index_store):
        index_store.load.return_value = DocumentIndex(document_id="doc.pdf", content_checksum="abc", chunks=[])

        result = engine.retrieve("doc.pdf", "What is entropy?")

        assert result.error == NO_INDEX_ERROR
        assert result.index_found

    def test_retrieves_relevant_pages(self, engine, index_store, embedding_model):
        keywords = ["entropy", "enthalpy", "kinetics"]

        def keyword_vector(text):
            lowered = text.lower()
            return [float(lowered.count(k)) for k in keywords]

        chunks = [
            _chunk(0, text="enthalpy of formation tables", pages=(1, 1)),
            _chunk(1, text="entropy entropy and the second law", pages=(2, 2)),
            _chunk(2, text="reaction kinetics and rate constants", pages=(3, 3)),
        ]
        for chunk in chunks:
            chunk.embedding = keyword_vector(chunk.text)
        index_store.load.return_value = DocumentIndex(document_id="doc.pdf", content_checksum="abc", chunks=chunks)
        embedding_model.embed_batch.side_effect = lambda texts: [keyword_vector(t) for t in texts]

        result = engine.retrieve("doc.pdf", "Explain entropy")

        assert result.error is None
        assert result.chunks[0].chunk.page_start == 2
        assert result.total_tokens == sum(c.chunk.token_estimate for c in result.chunks)
        embedding_model.embed_batch.assert_called_once_with(["Explain entropy"])

    def test_embedding_failure_is_reported_not_raised(self, engine, index_store, embedding_model):
        index_store.load.return_value = DocumentIndex(
            document_id="doc.pdf", content_checksum="abc", chunks=[_chunk(0, embedding=[1.0, 0.0])]
        )
        embedding_model.embed_batch.side_effect = RuntimeError("Rate limit exceeded. Please try again later.")

        result = engine.retrieve("doc.pdf", "What is entropy?")

        assert result.chunks == []
        assert "Rate limit exceeded" in result.error
