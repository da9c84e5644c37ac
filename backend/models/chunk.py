"""Chunk data models."""
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional


@dataclass
class Chunk:
    """A token-bounded slice of document text with page provenance."""
    sequence_no: int  # dense, zero-based, reading order
    page_start: int
    page_end: int
    text: str
    token_estimate: int = 0
    embedding: Optional[List[float]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence_no": self.sequence_no,
            "page_start": self.page_start,
            "page_end": self.page_end,
            "text": self.text,
            "token_estimate": self.token_estimate,
            "embedding": self.embedding,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Chunk":
        return cls(
            sequence_no=data["sequence_no"],
            page_start=data["page_start"],
            page_end=data["page_end"],
            text=data["text"],
            token_estimate=data.get("token_estimate", 0),
            embedding=data.get("embedding"),
        )


@dataclass
class RetrievedChunk:
    """Chunk with boosted, capped similarity from retrieval."""
    chunk: Chunk
    similarity: float  # 0.0 to 1.0

    def with_text(self, text: str, token_estimate: int) -> "RetrievedChunk":
        """Copy of this result carrying truncated text."""
        return RetrievedChunk(
            chunk=replace(self.chunk, text=text, token_estimate=token_estimate),
            similarity=self.similarity,
        )

    def citation(self) -> "Citation":
        return Citation(
            page_start=self.chunk.page_start,
            page_end=self.chunk.page_end,
            chunk_no=self.chunk.sequence_no,
        )


@dataclass
class Citation:
    """Minimal record attached to an assistant message for jump-to-page."""
    page_start: int
    page_end: int
    chunk_no: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "page_start": self.page_start,
            "page_end": self.page_end,
            "chunk_no": self.chunk_no,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Citation":
        return cls(
            page_start=data["page_start"],
            page_end=data["page_end"],
            chunk_no=data["chunk_no"],
        )
