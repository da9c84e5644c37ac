"""Document index artifact and indexing state machine."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .chunk import Chunk
from .timestamps import parse_timestamp


@dataclass
class DocumentIndex:
    """Immutable per-document index artifact."""
    document_id: str
    content_checksum: str
    chunks: List[Chunk]
    built_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def chunk_count(self) -> int:
        return len(self.chunks)

    @property
    def is_empty(self) -> bool:
        return not self.chunks

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document_id": self.document_id,
            "content_checksum": self.content_checksum,
            "built_at": self.built_at.isoformat(),
            "chunk_count": self.chunk_count,
            "chunks": [chunk.to_dict() for chunk in self.chunks],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DocumentIndex":
        return cls(
            document_id=data["document_id"],
            content_checksum=data["content_checksum"],
            chunks=[Chunk.from_dict(c) for c in data.get("chunks", [])],
            built_at=parse_timestamp(data["built_at"]),
        )


class IndexStatus(str, Enum):
    PENDING = "PENDING"
    INDEXING = "INDEXING"
    READY = "READY"
    ERROR = "ERROR"


class InvalidTransitionError(ValueError):
    """Raised when an index state change is not allowed from the current status."""

    def __init__(self, current: IndexStatus, target: IndexStatus):
        self.current = current
        self.target = target
        super().__init__(f"Cannot transition index from {current.value} to {target.value}")


@dataclass
class IndexState:
    """
    Status record polled by clients while a document is indexed.

    Allowed transitions:
        PENDING  -> INDEXING
        ERROR    -> INDEXING
        READY    -> INDEXING   (explicit rebuild only)
        INDEXING -> INDEXING   (progress updates)
        INDEXING -> READY | ERROR
    """
    document_id: str
    status: IndexStatus = IndexStatus.PENDING
    progress: int = 0
    chunk_count: int = 0
    checksum: Optional[str] = None
    error_message: Optional[str] = None
    indexed_at: Optional[datetime] = None

    def start(self, rebuild: bool = False) -> None:
        """Enter INDEXING. A READY index is only left through an explicit rebuild."""
        allowed = {IndexStatus.PENDING, IndexStatus.ERROR}
        if rebuild:
            allowed.add(IndexStatus.READY)
        if self.status not in allowed:
            raise InvalidTransitionError(self.status, IndexStatus.INDEXING)
        self.status = IndexStatus.INDEXING
        self.progress = 0
        self.error_message = None

    def report_progress(self, progress: int) -> None:
        self._require_indexing(IndexStatus.INDEXING)
        self.progress = max(0, min(100, int(progress)))

    def mark_ready(self, chunk_count: int, checksum: str) -> None:
        self._require_indexing(IndexStatus.READY)
        self.status = IndexStatus.READY
        self.progress = 100
        self.chunk_count = chunk_count
        self.checksum = checksum
        self.error_message = None
        self.indexed_at = datetime.now(timezone.utc)

    def mark_error(self, message: str) -> None:
        # checksum and chunk_count keep describing the last READY index
        self._require_indexing(IndexStatus.ERROR)
        self.status = IndexStatus.ERROR
        self.error_message = message

    def _require_indexing(self, target: IndexStatus) -> None:
        if self.status is not IndexStatus.INDEXING:
            raise InvalidTransitionError(self.status, target)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document_id": self.document_id,
            "status": self.status.value,
            "progress": self.progress,
            "chunk_count": self.chunk_count,
            "checksum": self.checksum,
            "error_message": self.error_message,
            "indexed_at": self.indexed_at.isoformat() if self.indexed_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IndexState":
        indexed_at = data.get("indexed_at")
        return cls(
            document_id=data["document_id"],
            status=IndexStatus(data.get("status", IndexStatus.PENDING.value)),
            progress=data.get("progress") or 0,
            chunk_count=data.get("chunk_count") or 0,
            checksum=data.get("checksum"),
            error_message=data.get("error_message"),
            indexed_at=parse_timestamp(indexed_at) if indexed_at else None,
        )
