"""Data models for the Deep Focus document Q&A service."""
from .chunk import Chunk, RetrievedChunk, Citation
from .document_index import DocumentIndex, IndexStatus, IndexState, InvalidTransitionError
from .conversation import Thread, Message, MessageRole
from .api import (
    ChatStreamRequest,
    TriggerIndexResponse,
    IndexStatusResponse,
    ThreadResponse,
    MessageOut,
    HistoryResponse,
)

__all__ = [
    "Chunk",
    "RetrievedChunk",
    "Citation",
    "DocumentIndex",
    "IndexStatus",
    "IndexState",
    "InvalidTransitionError",
    "Thread",
    "Message",
    "MessageRole",
    "ChatStreamRequest",
    "TriggerIndexResponse",
    "IndexStatusResponse",
    "ThreadResponse",
    "MessageOut",
    "HistoryResponse",
]
