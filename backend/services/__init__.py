"""Services for the Deep Focus document Q&A pipeline."""
from .tokens import TokenEstimator, CharRatioTokenEstimator, TiktokenEstimator
from .document_loader import DocumentLoader, DocumentNotFoundError
from .chunking_engine import ChunkingEngine
from .embedding_model import EmbeddingModel, EmbeddingRequestError
from .llm_client import LLMClient, LLMResponse, LLMError, LLMClientError
from .index_store import FileIndexStore
from .status_store import InMemoryIndexStatusStore, SupabaseIndexStatusStore
from .message_store import InMemoryMessageStore, SupabaseMessageStore
from .index_builder import IndexBuilder, TriggerResult
from .retrieval_engine import RetrievalEngine, RetrievalResult
from .conversation_manager import ConversationManager
from .prompt_builder import PromptBuilder, PromptResult
from .chat_orchestrator import ChatOrchestrator, ChatTurn, StreamEvent

__all__ = [
    'TokenEstimator', 'CharRatioTokenEstimator', 'TiktokenEstimator',
    'DocumentLoader', 'DocumentNotFoundError', 'ChunkingEngine', 'EmbeddingModel', 'EmbeddingRequestError',
    'LLMClient', 'LLMResponse', 'LLMError', 'LLMClientError',
    'FileIndexStore', 'InMemoryIndexStatusStore', 'SupabaseIndexStatusStore',
    'InMemoryMessageStore', 'SupabaseMessageStore',
    'IndexBuilder', 'TriggerResult', 'RetrievalEngine', 'RetrievalResult',
    'ConversationManager', 'PromptBuilder', 'PromptResult',
    'ChatOrchestrator', 'ChatTurn', 'StreamEvent',
]
