"""Main entry point for the Deep Focus document Q&A API."""
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from starlette.concurrency import iterate_in_threadpool

from config import PORT, CORS_ORIGINS, STORAGE_BACKEND
from models.api import (
    ChatStreamRequest,
    HistoryResponse,
    IndexStatusResponse,
    MessageOut,
    ThreadResponse,
    TriggerIndexResponse,
)
from services.chat_orchestrator import ChatOrchestrator, ChatTurn
from services.conversation_manager import ConversationManager
from services.document_loader import DocumentLoader, DocumentNotFoundError
from services.embedding_model import EmbeddingModel
from services.index_builder import IndexBuilder
from services.index_store import FileIndexStore
from services.llm_client import LLMClient
from services.message_store import InMemoryMessageStore, SupabaseMessageStore
from services.retrieval_engine import RetrievalEngine
from services.status_store import InMemoryIndexStatusStore, SupabaseIndexStatusStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Explicitly constructed dependencies shared by the route handlers."""
    index_builder: IndexBuilder
    conversation_manager: ConversationManager
    orchestrator: ChatOrchestrator


def build_services() -> Services:
    """Construct the production service graph from configuration."""
    logger.info("Initializing Deep Focus services...")

    document_loader = DocumentLoader()
    embedding_model = EmbeddingModel()
    llm_client = LLMClient()
    index_store = FileIndexStore()

    if STORAGE_BACKEND == "supabase":
        status_store = SupabaseIndexStatusStore()
        message_store = SupabaseMessageStore()
    else:
        status_store = InMemoryIndexStatusStore()
        message_store = InMemoryMessageStore()
    logger.info(f"Using {STORAGE_BACKEND} storage backend")

    index_builder = IndexBuilder(document_loader, embedding_model, index_store, status_store)
    retrieval_engine = RetrievalEngine(index_store, embedding_model, llm_client)
    conversation_manager = ConversationManager(message_store, llm_client)
    orchestrator = ChatOrchestrator(retrieval_engine, conversation_manager, llm_client, document_loader)

    logger.info("All services initialized successfully")
    return Services(
        index_builder=index_builder,
        conversation_manager=conversation_manager,
        orchestrator=orchestrator,
    )


def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Create the API application.

    Args:
        services: Pre-built services; when omitted they are built from
            configuration on startup.
    """
    app = FastAPI(
        title="Deep Focus",
        description="Ask questions about a single document with retrieval-augmented generation",
        version="1.0.0"
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def startup_event():
        if app.state.services is None:
            try:
                app.state.services = build_services()
            except Exception as e:
                logger.error(f"Failed to initialize services: {e}", exc_info=True)
                raise

    @app.on_event("shutdown")
    async def shutdown_event():
        if app.state.services is not None:
            app.state.services.index_builder.shutdown(wait=False)

    def get_services() -> Services:
        if app.state.services is None:
            raise HTTPException(status_code=503, detail="Services not initialized")
        return app.state.services

    @app.get("/")
    async def root():
        """Health check endpoint."""
        return {"status": "ok", "message": "Deep Focus API"}

    @app.get("/health")
    async def health():
        """Detailed health check."""
        return {
            "status": "healthy",
            "service": "deep-focus",
            "version": "1.0.0"
        }

    @app.post("/indexes/{document_id}/trigger", response_model=TriggerIndexResponse)
    def trigger_index(document_id: str) -> TriggerIndexResponse:
        """Start indexing a document in the background; returns immediately."""
        try:
            result = get_services().index_builder.trigger(document_id)
        except DocumentNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return TriggerIndexResponse(success=True, started=result.started, message=result.message)

    @app.get("/indexes/{document_id}/status", response_model=IndexStatusResponse)
    def index_status(document_id: str) -> IndexStatusResponse:
        state = get_services().index_builder.status(document_id)
        return IndexStatusResponse(
            status=state.status.value,
            progress=state.progress,
            chunk_count=state.chunk_count,
            error_message=state.error_message,
        )

    @app.post("/chat/threads/{document_id}", response_model=ThreadResponse)
    def start_or_resume_thread(document_id: str) -> ThreadResponse:
        thread_id = get_services().conversation_manager.get_or_create_thread(document_id)
        return ThreadResponse(thread_id=thread_id)

    @app.get("/chat/threads/{thread_id}/messages", response_model=HistoryResponse)
    def thread_history(thread_id: str) -> HistoryResponse:
        messages = get_services().conversation_manager.get_history(thread_id)
        return HistoryResponse(messages=[MessageOut(**m.to_dict()) for m in messages])

    @app.post("/chat/stream")
    async def chat_stream(body: ChatStreamRequest, request: Request):
        """
        Stream an answer as Server-Sent Events.

        Event types: ``timing``, ``token``, ``error`` and ``done``. The stream
        ends after ``done`` or ``error``.
        """
        if not body.message or not body.message.strip():
            raise HTTPException(status_code=400, detail="Message is required and cannot be empty")

        services = get_services()
        turn = ChatTurn(
            document_id=body.document_id,
            thread_id=body.thread_id,
            message=body.message,
            system_prompt=body.system_prompt,
        )

        async def generate_stream():
            events = services.orchestrator.run_turn(turn)
            try:
                async for event in iterate_in_threadpool(events):
                    if await request.is_disconnected():
                        logger.info(f"Client disconnected from thread {turn.thread_id}; stopping stream")
                        break
                    yield event.to_sse().encode("utf-8")
            finally:
                try:
                    events.close()
                except ValueError:
                    # Still running in a worker thread; it is closed once that step returns
                    logger.debug(f"Deferred close of chat turn for thread {turn.thread_id}")

        return StreamingResponse(
            generate_stream(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no"
            }
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting Deep Focus API on port {PORT}")
    uvicorn.run(app, host="0.0.0.0", port=PORT)
