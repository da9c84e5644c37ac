"""Index builder: checksum -> extract -> chunk -> embed -> persist, run in the background."""
import hashlib
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Mapping, Optional

from models.chunk import Chunk
from models.document_index import DocumentIndex, IndexState, IndexStatus
from services.chunking_engine import ChunkingEngine
from services.document_loader import DocumentLoader
from services.embedding_model import EmbeddingModel
from services.index_store import FileIndexStore
from config import EMBEDDING_BATCH_SIZE, INDEX_WORKERS

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]
TextExtractor = Callable[[bytes], Mapping[int, str]]

ALREADY_INDEXED = "File already indexed"
ALREADY_RUNNING = "Indexing already in progress"
STARTED = "Indexing started"


@dataclass
class TriggerResult:
    started: bool
    message: str


class IndexBuilder:
    """Builds and persists per-document indexes and tracks their status."""

    def __init__(
        self,
        document_loader: DocumentLoader,
        embedding_model: EmbeddingModel,
        index_store: FileIndexStore,
        status_store,
        chunking_engine: Optional[ChunkingEngine] = None,
        text_extractor: Optional[TextExtractor] = None,
        batch_size: int = EMBEDDING_BATCH_SIZE,
        max_workers: int = INDEX_WORKERS
    ):
        """
        Initialize the index builder.

        Args:
            document_loader: Source of raw document bytes
            embedding_model: Embedding capability
            index_store: Artifact store the retriever reads from
            status_store: Status records polled by clients
            chunking_engine: Chunker (defaults to configured sizes)
            text_extractor: Bytes -> {page: text}; defaults to PDF extraction
            batch_size: Chunks per embedding request
            max_workers: Background build threads
        """
        self.document_loader = document_loader
        self.embedding_model = embedding_model
        self.index_store = index_store
        self.status_store = status_store
        self.chunking_engine = chunking_engine or ChunkingEngine()
        self.text_extractor = text_extractor or DocumentLoader.extract_page_texts
        self.batch_size = batch_size

        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="indexer")
        self._in_flight: Dict[str, Future] = {}
        self._lock = threading.Lock()

    @staticmethod
    def compute_checksum(raw_bytes: bytes) -> str:
        """MD5 of the content; used for change detection only."""
        return hashlib.md5(raw_bytes).hexdigest()

    def chunk(
        self,
        page_texts: Mapping[int, str],
        chunk_size: Optional[int] = None,
        overlap: Optional[int] = None
    ) -> List[Chunk]:
        return self.chunking_engine.chunk(page_texts, chunk_size, overlap)

    def embed(self, chunks: List[Chunk]) -> List[Chunk]:
        """
        Attach embeddings to chunks, ``batch_size`` chunks per request.

        Vectors are re-aligned with their chunks by position.
        """
        embedded: List[Chunk] = []

        for start in range(0, len(chunks), self.batch_size):
            batch = chunks[start:start + self.batch_size]
            vectors = self.embedding_model.embed_batch([c.text for c in batch])
            if len(vectors) != len(batch):
                raise RuntimeError(
                    f"Expected {len(batch)} embeddings, got {len(vectors)}"
                )
            embedded.extend(
                replace(chunk, embedding=list(vector)) for chunk, vector in zip(batch, vectors)
            )
            logger.debug(f"Embedded chunks {start}-{start + len(batch) - 1} of {len(chunks)}")

        return embedded

    def build(
        self,
        document_id: str,
        raw_bytes: bytes,
        on_progress: Optional[ProgressCallback] = None
    ) -> DocumentIndex:
        """
        Build and persist the index for a document.

        Progress is reported at 10/30/50/80/100. Any exception aborts the
        build before the artifact is replaced, so a previous index stays
        servable.
        """
        report = on_progress or (lambda progress: None)
        start_time = time.time()
        logger.info(f"Starting indexing for document {document_id}")

        checksum = self.compute_checksum(raw_bytes)
        report(10)

        page_texts = self.text_extractor(raw_bytes)
        report(30)

        chunks = self.chunk(page_texts)
        logger.info(f"Chunked {len(page_texts)} pages into {len(chunks)} chunks for {document_id}")
        report(50)

        if chunks:
            chunks = self.embed(chunks)
        else:
            logger.warning(f"No text extracted from {document_id}; persisting an empty index")
        report(80)

        index = DocumentIndex(document_id=document_id, content_checksum=checksum, chunks=chunks)
        self.index_store.save(index)
        report(100)

        elapsed_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Indexed document {document_id}: {index.chunk_count} chunks in {elapsed_ms}ms",
            extra={"document_id": document_id, "chunk_count": index.chunk_count, "latency_ms": elapsed_ms}
        )
        return index

    def needs_reindex(self, document_id: str, checksum: str) -> bool:
        """True when no readable artifact exists or it was built from other content."""
        if not self.index_store.exists(document_id):
            return True
        existing = self.index_store.load(document_id)
        return existing is None or existing.content_checksum != checksum

    def status(self, document_id: str) -> IndexState:
        return self.status_store.get(document_id)

    def is_running(self, document_id: str) -> bool:
        with self._lock:
            return document_id in self._in_flight

    def trigger(self, document_id: str) -> TriggerResult:
        """
        Start indexing in the background and return immediately.

        Idempotent: an unchanged READY document is not re-embedded, and a
        document with a build in flight is not built twice.

        Raises:
            DocumentNotFoundError: If the document has no stored bytes
        """
        raw_bytes = self.document_loader.read_bytes(document_id)
        checksum = self.compute_checksum(raw_bytes)

        with self._lock:
            if document_id in self._in_flight:
                logger.info(f"Indexing already running for {document_id}")
                return TriggerResult(started=False, message=ALREADY_RUNNING)

            state = self.status_store.get(document_id)
            if state.status is IndexStatus.READY and not self.needs_reindex(document_id, checksum):
                logger.info(f"Document {document_id} unchanged, skipping re-index")
                return TriggerResult(started=False, message=ALREADY_INDEXED)

            if state.status is IndexStatus.INDEXING:
                # Left behind by a build that no longer runs in this process
                state.mark_error("Previous indexing run was interrupted")
            elif state.status is IndexStatus.READY:
                logger.info(f"Document {document_id} changed, triggering re-index")

            state.start(rebuild=state.status is IndexStatus.READY)
            self.status_store.save(state)

            future = self._executor.submit(self._run_build, document_id, raw_bytes)
            self._in_flight[document_id] = future

        future.add_done_callback(lambda f: self._on_build_done(document_id, f))
        return TriggerResult(started=True, message=STARTED)

    def wait(self, document_id: str, timeout: Optional[float] = None) -> IndexState:
        """
        Block until the in-flight build (if any) finishes, then return its status.

        Raises:
            concurrent.futures.TimeoutError: If the build outlasts ``timeout``;
                build failures themselves are reported through the status
        """
        with self._lock:
            future = self._in_flight.get(document_id)
        if future is not None:
            try:
                future.result(timeout=timeout)
            except FutureTimeoutError:
                raise
            except Exception:
                # Failure is already recorded in the status store
                pass
        return self.status(document_id)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _run_build(self, document_id: str, raw_bytes: bytes) -> IndexState:
        try:
            return self._build_and_record(document_id, raw_bytes)
        finally:
            # Cleared before the future resolves
            with self._lock:
                self._in_flight.pop(document_id, None)

    def _build_and_record(self, document_id: str, raw_bytes: bytes) -> IndexState:
        state = self.status_store.get(document_id)

        def on_progress(progress: int) -> None:
            try:
                state.report_progress(progress)
                self.status_store.save(state)
            except Exception as e:
                logger.error(f"Failed to update progress for {document_id}: {e}")

        try:
            index = self.build(document_id, raw_bytes, on_progress=on_progress)
        except Exception as e:
            logger.error(f"Failed to index {document_id}: {e}", exc_info=True)
            state.mark_error(str(e) or type(e).__name__)
            self.status_store.save(state)
            return state

        state.mark_ready(chunk_count=index.chunk_count, checksum=index.content_checksum)
        self.status_store.save(state)
        logger.info(f"Document {document_id} status set to READY")
        return state

    def _on_build_done(self, document_id: str, future: Future) -> None:
        error = future.exception()
        if error is None:
            return

        # Failure while recording status itself; make one more attempt to surface it
        logger.error(f"Unhandled error while indexing {document_id}: {error}", exc_info=error)
        try:
            state = self.status_store.get(document_id)
            if state.status is IndexStatus.INDEXING:
                state.mark_error(str(error) or type(error).__name__)
                self.status_store.save(state)
        except Exception as e:
            logger.error(f"Failed to record error status for {document_id}: {e}")
