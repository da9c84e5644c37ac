"""Index artifact store: one JSON file per document, replaced atomically."""
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from models.document_index import DocumentIndex
from config import INDEXES_DIR

logger = logging.getLogger(__name__)


class FileIndexStore:
    """Persists DocumentIndex artifacts under a directory keyed by document id."""

    def __init__(self, directory: str = INDEXES_DIR):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        logger.info(f"Initialized FileIndexStore at {self.directory}")

    def path_for(self, document_id: str) -> Path:
        if not document_id or Path(document_id).name != document_id:
            raise ValueError(f"Invalid document id: {document_id!r}")
        return self.directory / f"{document_id}.json"

    def save(self, index: DocumentIndex) -> Path:
        """
        Write the index to a temp file and publish it with ``os.replace``.

        Readers see either the previous artifact or the new one, never a
        partially written file.
        """
        target = self.path_for(index.document_id)
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(index.to_dict(), f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, target)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

        logger.info(f"Saved index for {index.document_id} ({index.chunk_count} chunks) to {target}")
        return target

    def load(self, document_id: str) -> Optional[DocumentIndex]:
        """Load an index, or None when it has not been built or cannot be read."""
        try:
            path = self.path_for(document_id)
        except ValueError:
            return None

        if not path.is_file():
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                return DocumentIndex.from_dict(json.load(f))
        except (OSError, ValueError, KeyError) as e:
            logger.error(f"Failed to read index for {document_id}: {e}")
            return None

    def exists(self, document_id: str) -> bool:
        try:
            return self.path_for(document_id).is_file()
        except ValueError:
            return False
