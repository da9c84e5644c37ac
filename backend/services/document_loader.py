"""Document source and per-page text extraction for PDF files."""
import logging
from pathlib import Path
from typing import Dict
import fitz  # PyMuPDF

from config import DOCS_DIRECTORY

logger = logging.getLogger(__name__)


class DocumentNotFoundError(FileNotFoundError):
    """Raised when no stored bytes exist for a document id."""


class DocumentLoader:
    """Serves raw document bytes from disk and extracts text page by page."""

    def __init__(self, docs_directory: str = DOCS_DIRECTORY):
        """
        Initialize DocumentLoader.

        Args:
            docs_directory: Directory holding uploaded PDFs, one file per document id
        """
        self.docs_directory = Path(docs_directory)

    def _path_for(self, document_id: str) -> Path:
        # document ids are bare file names; anything path-like is rejected
        if not document_id or Path(document_id).name != document_id:
            raise DocumentNotFoundError(f"Invalid document id: {document_id!r}")
        return self.docs_directory / document_id

    def exists(self, document_id: str) -> bool:
        try:
            return self._path_for(document_id).is_file()
        except DocumentNotFoundError:
            return False

    def read_bytes(self, document_id: str) -> bytes:
        """
        Read the stored bytes for a document.

        Raises:
            DocumentNotFoundError: If the document is not on disk
        """
        path = self._path_for(document_id)
        if not path.is_file():
            logger.error(f"Document not found: {path}")
            raise DocumentNotFoundError(f"Document not found: {document_id}")
        return path.read_bytes()

    def label(self, document_id: str) -> str:
        """Human-readable document name used in prompts."""
        return document_id

    @staticmethod
    def extract_page_texts(raw_bytes: bytes) -> Dict[int, str]:
        """
        Extract text from a PDF, organized by page.

        Args:
            raw_bytes: PDF file content

        Returns:
            Ordered mapping of 1-indexed page number to page text
        """
        page_texts: Dict[int, str] = {}

        pdf_document = fitz.open(stream=raw_bytes, filetype="pdf")
        try:
            for page_num in range(len(pdf_document)):
                page = pdf_document[page_num]
                page_texts[page_num + 1] = page.get_text()
        finally:
            pdf_document.close()

        logger.info(f"Extracted text from {len(page_texts)} pages")
        return page_texts
