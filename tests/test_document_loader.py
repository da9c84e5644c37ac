"""Unit tests for DocumentLoader."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import fitz
import pytest
from services.document_loader import DocumentLoader, DocumentNotFoundError


def make_pdf(page_texts):
    """Build an in-memory PDF with one text line per page."""
    pdf = fitz.open()
    for text in page_texts:
        page = pdf.new_page()
        page.insert_text((72, 72), text)
    data = pdf.tobytes()
    pdf.close()
    return data


@pytest.fixture
def loader(tmp_path):
    (tmp_path / "lecture.pdf").write_bytes(make_pdf(["Entropy basics", "Second law"]))
    return DocumentLoader(docs_directory=str(tmp_path))


class TestDocumentLoader:
    """Test suite for DocumentLoader."""

    def test_read_bytes(self, loader):
        assert loader.exists("lecture.pdf")
        assert loader.read_bytes("lecture.pdf").startswith(b"%PDF")

    def test_missing_document(self, loader):
        assert not loader.exists("missing.pdf")
        with pytest.raises(DocumentNotFoundError, match="missing.pdf"):
            loader.read_bytes("missing.pdf")

    def test_path_like_ids_are_rejected(self, loader):
        assert not loader.exists("../lecture.pdf")
        with pytest.raises(DocumentNotFoundError):
            loader.read_bytes("../lecture.pdf")

    def test_not_found_is_a_file_not_found_error(self, loader):
        with pytest.raises(FileNotFoundError):
            loader.read_bytes("missing.pdf")

    def test_label_is_document_id(self, loader):
        assert loader.label("lecture.pdf") == "lecture.pdf"

    def test_extract_page_texts(self, loader):
        pages = DocumentLoader.extract_page_texts(loader.read_bytes("lecture.pdf"))

        assert list(pages) == [1, 2]
        assert "Entropy basics" in pages[1]
        assert "Second law" in pages[2]
