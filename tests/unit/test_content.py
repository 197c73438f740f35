"""
Unit tests for attachment loading and text extraction.
"""

import asyncio
import io

import pytest
from docx import Document
from pypdf import PdfWriter

from conftest import make_attachment

from docdetect.core.content import (
    ContentPipeline,
    DirectoryContentLoader,
    extract_text,
    make_content_pipeline,
)
from docdetect.core.errors import ContentError, DownloadError, ExtractionError

DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def _docx_bytes(*paragraphs):
    document = Document()
    for paragraph in paragraphs:
        document.add_paragraph(paragraph)
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def _blank_pdf_bytes(pages=2):
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=612, height=792)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


class TestExtractText:
    """Tests for best-effort extraction."""

    def test_plain_text(self):
        assert extract_text("Jane Doe – Engineer".encode("utf-8"), "text/plain") == "Jane Doe – Engineer"

    def test_invalid_utf8_replaced(self):
        assert extract_text(b"Jane \xff Doe", "text/plain; charset=utf-8") == "Jane � Doe"

    def test_docx(self):
        text = extract_text(_docx_bytes("Jane Doe", "Senior Engineer"), DOCX_MIME)
        assert "Jane Doe\nSenior Engineer" in text

    def test_pdf_pages_joined_with_form_feed(self):
        text = extract_text(_blank_pdf_bytes(pages=2), "application/pdf")
        # Blank pages carry no text but keep their separator
        assert text.strip() == ""

    def test_corrupt_pdf_returns_empty(self):
        assert extract_text(b"%PDF-1.4 truncated garbage", "application/pdf") == ""

    def test_unsupported_type_returns_empty(self):
        assert extract_text(b"\x89PNG\r\n", "image/png") == ""

    def test_empty_content(self):
        assert extract_text(b"", "application/pdf") == ""


class TestContentPipeline:
    """Tests for loader error mapping."""

    def _load(self, loader, attachment=None, extractor=None):
        pipeline = ContentPipeline(loader, extractor) if extractor else ContentPipeline(loader)
        return asyncio.run(pipeline.load_text(attachment or make_attachment("cv.txt", "text/plain")))

    def test_sync_loader_bytes(self):
        assert self._load(lambda a: b"hello world") == "hello world"

    def test_async_loader(self):
        async def loader(attachment):
            return b"async bytes"

        assert self._load(loader) == "async bytes"

    def test_loader_object_with_load_method(self):
        class Loader:
            def load(self, attachment):
                return attachment.filename.encode()

        assert self._load(Loader()) == "cv.txt"

    def test_text_returned_as_is(self):
        assert self._load(lambda a: "already extracted") == "already extracted"

    def test_loader_failure_is_download_error(self):
        def loader(attachment):
            raise ConnectionResetError("peer reset")

        with pytest.raises(DownloadError, match="peer reset"):
            self._load(loader)

    def test_loader_returning_none_is_download_error(self):
        with pytest.raises(DownloadError):
            self._load(lambda a: None)

    def test_extractor_failure_is_extraction_error(self):
        def extractor(content, mime_type):
            raise ValueError("bad encoding")

        with pytest.raises(ExtractionError) as exc_info:
            self._load(lambda a: b"data", extractor=extractor)
        assert isinstance(exc_info.value, ContentError)

    def test_non_callable_loader_rejected(self):
        with pytest.raises(TypeError):
            ContentPipeline("not a loader")

    def test_make_content_pipeline(self):
        pipeline = ContentPipeline(lambda a: b"")

        assert make_content_pipeline(pipeline) is pipeline
        assert make_content_pipeline(None) is None
        assert isinstance(make_content_pipeline(lambda a: b""), ContentPipeline)


class TestDirectoryContentLoader:
    """Tests for the local-directory loader."""

    def test_loads_by_filename(self, tmp_path):
        (tmp_path / "cv.pdf").write_bytes(b"pdf bytes")
        loader = DirectoryContentLoader(str(tmp_path))

        assert loader(make_attachment("cv.pdf")) == b"pdf bytes"

    def test_falls_back_to_id(self, tmp_path):
        (tmp_path / "att-1").write_bytes(b"by id")
        loader = DirectoryContentLoader(str(tmp_path))

        assert loader.load(make_attachment("missing.pdf", attachment_id="att-1")) == b"by id"

    def test_stays_inside_base_dir(self, tmp_path):
        (tmp_path / "secret.txt").write_bytes(b"outside")
        base = tmp_path / "attachments"
        base.mkdir()
        loader = DirectoryContentLoader(str(base))

        with pytest.raises(DownloadError):
            loader.load(make_attachment("../secret.txt", attachment_id="x"))

    def test_missing_file(self, tmp_path):
        loader = DirectoryContentLoader(str(tmp_path))

        with pytest.raises(DownloadError, match="not found"):
            loader.load(make_attachment("cv.pdf"))
