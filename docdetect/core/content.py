"""
Attachment content loading and text extraction for Stage 3.

The loader (download) is injected by the caller. Extraction is best-effort:
unsupported or corrupt content yields an empty string, which the AI
classifier treats as insufficient text.
"""

import io
import logging
import os
from concurrent.futures import Executor
from typing import Any, Callable, Optional

from docx import Document
from pypdf import PdfReader

from .errors import DownloadError, ExtractionError
from .models import AttachmentMetadata
from .policy import normalize_mime_type
from ..utils.async_utils import call_collaborator

logger = logging.getLogger(__name__)

PDF_MIME_TYPES = {"application/pdf"}
DOCX_MIME_TYPES = {"application/vnd.openxmlformats-officedocument.wordprocessingml.document"}
TEXT_MIME_TYPES = {"text/plain", "text/rtf", "application/rtf", "text/markdown"}

# Page separator used when joining PDF pages; Stage 3 keeps the first page only
PAGE_SEPARATOR = "\f"


def extract_pdf_text(content: bytes) -> str:
    reader = PdfReader(io.BytesIO(content))
    return PAGE_SEPARATOR.join((page.extract_text() or "") for page in reader.pages)


def extract_docx_text(content: bytes) -> str:
    document = Document(io.BytesIO(content))
    return "\n".join(p.text for p in document.paragraphs)


def extract_text(content: bytes, mime_type: str) -> str:
    """
    Extract plain text from attachment bytes.

    Args:
        content: Raw attachment bytes
        mime_type: Declared MIME type

    Returns:
        Extracted text, or "" for unsupported or unreadable content
    """
    if not content:
        return ""

    mime = normalize_mime_type(mime_type)
    try:
        if mime in PDF_MIME_TYPES:
            return extract_pdf_text(content)
        if mime in DOCX_MIME_TYPES:
            return extract_docx_text(content)
        if mime in TEXT_MIME_TYPES:
            return content.decode("utf-8", errors="replace")
    except Exception as e:
        logger.warning(f"Text extraction failed for {mime}: {e}")
        return ""

    logger.debug(f"No text extractor for {mime!r}")
    return ""


class ContentPipeline:
    """
    Download then extract, with collaborator failures mapped to the
    pipeline's error types.

    Usage:
        pipeline = ContentPipeline(loader)
        text = await pipeline.load_text(attachment)
    """

    def __init__(
        self,
        loader: Callable[[AttachmentMetadata], Any],
        extractor: Callable[[bytes, str], str] = extract_text,
        executor: Optional[Executor] = None,
    ):
        """
        Args:
            loader: load(attachment) -> bytes, sync or async. Objects with
                a load() method are accepted too.
            extractor: extract(bytes, mime_type) -> str
            executor: Thread pool for a blocking loader (default pool if None)
        """
        load = getattr(loader, "load", loader)
        if not callable(load):
            raise TypeError("content_loader must be callable or expose load()")
        self._load = load
        self._extract = extractor
        self._executor = executor

    async def load_text(self, attachment: AttachmentMetadata) -> str:
        """
        A loader returning str is taken as already-extracted text.

        Raises:
            DownloadError: The loader failed or returned no bytes object
            ExtractionError: The extractor raised
        """
        try:
            content = await call_collaborator(self._load, attachment, executor=self._executor)
        except DownloadError:
            raise
        except Exception as e:
            raise DownloadError(f"Could not load {attachment.filename!r}: {e}") from e

        if isinstance(content, str):
            return content
        if not isinstance(content, (bytes, bytearray)):
            raise DownloadError(
                f"Loader returned {type(content).__name__} for {attachment.filename!r}"
            )

        try:
            return self._extract(bytes(content), attachment.mime_type) or ""
        except Exception as e:
            raise ExtractionError(f"Could not extract {attachment.filename!r}: {e}") from e


class DirectoryContentLoader:
    """
    Content loader reading attachment bytes from a local directory.

    Files are looked up by attachment filename, then by attachment id.
    """

    def __init__(self, base_dir: str):
        self.base_dir = os.path.abspath(base_dir)

    def _candidates(self, attachment: AttachmentMetadata):
        for name in (attachment.filename, attachment.id):
            if name:
                # basename() keeps lookups inside base_dir
                yield os.path.join(self.base_dir, os.path.basename(name))

    def load(self, attachment: AttachmentMetadata) -> bytes:
        for path in self._candidates(attachment):
            if os.path.isfile(path):
                with open(path, "rb") as f:
                    return f.read()
        raise DownloadError(
            f"Attachment {attachment.filename!r} not found in {self.base_dir}"
        )

    def __call__(self, attachment: AttachmentMetadata) -> bytes:
        return self.load(attachment)


def make_content_pipeline(
    loader: Optional[Callable], executor: Optional[Executor] = None
) -> Optional[ContentPipeline]:
    """Wrap a loader in a ContentPipeline unless it already is one."""
    if loader is None or isinstance(loader, ContentPipeline):
        return loader
    return ContentPipeline(loader, executor=executor)
