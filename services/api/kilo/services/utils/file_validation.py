"""
Upload type and PDF checks.
"""

import logging
import os

import fitz  # PyMuPDF

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = frozenset(
    {
        # Documents
        "application/pdf",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/msword",
        "text/plain",
        "application/json",
        "text/markdown",
        "text/csv",
        # Source files
        "text/javascript",
        "application/javascript",
        "text/x-python",
        "text/x-java",
        "text/x-c",
        "text/x-c++",
        "text/x-csharp",
        "text/x-go",
        "text/x-rust",
        "text/x-typescript",
        "text/html",
        "text/css",
        "application/xml",
        "text/xml",
    }
)

# Type sent to the document store when the client label is missing or unusable
EXTENSION_MIME_TYPES = {
    ".pdf": "application/pdf",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".doc": "application/msword",
    ".txt": "text/plain",
    ".json": "application/json",
    ".md": "text/markdown",
    ".csv": "text/csv",
    ".js": "text/javascript",
    ".jsx": "text/javascript",
    ".ts": "text/x-typescript",
    ".tsx": "text/x-typescript",
    ".py": "text/x-python",
    ".java": "text/x-java",
    ".c": "text/x-c",
    ".cpp": "text/x-c++",
    ".cs": "text/x-csharp",
    ".go": "text/x-go",
    ".rs": "text/x-rust",
    ".html": "text/html",
    ".css": "text/css",
    ".xml": "application/xml",
}

ALLOWED_EXTENSIONS = frozenset(EXTENSION_MIME_TYPES)

UNSUPPORTED_TYPE_MESSAGE = (
    "Unsupported file type. Allowed formats: PDF, Word (.docx), Text (.txt, .md), "
    "JSON, CSV, and common programming files (.js, .py, .java, etc.)"
)


class InvalidPdfError(ValueError):
    """The uploaded bytes could not be opened as a PDF."""


def file_extension(filename: str) -> str:
    return os.path.splitext(filename)[1].lower()


def _base_type(mime_type: str | None) -> str:
    if not mime_type:
        return ""
    return mime_type.split(";")[0].strip().lower()


def resolve_mime_type(filename: str, mime_type: str | None) -> str | None:
    """
    The allowed MIME type to record and upload, or None if the file is not allowed.

    The client label wins when it is on the allow-list; otherwise (missing,
    generic such as application/octet-stream, or mislabelled) the type is
    taken from the extension.
    """
    base_type = _base_type(mime_type)
    if base_type in ALLOWED_MIME_TYPES:
        return base_type
    return EXTENSION_MIME_TYPES.get(file_extension(filename))


def is_allowed_file_type(filename: str, mime_type: str | None) -> bool:
    return resolve_mime_type(filename, mime_type) is not None


def is_pdf(filename: str, mime_type: str | None) -> bool:
    if _base_type(mime_type) == "application/pdf":
        return True
    return file_extension(filename) == ".pdf"


def count_pdf_pages(pdf_bytes: bytes) -> int:
    """
    Count the pages of a PDF.

    Raises:
        InvalidPdfError: If the bytes are not a readable PDF
    """
    try:
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    except Exception as e:
        raise InvalidPdfError(str(e)) from e

    try:
        page_count = doc.page_count
    finally:
        doc.close()

    if page_count < 1:
        raise InvalidPdfError("PDF has no pages")
    return page_count
