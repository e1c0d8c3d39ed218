"""Validation and inspection of uploaded files.

Uploads are classified from their content, not only their name: PDFs
are opened with pdfplumber, Word documents with python-docx and images
with Pillow. Thesis documents get a page count (PDF) or a word count
(DOCX) recorded alongside them.
"""

from __future__ import annotations

import io
import zipfile
from dataclasses import dataclass
from typing import Optional

import docx
import pdfplumber
from PIL import Image

from ..errors import UnsupportedMediaError, ValidationFailedError

_OLE_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"

DOCUMENT_KINDS = frozenset({"pdf", "image", "docx", "doc"})


@dataclass(frozen=True)
class UploadInfo:
    kind: str
    page_count: Optional[int] = None
    word_count: Optional[int] = None


def validate_upload_filename(filename: Optional[str]) -> str:
    if not filename or len(filename) > 200:
        raise ValidationFailedError("invalid filename")
    if "/" in filename or "\\" in filename:
        raise ValidationFailedError("invalid filename path")
    return filename


def read_limited(file_obj, max_bytes: int) -> bytes:
    """Read at most `max_bytes`; larger uploads are rejected."""
    payload = file_obj.read(max_bytes + 1)
    if len(payload) > max_bytes:
        raise ValidationFailedError("file too large")
    if not payload:
        raise ValidationFailedError("empty file")
    return payload


def _pdf_pages(payload: bytes) -> int:
    try:
        with pdfplumber.open(io.BytesIO(payload)) as pdf:
            return len(pdf.pages)
    except Exception:
        raise UnsupportedMediaError("corrupt or unreadable PDF")


def _docx_words(payload: bytes) -> int:
    try:
        document = docx.Document(io.BytesIO(payload))
    except Exception:
        raise UnsupportedMediaError("corrupt or unreadable Word document")
    return sum(len(p.text.split()) for p in document.paragraphs)


def _is_image(payload: bytes) -> bool:
    try:
        Image.open(io.BytesIO(payload)).verify()
        return True
    except Exception:
        return False


def inspect_upload(payload: bytes, filename: str, content_type: Optional[str], allow_other: bool = False) -> UploadInfo:
    """Classify an upload and extract cheap metadata.

    Raises `UnsupportedMediaError` for content that is neither a PDF, an
    image nor an Office document, unless `allow_other` is set.
    """
    lower = filename.lower()
    if payload[:4] == b"%PDF" or content_type == "application/pdf":
        return UploadInfo(kind="pdf", page_count=_pdf_pages(payload))
    if zipfile.is_zipfile(io.BytesIO(payload)):
        if lower.endswith(".docx"):
            return UploadInfo(kind="docx", word_count=_docx_words(payload))
        if lower.endswith(".xlsx"):
            return UploadInfo(kind="xlsx")
    if payload[:8] == _OLE_MAGIC:
        if lower.endswith(".doc"):
            return UploadInfo(kind="doc")
        if lower.endswith(".xls"):
            return UploadInfo(kind="xls")
    if _is_image(payload):
        return UploadInfo(kind="image")
    if allow_other:
        return UploadInfo(kind="other")
    raise UnsupportedMediaError("unsupported file content; expected PDF, image or Word document")


def resource_file_type(info: UploadInfo) -> str:
    if info.kind == "pdf":
        return "PDF"
    if info.kind in ("docx", "doc"):
        return "DOCX"
    if info.kind in ("xlsx", "xls"):
        return "EXCEL"
    return "OTHER"
