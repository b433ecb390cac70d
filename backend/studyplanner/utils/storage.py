"""On-disk storage for uploaded course documents.

Files are stored content-addressed (sha256 of the bytes plus the original
suffix) below the documents directory, so uploading the same file twice
reuses one copy on disk.
"""

from __future__ import annotations

import hashlib
import io
import logging
import re
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from ..config import settings

logger = logging.getLogger("studyplanner.storage")

OFFICE_SUFFIXES = {".docx", ".pptx", ".xlsx", ".odt", ".odp", ".ods"}
TEXT_SUFFIXES = {".txt", ".md", ".csv"}
_STORAGE_KEY_RE = re.compile(r"^[0-9a-f]{64}(\.[a-z0-9]{1,10})?$")


def get_documents_root() -> Path:
    """Return (and create) the base directory for stored documents."""
    root = settings.DOCUMENTS_DIR
    root.mkdir(parents=True, exist_ok=True)
    return root


def validate_filename(filename: str) -> None:
    if not filename or len(filename) > 200:
        raise ValueError("invalid filename")
    if "/" in filename or "\\" in filename or filename in (".", ".."):
        raise ValueError("invalid filename path")


def sniff_document_kind(payload: bytes, filename: str) -> str:
    """Classify an upload as ``pdf``, ``image``, ``office`` or ``text``.

    Only the bytes and the file suffix count; the client-supplied content
    type is not trusted. Raises ValueError for anything else.
    """
    suffix = Path(filename).suffix.lower()
    if payload[:5] == b"%PDF-":
        return "pdf"
    if payload[:4] == b"PK\x03\x04" and suffix in OFFICE_SUFFIXES:
        return "office"
    if suffix in TEXT_SUFFIXES:
        try:
            payload.decode("utf-8")
            return "text"
        except UnicodeDecodeError:
            raise ValueError("text document must be UTF-8 encoded")
    try:
        Image.open(io.BytesIO(payload)).verify()
        return "image"
    except (UnidentifiedImageError, OSError, SyntaxError):
        raise ValueError("unsupported file content; expected PDF, image, office or text document")


def storage_key_for(payload: bytes, filename: str) -> str:
    suffix = Path(filename).suffix.lower()
    if not re.fullmatch(r"\.[a-z0-9]{1,10}", suffix):
        suffix = ""
    return hashlib.sha256(payload).hexdigest() + suffix


def _path_for(storage_key: str) -> Path:
    if not _STORAGE_KEY_RE.match(storage_key):
        raise ValueError("invalid storage key")
    return get_documents_root() / storage_key


def save_document_bytes(payload: bytes, filename: str) -> str:
    """Write `payload` to disk (if not already present) and return its storage key."""
    key = storage_key_for(payload, filename)
    path = _path_for(key)
    if path.exists():
        logger.debug("document already stored key=%s", key)
        return key
    tmp = path.with_name(path.name + ".part")
    tmp.write_bytes(payload)
    tmp.replace(path)
    logger.info("document stored key=%s bytes=%d", key, len(payload))
    return key


def read_document_bytes(storage_key: str) -> bytes:
    path = _path_for(storage_key)
    if not path.exists():
        raise FileNotFoundError(storage_key)
    return path.read_bytes()


def remove_document_bytes(storage_key: str) -> bool:
    """Delete the stored file; returns False if it was already gone."""
    path = _path_for(storage_key)
    if not path.exists():
        return False
    path.unlink()
    logger.info("document removed key=%s", storage_key)
    return True
