"""Document ingestion and chunking utilities."""

from __future__ import annotations

import logging
import re
import secrets
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from ..models import Chunk, DocumentRecord

logger = logging.getLogger(__name__)

# Hard upper bound on chunk length, and the step used when slicing longer
# paragraphs.  Adjacent slices overlap by MAX_CHUNK_CHARS - CHUNK_STRIDE.
MAX_CHUNK_CHARS = 1000
CHUNK_STRIDE = 800

_PARAGRAPH_SPLIT = re.compile(r"\n+")
_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def normalize(raw_text: Optional[str]) -> str:
    """Return the canonical form of extracted text.

    Line endings are unified and the result is trimmed; nothing else is
    touched, so paragraph breaks survive for the chunker.  ``None`` yields "".
    """
    if not raw_text:
        return ""
    text = raw_text.replace("\r\n", "\n").replace("\r", "\n")
    return text.strip()


def _split_paragraph(paragraph: str) -> List[str]:
    if len(paragraph) <= MAX_CHUNK_CHARS:
        return [paragraph]
    slices: List[str] = []
    start = 0
    while True:
        piece = paragraph[start : start + MAX_CHUNK_CHARS]
        if piece.strip():
            slices.append(piece)
        if start + MAX_CHUNK_CHARS >= len(paragraph):
            break
        start += CHUNK_STRIDE
    return slices


def chunk_text(text: str, id_prefix: Optional[str] = None) -> List[Chunk]:
    """Split normalized text into bounded, ordered chunks.

    Paragraphs (runs separated by one or more newlines) become single chunks
    when they fit in ``MAX_CHUNK_CHARS``; longer ones are cut into windows of
    that size every ``CHUNK_STRIDE`` characters.

    Args:
        text: Normalized document text.
        id_prefix: Prefix for chunk identifiers.  Defaults to the current
            epoch milliseconds.

    Returns:
        Chunks in emission order; ``ordinal`` is the emission index and ``id``
        is ``"<prefix>_<ordinal>"``.
    """
    if id_prefix is None:
        id_prefix = str(int(time.time() * 1000))
    chunks: List[Chunk] = []
    for raw_paragraph in _PARAGRAPH_SPLIT.split(text or ""):
        paragraph = raw_paragraph.strip()
        if not paragraph:
            continue
        for piece in _split_paragraph(paragraph):
            ordinal = len(chunks)
            chunks.append(Chunk(id=f"{id_prefix}_{ordinal}", text=piece, ordinal=ordinal))
    return chunks


def make_storage_key(original_name: str, now: Optional[datetime] = None) -> str:
    """Build a filesystem-safe storage key such as ``1700000000000-my_notes.pdf``."""
    now = now or datetime.now(timezone.utc)
    name = Path(original_name or "upload").name
    name = re.sub(r"\s+", "_", name)
    name = _UNSAFE_KEY_CHARS.sub("", name) or "upload"
    return f"{int(now.timestamp() * 1000)}-{name}"


def new_document_id(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"{int(now.timestamp() * 1000)}-{secrets.token_hex(3)}"


def build_record(
    raw_text: Optional[str],
    *,
    original_name: str,
    storage_key: str,
    size_bytes: int,
    mime_type: str,
    uploaded_at: Optional[datetime] = None,
    document_id: Optional[str] = None,
) -> DocumentRecord:
    """Turn extracted text plus upload metadata into a document record.

    Empty extraction is not an error here: the record is built with no
    chunks and downstream consumers report "no extractable content".
    """
    uploaded_at = uploaded_at or datetime.now(timezone.utc)
    text = normalize(raw_text)
    if not text:
        logger.warning("No text extracted from %s; storing record without chunks", original_name)
    chunks = chunk_text(text, id_prefix=str(int(uploaded_at.timestamp() * 1000)))
    return DocumentRecord(
        document_id=document_id or new_document_id(uploaded_at),
        original_name=original_name,
        storage_key=storage_key,
        size_bytes=size_bytes,
        mime_type=mime_type,
        uploaded_at=uploaded_at,
        chunks=chunks,
    )
