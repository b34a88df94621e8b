"""Text extraction from uploaded files.

Every extractor returns an empty string on failure; an upload whose text
cannot be read is still stored, just without chunks.
"""

from __future__ import annotations

import logging
import os

import pytesseract
from PIL import Image
from pypdf import PdfReader

logger = logging.getLogger(__name__)

TEXT_EXTS = {".txt", ".md", ".json", ".csv"}
PDF_EXTS = {".pdf"}
IMAGE_EXTS = {".jpg", ".jpeg", ".png"}

OCR_CONFIG = "--oem 1 --psm 3"


def read_text_file(path: str) -> str:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return fh.read()
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Failed to read text file %s: %s", path, exc)
        return ""


def read_pdf(path: str) -> str:
    """Concatenate the text layer of every page; pages that fail yield nothing."""
    try:
        pages = list(PdfReader(path).pages)
    except Exception as exc:
        logger.warning("PDF parse failed for %s: %s", path, exc)
        return ""
    texts = []
    for page in pages:
        try:
            texts.append(page.extract_text() or "")
        except Exception as exc:
            logger.warning("PDF page extraction failed for %s: %s", path, exc)
            texts.append("")
    return "\n".join(texts)


def ocr_image(path: str) -> str:
    try:
        logger.info("Performing OCR on image: %s", path)
        with Image.open(path) as img:
            return pytesseract.image_to_string(img, lang="eng", config=OCR_CONFIG)
    except Exception as exc:
        logger.error("Tesseract OCR failed for %s: %s", path, exc)
        return ""


def extract_text(path: str, original_name: str) -> str:
    """Dispatch on the original file extension and return whatever text was found."""
    ext = os.path.splitext(original_name or "")[1].lower()
    if ext in TEXT_EXTS:
        return read_text_file(path)
    if ext in PDF_EXTS:
        return read_pdf(path)
    if ext in IMAGE_EXTS:
        return ocr_image(path)
    logger.info("No extractor for %s; storing without text", original_name)
    return ""
