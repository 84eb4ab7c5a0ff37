"""
Page Extractor - selectable text per page with a scanned-page heuristic

Reads the text layer of every page in document order. Pages with too few
words are flagged for OCR; the OCR pass itself lives in ocr_engine.

© 2025 Sven Kalinowski with small help of Lino Casu
Licensed under the Anti-Capitalist Software License v1.4
"""
from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Union

import fitz  # PyMuPDF

from .errors import ExtractionError
from .models import PageRecord, PageStatus
from .text_normalizer import count_words, normalize_extracted

logger = logging.getLogger("pdfx.extractor")

# Fewer words than this and a page probably is a scan
OCR_MIN_WORDS = 20


class WordCountOcrPolicy:
    """needs_ocr(text) -> bool based on a plain word count."""

    def __init__(self, min_words: int = OCR_MIN_WORDS):
        self.min_words = min_words

    def __call__(self, text: str) -> bool:
        return count_words(text) < self.min_words


looks_scanned = WordCountOcrPolicy()


class OcrMergeStrategy(str, Enum):
    prefer_ocr = "prefer_ocr"
    merge = "merge"


def resolve_page_text(
    direct_text: str,
    ocr_text: str,
    strategy: OcrMergeStrategy = OcrMergeStrategy.prefer_ocr,
) -> str:
    """
    Decide the final text of an OCR'd page.

    prefer_ocr: OCR output wins whenever it is non-empty.
    merge: OCR output plus every direct-text line it does not already contain.
    """
    ocr_text = (ocr_text or "").strip()
    direct_text = direct_text or ""

    if not ocr_text:
        return direct_text
    if strategy == OcrMergeStrategy.prefer_ocr or not direct_text.strip():
        return ocr_text

    missing = [
        line for line in direct_text.splitlines()
        if line.strip() and line.strip() not in ocr_text
    ]
    if not missing:
        return ocr_text
    return ocr_text + "\n\n" + "\n".join(missing)


def page_text(page: fitz.Page) -> str:
    """
    Text of one page from its text-drawing layer.

    Spans of a line are concatenated, lines joined by a newline and blocks
    separated by a blank line.
    """
    blocks = page.get_text("dict", flags=fitz.TEXT_PRESERVE_WHITESPACE)["blocks"]

    block_texts = []
    for block in blocks:
        if block.get("type") != 0:  # images
            continue
        lines = []
        for line in block.get("lines", []):
            lines.append("".join(span.get("text", "") for span in line.get("spans", [])))
        block_text = "\n".join(lines).strip()
        if block_text:
            block_texts.append(block_text)

    return normalize_extracted("\n\n".join(block_texts))


class PageExtractor:
    """Stateless: extract(file_bytes) -> PageRecord[]."""

    def __init__(self, needs_ocr: Optional[Callable[[str], bool]] = None):
        self.needs_ocr = needs_ocr or looks_scanned

    def extract(self, file_bytes: bytes) -> List[PageRecord]:
        if not file_bytes:
            raise ExtractionError("PDF is empty")

        try:
            doc = fitz.open(stream=file_bytes, filetype="pdf")
        except Exception as e:
            raise ExtractionError(f"Cannot open PDF: {e}") from e

        try:
            if doc.needs_pass:
                raise ExtractionError("PDF is encrypted")
            if doc.page_count == 0:
                raise ExtractionError("PDF has no pages")

            records = []
            for index in range(doc.page_count):
                try:
                    text = page_text(doc[index])
                except Exception as e:
                    raise ExtractionError(f"Cannot parse page {index + 1}: {e}") from e

                needs_ocr = self.needs_ocr(text)
                logger.debug(
                    "Page %d: text length=%d, needs_ocr=%s", index + 1, len(text), needs_ocr
                )
                records.append(PageRecord(
                    page_number=index + 1,
                    original_text=text,
                    needs_ocr=needs_ocr,
                    status=PageStatus.pending,
                ))
        finally:
            doc.close()

        logger.info(
            "Extracted %d pages (%d flagged for OCR)",
            len(records),
            sum(1 for r in records if r.needs_ocr),
        )
        return records

    def extract_path(self, path: Union[str, Path]) -> List[PageRecord]:
        try:
            data = Path(path).read_bytes()
        except OSError as e:
            raise ExtractionError(f"Cannot read {path}: {e}") from e
        return self.extract(data)
