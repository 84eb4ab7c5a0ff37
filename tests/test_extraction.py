"""
Unit Tests - page extraction and OCR

Run with: pytest tests/test_extraction.py -v
"""
import asyncio
import time

import fitz
import pytest

from conftest import body_text, make_pdf
from pdfx import ocr_engine
from pdfx.errors import ExtractionError, OcrError
from pdfx.extractor import (
    OcrMergeStrategy,
    PageExtractor,
    WordCountOcrPolicy,
    resolve_page_text,
)
from pdfx.models import PageStatus
from pdfx.ocr_engine import OcrEngine, split_page


# =============================================================================
# PAGE EXTRACTOR TESTS
# =============================================================================

class TestPageExtractor:
    """Tests for extractor.py"""

    def test_text_pdf_yields_one_record_per_page(self, three_page_pdf):
        records = PageExtractor().extract(three_page_pdf.read_bytes())

        assert [r.page_number for r in records] == [1, 2, 3]
        assert all(r.status == PageStatus.pending for r in records)
        assert all(not r.needs_ocr for r in records)
        assert "alpha" in records[0].original_text
        assert "bravo" in records[1].original_text
        assert "charlie" in records[2].original_text

    def test_few_words_flag_page_for_ocr(self, tmp_path):
        pdf = make_pdf(tmp_path / "short.pdf", ["only five words right here"])
        records = PageExtractor().extract_path(pdf)

        assert records[0].needs_ocr is True
        assert records[0].original_text == "only five words right here"

    def test_page_without_text_layer(self, tmp_path):
        pdf = make_pdf(tmp_path / "scan.pdf", [body_text("alpha"), ""])
        records = PageExtractor().extract_path(pdf)

        assert records[0].needs_ocr is False
        assert records[1].needs_ocr is True
        assert records[1].original_text == ""

    def test_custom_ocr_policy(self, three_page_pdf):
        extractor = PageExtractor(needs_ocr=WordCountOcrPolicy(min_words=1000))
        records = extractor.extract_path(three_page_pdf)

        assert all(r.needs_ocr for r in records)

    def test_empty_input_raises(self):
        with pytest.raises(ExtractionError):
            PageExtractor().extract(b"")

    def test_garbage_input_raises(self):
        with pytest.raises(ExtractionError):
            PageExtractor().extract(b"this is not a pdf at all")

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(ExtractionError):
            PageExtractor().extract_path(tmp_path / "missing.pdf")

    def test_encrypted_pdf_raises(self, tmp_path):
        path = tmp_path / "locked.pdf"
        doc = fitz.open()
        doc.new_page().insert_text((72, 72), body_text("secret"))
        doc.save(str(path), encryption=fitz.PDF_ENCRYPT_AES_256, owner_pw="owner", user_pw="user")
        doc.close()

        with pytest.raises(ExtractionError, match="encrypted"):
            PageExtractor().extract_path(path)


# =============================================================================
# OCR MERGE TESTS
# =============================================================================

class TestResolvePageText:
    """OCR output vs. directly extracted text."""

    def test_ocr_text_replaces_direct_text(self):
        assert resolve_page_text("few words", "full ocr text") == "full ocr text"

    def test_empty_ocr_keeps_direct_text(self):
        assert resolve_page_text("few words", "") == "few words"
        assert resolve_page_text("few words", "   \n") == "few words"

    def test_merge_appends_missing_direct_lines(self):
        merged = resolve_page_text(
            "Header line\nshared line",
            "shared line\nocr body",
            OcrMergeStrategy.merge,
        )
        assert merged.startswith("shared line\nocr body")
        assert "Header line" in merged

    def test_merge_without_missing_lines(self):
        assert resolve_page_text("body", "ocr body", OcrMergeStrategy.merge) == "ocr body"


# =============================================================================
# OCR ENGINE TESTS
# =============================================================================

class TestOcrEngine:
    """Tests for ocr_engine.py"""

    @pytest.fixture
    def no_ocr_tools(self, monkeypatch):
        monkeypatch.setattr(ocr_engine, "find_ocrmypdf", lambda: None)
        monkeypatch.setattr(ocr_engine, "TESSERACT_AVAILABLE", False)

    @pytest.fixture
    def tesseract_only(self, monkeypatch):
        monkeypatch.setattr(ocr_engine, "find_ocrmypdf", lambda: None)
        monkeypatch.setattr(ocr_engine, "TESSERACT_AVAILABLE", True)

    def test_split_page(self, three_page_pdf, tmp_path):
        single = split_page(three_page_pdf, 2, tmp_path)

        with fitz.open(str(single)) as doc:
            assert doc.page_count == 1
            assert "bravo" in doc[0].get_text()

    def test_split_page_out_of_range(self, three_page_pdf, tmp_path):
        with pytest.raises(OcrError):
            split_page(three_page_pdf, 4, tmp_path)

    def test_no_tools_returns_empty_text(self, no_ocr_tools, three_page_pdf, tmp_path):
        engine = OcrEngine()

        assert engine.is_available() is False
        assert asyncio.run(engine.ocr_page(three_page_pdf, 1, tmp_path)) == ""

    def test_tesseract_fallback(self, tesseract_only, monkeypatch, three_page_pdf, tmp_path):
        monkeypatch.setattr(OcrEngine, "_run_tesseract", lambda self, path: "  recognised text \n")

        text = asyncio.run(OcrEngine().ocr_page(three_page_pdf, 1, tmp_path))

        assert text == "recognised text"

    def test_tesseract_failure_returns_empty_text(self, tesseract_only, monkeypatch, three_page_pdf, tmp_path):
        def broken(self, path):
            raise RuntimeError("tesseract is not installed or it's not in your PATH")

        monkeypatch.setattr(OcrEngine, "_run_tesseract", broken)

        assert asyncio.run(OcrEngine().ocr_page(three_page_pdf, 1, tmp_path)) == ""

    def test_timeout_returns_empty_text(self, tesseract_only, monkeypatch, three_page_pdf, tmp_path):
        def slow(self, path):
            time.sleep(0.3)
            return "too late"

        monkeypatch.setattr(OcrEngine, "_run_tesseract", slow)
        engine = OcrEngine(timeout=0.05)

        assert asyncio.run(engine.ocr_page(three_page_pdf, 1, tmp_path)) == ""

    def test_page_out_of_range_returns_empty_text(self, tesseract_only, three_page_pdf, tmp_path):
        assert asyncio.run(OcrEngine().ocr_page(three_page_pdf, 9, tmp_path)) == ""
