"""
Shared fixtures: generated PDFs, a font file and fake OCR / model backends.

© 2025 Sven Kalinowski with small help of Lino Casu
Licensed under the Anti-Capitalist Software License v1.4
"""
import sys
from pathlib import Path

import fitz
import pytest

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from pdfx.composer import find_font
from pdfx.config import PipelineConfig
from pdfx.errors import OcrError, TranslationError
from pdfx.retry_handler import RetryConfig


def body_text(marker: str, words: int = 30) -> str:
    """Enough words to pass the scanned-page check, in short lines."""
    tokens = [marker] + [f"word{i}" for i in range(words - 1)]
    return "\n".join(" ".join(tokens[i:i + 6]) for i in range(0, len(tokens), 6))


def make_pdf(path: Path, page_texts) -> Path:
    """One page per entry; an empty entry gives a page without a text layer."""
    doc = fitz.open()
    for text in page_texts:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text, fontsize=11)
    doc.save(str(path))
    doc.close()
    return path


class FakeTranslator:
    """Prefixes text with the target language; fails for texts matching fail_when."""

    def __init__(self, fail_when=None):
        self.fail_when = fail_when
        self.calls = []

    async def translate(self, text: str, target_language: str) -> str:
        if not text or not text.strip():
            return ""
        self.calls.append((text, target_language))
        if self.fail_when and self.fail_when(text):
            raise TranslationError("model refused the chunk")
        return f"[{target_language}] {text}"


class FakeOcr:
    """Canned OCR results per page number."""

    def __init__(self, results=None, fail_pages=()):
        self.results = results or {}
        self.fail_pages = set(fail_pages)
        self.calls = []

    async def ocr_page(self, pdf_path, page_number, work_dir):
        self.calls.append(page_number)
        assert Path(work_dir).is_dir()
        if page_number in self.fail_pages:
            raise OcrError("tesseract crashed")
        return self.results.get(page_number, "")


@pytest.fixture(scope="session")
def font_file():
    """The DejaVuSans shipped with the package."""
    return find_font()


@pytest.fixture
def config(tmp_path, font_file):
    cfg = PipelineConfig(
        storage_dir=tmp_path / "store",
        font_path=font_file,
        chunk_delay=0,
        retry=RetryConfig(max_retries=0, initial_delay=0, jitter=False),
        max_concurrent_jobs=2,
    )
    cfg.ensure_folders()
    return cfg


@pytest.fixture
def three_page_pdf(tmp_path):
    return make_pdf(tmp_path / "three.pdf", [
        body_text("alpha"),
        body_text("bravo"),
        body_text("charlie"),
    ])


@pytest.fixture
def translator():
    return FakeTranslator()
