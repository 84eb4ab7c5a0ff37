"""
OCR Engine - recover text of scanned pages

Two capabilities, tried in this order:
1. ocrmypdf with a sidecar text file (rotation and deskew correction)
2. pytesseract on a rendered page image

A page that cannot be OCR'd yields "" - one unreadable page must not
sink the whole document.

© 2025 Sven Kalinowski - Anti-Capitalist Software License v1.4
"""
from __future__ import annotations

import asyncio
import logging
import re
import shutil
from pathlib import Path
from typing import Optional, Union

import fitz  # PyMuPDF

from .config import DEFAULT_OCR_LANGUAGES
from .errors import OcrError

logger = logging.getLogger("pdfx.ocr")

# Try to import OCR libraries
TESSERACT_AVAILABLE = False
try:
    import pytesseract
    from PIL import Image
    import io
    TESSERACT_AVAILABLE = True
except ImportError:
    logger.warning("pytesseract not installed - image OCR fallback disabled")


def find_ocrmypdf() -> Optional[str]:
    """Path of the ocrmypdf binary, if installed."""
    return shutil.which("ocrmypdf")


def split_page(pdf_path: Union[str, Path], page_number: int, work_dir: Path) -> Path:
    """Write page_number (1-based) of pdf_path as a single-page PDF into work_dir."""
    target = work_dir / f"page_{page_number}.pdf"
    with fitz.open(str(pdf_path)) as doc:
        if not 1 <= page_number <= doc.page_count:
            raise OcrError(f"Page {page_number} out of range (1..{doc.page_count})")
        single = fitz.open()
        try:
            single.insert_pdf(doc, from_page=page_number - 1, to_page=page_number - 1)
            single.save(str(target))
        finally:
            single.close()
    return target


def _osd_rotation(image) -> int:
    """Clockwise rotation tesseract suggests for the image, 0 if unknown."""
    try:
        osd = pytesseract.image_to_osd(image)
    except Exception as e:
        logger.debug("Orientation detection failed: %s", e)
        return 0
    match = re.search(r'Rotate:\s*(\d+)', osd)
    return int(match.group(1)) if match else 0


class OcrEngine:
    """
    Stateless OCR capability: ocr_page(pdf_path, page_number, work_dir) -> str.

    The caller owns work_dir and its cleanup.
    """

    def __init__(
        self,
        languages: str = DEFAULT_OCR_LANGUAGES,
        timeout: float = 300.0,
        dpi: int = 300,
    ):
        self.languages = languages
        self.timeout = timeout
        self.dpi = dpi

    def is_available(self) -> bool:
        return bool(find_ocrmypdf()) or TESSERACT_AVAILABLE

    async def ocr_page(self, pdf_path: Union[str, Path], page_number: int, work_dir: Union[str, Path]) -> str:
        work_dir = Path(work_dir)
        try:
            single_page = await asyncio.to_thread(split_page, pdf_path, page_number, work_dir)

            ocrmypdf_bin = find_ocrmypdf()
            if ocrmypdf_bin:
                text = await self._run_ocrmypdf(ocrmypdf_bin, single_page, page_number, work_dir)
            elif TESSERACT_AVAILABLE:
                text = await asyncio.wait_for(
                    asyncio.to_thread(self._run_tesseract, single_page),
                    timeout=self.timeout,
                )
            else:
                raise OcrError("No OCR capability: install ocrmypdf or pytesseract")

        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            logger.warning("OCR timed out on page %d after %.0fs", page_number, self.timeout)
            return ""
        except Exception as e:
            logger.warning("OCR failed on page %d: %s", page_number, e)
            return ""

        text = (text or "").strip()
        logger.info("OCR page %d: %d characters", page_number, len(text))
        return text

    async def _run_ocrmypdf(self, binary: str, single_page: Path, page_number: int, work_dir: Path) -> str:
        sidecar = work_dir / f"page_{page_number}.txt"
        cmd = [
            binary,
            str(single_page),
            str(work_dir / f"ocr_{page_number}.pdf"),
            "--sidecar", str(sidecar),
            "--jobs", "1",
            "-l", self.languages,
            "--rotate-pages",
            "--deskew",
            "--force-ocr",
        ]
        logger.debug("Running ocrmypdf: %s", " ".join(cmd))

        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise

        if proc.returncode != 0:
            error_msg = stderr.decode("utf-8", "replace").strip() or f"exit code {proc.returncode}"
            raise OcrError(f"ocrmypdf failed: {error_msg[-500:]}")

        if not sidecar.exists():
            raise OcrError("ocrmypdf produced no sidecar text")
        return sidecar.read_text(encoding="utf-8", errors="replace")

    def _run_tesseract(self, single_page: Path) -> str:
        with fitz.open(str(single_page)) as doc:
            pix = doc[0].get_pixmap(dpi=self.dpi)
            image = Image.open(io.BytesIO(pix.tobytes("png")))

        rotation = _osd_rotation(image)
        if rotation:
            # tesseract reports clockwise degrees, PIL rotates counter-clockwise
            image = image.rotate(-rotation, expand=True)

        return pytesseract.image_to_string(image, lang=self.languages)
