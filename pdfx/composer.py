"""
PDF Composer - re-flow translated text into a new, paginated PDF

Layout:
- A4 canvas, 48pt margin on all sides
- Word wrap measured with the embedded font's glyph widths
- Words wider than the line are hard-split character by character
- One header per source page, repeated with "(cont.)" on overflow pages
- Unicode TrueType font, embedded and subset

© 2025 Sven Kalinowski with small help of Lino Casu
Licensed under the Anti-Capitalist Software License v1.4
"""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence, Union

import fitz  # PyMuPDF

from .errors import CompositionError
from .models import ComposePage
from .text_normalizer import normalize_for_layout

logger = logging.getLogger("pdfx.composer")

A4_WIDTH = 595.28
A4_HEIGHT = 841.89
MARGIN = 48
FONT_SIZE = 11
LINE_GAP = 4
HEADER_FONT_SIZE = 10
HEADER_ADVANCE = 16
HEADER_COLOR = (0.2, 0.2, 0.2)

EMPTY_PAGE_PLACEHOLDER = "[No translated text]"
DEFAULT_TITLE = "Translated Document"

FONT_FILENAME = "DejaVuSans.ttf"
FONT_CANDIDATES = [
    Path(__file__).parent / "fonts" / FONT_FILENAME,
    Path("/usr/share/fonts/truetype/dejavu") / FONT_FILENAME,
    Path("/usr/share/fonts/dejavu") / FONT_FILENAME,
    Path("/usr/share/fonts/TTF") / FONT_FILENAME,
    Path("/usr/local/share/fonts") / FONT_FILENAME,
    Path("/Library/Fonts") / FONT_FILENAME,
    Path("C:/Windows/Fonts") / FONT_FILENAME,
]

_PARAGRAPH_SPLIT_RE = re.compile(r'\n{2,}')


def find_font(font_path: Optional[Union[str, Path]] = None) -> Path:
    """The configured font, else the first DejaVuSans found on the system."""
    if font_path is not None:
        path = Path(font_path)
        if not path.is_file():
            raise CompositionError(f"Font file not found: {path}")
        return path

    for candidate in FONT_CANDIDATES:
        if candidate.is_file():
            return candidate

    raise CompositionError(
        f"No Unicode font found. Set PDFX_FONT_PATH or install {FONT_FILENAME}"
    )


def _split_word(word: str, max_width: float, measure: Callable[[str], float]) -> List[str]:
    """Last resort for words wider than the line: split by glyph advance."""
    pieces = []
    piece = ""
    for ch in word:
        candidate = piece + ch
        if piece and measure(candidate) > max_width:
            pieces.append(piece)
            piece = ch
        else:
            piece = candidate
    if piece:
        pieces.append(piece)
    return pieces


def wrap_lines(text: str, max_width: float, measure: Callable[[str], float]) -> List[str]:
    """
    Greedy word wrap.

    Single line breaks are kept, a paragraph break becomes one '' entry.
    measure(s) returns the rendered width of s.
    """
    out: List[str] = []

    for paragraph in _PARAGRAPH_SPLIT_RE.split(text):
        if not paragraph.strip():
            continue

        for source_line in paragraph.split("\n"):
            line = ""
            for word in source_line.split():
                candidate = f"{line} {word}" if line else word
                if measure(candidate) <= max_width:
                    line = candidate
                    continue

                if line:
                    out.append(line)
                if measure(word) > max_width:
                    pieces = _split_word(word, max_width, measure)
                    out.extend(pieces[:-1])
                    line = pieces[-1]
                else:
                    line = word
            if line:
                out.append(line)

        out.append("")  # blank line between paragraphs

    while out and out[-1] == "":
        out.pop()
    return out


def _as_compose_page(page: Any) -> ComposePage:
    if isinstance(page, ComposePage):
        return page
    if isinstance(page, Mapping):
        number = page.get("page_number", page.get("pageNumber"))
        return ComposePage(page_number=number, text=page.get("text") or "")
    return ComposePage(page_number=page.page_number, text=getattr(page, "text", "") or "")


class PdfComposer:
    """
    Stateless renderer: compose(pages, output_path, title) -> output_path.

    The font file is read once per composer instance.
    """

    def __init__(
        self,
        font_path: Optional[Union[str, Path]] = None,
        font_size: float = FONT_SIZE,
        margin: float = MARGIN,
    ):
        self._font_path = font_path
        self.font_size = font_size
        self.margin = margin
        self._font_bytes: Optional[bytes] = None

    @property
    def usable_width(self) -> float:
        return A4_WIDTH - 2 * self.margin

    def _load_font(self) -> fitz.Font:
        if self._font_bytes is None:
            path = find_font(self._font_path)
            try:
                self._font_bytes = path.read_bytes()
            except OSError as e:
                raise CompositionError(f"Cannot read font {path}: {e}") from e
            logger.debug("Loaded font %s (%d bytes)", path, len(self._font_bytes))
        try:
            return fitz.Font(fontbuffer=self._font_bytes)
        except Exception as e:
            raise CompositionError(f"Invalid font file: {e}") from e

    def compose(
        self,
        pages: Iterable[Union[ComposePage, Mapping, Any]],
        output_path: Union[str, Path],
        title: str = DEFAULT_TITLE,
    ) -> str:
        blocks: Sequence[ComposePage] = sorted(
            (_as_compose_page(p) for p in pages), key=lambda p: p.page_number
        )
        if not blocks:
            raise CompositionError("No pages to compose")

        output_path = Path(output_path)
        font = self._load_font()

        def measure(s: str) -> float:
            return font.text_length(s, fontsize=self.font_size)

        doc = fitz.open()
        try:
            doc.set_metadata({"title": title or DEFAULT_TITLE, "producer": "pdfx"})

            for block in blocks:
                text = normalize_for_layout(block.text).strip() or EMPTY_PAGE_PLACEHOLDER
                lines = wrap_lines(text, self.usable_width, measure)
                self._layout_source_page(doc, font, block.page_number, lines)

            # the full font stays embedded when subsetting fails
            try:
                doc.subset_fonts()
            except Exception as e:
                logger.warning("Font subsetting failed, embedding full font: %s", e)

            try:
                output_path.parent.mkdir(parents=True, exist_ok=True)
                doc.save(str(output_path), garbage=3, deflate=True)
            except Exception as e:
                raise CompositionError(f"Cannot write {output_path}: {e}") from e
        finally:
            doc.close()

        logger.info("Composed %d source pages into %s", len(blocks), output_path)
        return str(output_path)

    def _layout_source_page(self, doc: fitz.Document, font: fitz.Font, page_number: int, lines: List[str]) -> None:
        header = f"Page {page_number}"
        bottom = A4_HEIGHT - self.margin - self.font_size

        page, body, y = self._new_page(doc, font, header)
        pending = 0

        for line in lines:
            if y > bottom:
                if pending:
                    body.write_text(page)
                page, body, y = self._new_page(doc, font, f"{header} (cont.)")
                pending = 0
            if line == "":
                y += self.font_size  # paragraph gap
                continue
            body.append((self.margin, y), line, font=font, fontsize=self.font_size)
            pending += 1
            y += self.font_size + LINE_GAP

        if pending:
            body.write_text(page)

    def _new_page(self, doc: fitz.Document, font: fitz.Font, header: str):
        page = doc.new_page(width=A4_WIDTH, height=A4_HEIGHT)
        y = self.margin

        header_writer = fitz.TextWriter(page.rect, color=HEADER_COLOR)
        header_writer.append((self.margin, y), header, font=font, fontsize=HEADER_FONT_SIZE)
        header_writer.write_text(page)

        return page, fitz.TextWriter(page.rect), y + HEADER_ADVANCE
