"""
Text Normalizer - cleanup of PDF extraction and model output

1. Remove control and zero-width characters that break storage and writers
2. Collapse runs of blank lines
3. Normalize line separators and Unicode composition for layout

© 2025 Sven Kalinowski with small help of Lino Casu
Licensed under the Anti-Capitalist Software License v1.4
"""
from __future__ import annotations

import re
import unicodedata

# Zero-width characters to remove
ZERO_WIDTH_CHARS = {
    0x200B,  # Zero Width Space
    0x200C,  # Zero Width Non-Joiner
    0x200D,  # Zero Width Joiner
    0x2060,  # Word Joiner
    0xFEFF,  # Zero Width No-Break Space (BOM)
    0x00AD,  # Soft Hyphen
}

ZERO_WIDTH_TABLE = dict.fromkeys(ZERO_WIDTH_CHARS, None)

# Everything below 0x20 except \t \n \r, plus DEL
CONTROL_CHARS_RE = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]')

# Replacement / non-characters commonly produced by broken glyph maps
GARBAGE_CHARS_RE = re.compile("[\ufffd\uffff\ufffe]")

BLANK_RUN_RE = re.compile(r'\n{3,}')
TRAILING_WS_RE = re.compile(r'[^\S\n]+$', re.MULTILINE)
LINE_SEPARATORS_RE = re.compile("\r\n|\r|\u2028|\u2029")


def sanitize_text(s: str) -> str:
    """Remove characters that text stores and PDF writers cannot handle."""
    if not s:
        return ""
    s = CONTROL_CHARS_RE.sub("", s)
    s = GARBAGE_CHARS_RE.sub("", s)
    return s.translate(ZERO_WIDTH_TABLE)


def collapse_blank_lines(s: str) -> str:
    """Three or more newlines become exactly one blank line; result is trimmed."""
    return BLANK_RUN_RE.sub("\n\n", s or "").strip()


def normalize_extracted(s: str) -> str:
    """Normalization applied to every page of extracted text."""
    s = sanitize_text((s or "").replace("\f", "\n\n"))
    s = re.sub(r'[^\S\n]+\n', '\n', s)
    return collapse_blank_lines(s)


def normalize_for_layout(s: str) -> str:
    """
    Canonical form of text handed to the PDF composer:
    single '\\n' line breaks, no trailing whitespace per line, NFC.
    """
    s = LINE_SEPARATORS_RE.sub("\n", s or "")
    s = TRAILING_WS_RE.sub("", s)
    return unicodedata.normalize("NFC", s)


def count_words(s: str) -> int:
    """Count whitespace-separated words after whitespace normalization."""
    clean = re.sub(r'\s+', ' ', s or "").strip()
    return len(clean.split(' ')) if clean else 0
