"""
Text Chunker - model-sized pieces of page text

Paragraphs are packed greedily into chunks of at most max_chunk_size
characters. A paragraph is never split: one longer than the limit becomes
its own oversized chunk.

© 2025 Sven Kalinowski with small help of Lino Casu
Licensed under the Anti-Capitalist Software License v1.4
"""
from __future__ import annotations

import re
from typing import Iterable, List

PARAGRAPH_SEPARATOR = "\n\n"
DEFAULT_MAX_CHUNK_SIZE = 3000

_PARAGRAPH_SPLIT_RE = re.compile(r'\n{2,}')


def split_paragraphs(text: str) -> List[str]:
    """Paragraphs of text, without empty ones."""
    return [p for p in _PARAGRAPH_SPLIT_RE.split(text or "") if p.strip()]


def chunk(text: str, max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE) -> List[str]:
    if max_chunk_size <= 0:
        raise ValueError("max_chunk_size must be positive")

    chunks: List[str] = []
    current = ""

    for para in split_paragraphs(text):
        if not current:
            current = para
        elif len(current) + len(PARAGRAPH_SEPARATOR) + len(para) > max_chunk_size:
            chunks.append(current)
            current = para
        else:
            current = current + PARAGRAPH_SEPARATOR + para

    if current:
        chunks.append(current)

    return chunks


def join(chunks: Iterable[str]) -> str:
    """Inverse of chunk(): ordered concatenation with a blank line."""
    return PARAGRAPH_SEPARATOR.join(c for c in chunks if c)


class TextChunker:
    """Object form of chunk()/join() for injection into the controller."""

    def __init__(self, max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE):
        self.max_chunk_size = max_chunk_size

    def chunk(self, text: str) -> List[str]:
        return chunk(text, self.max_chunk_size)

    def join(self, chunks: Iterable[str]) -> str:
        return join(chunks)
