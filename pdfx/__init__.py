"""
PDFX - PDF translation pipeline

Extract page text (OCR for scanned pages), translate it in chunks through a
language model and re-flow the result into a new PDF.

© 2025 Sven Kalinowski with small help of Lino Casu
Licensed under the Anti-Capitalist Software License v1.4
"""

__version__ = "0.1.0"
