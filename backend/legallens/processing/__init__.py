"""
Document Processing Package
════════════════════════════

Text extraction for uploaded documents, delegated to Google Document AI.

Modules
───────
  ocr.py   Document AI client wrapper: text, entities, confidence
"""

from legallens.processing.ocr import DocumentAIExtractor, ExtractionResult

__all__ = ["DocumentAIExtractor", "ExtractionResult"]
