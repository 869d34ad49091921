"""
Services package for billing extraction.

Contains:
- pdf_service: PDF text decoding into positioned fragments
- lines / row_filter / layout: table reconstruction heuristics
- ai: OpenAI row normalization
- jobs: in-memory job registry
- pipeline: the background extraction job
"""

from .ai import AIService
from .jobs import JobRegistry
from .pdf_service import PDFService

__all__ = ["AIService", "JobRegistry", "PDFService"]
