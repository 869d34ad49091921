"""
PDF text decoding service using pdfplumber (pdfminer.six).

Turns an uploaded PDF into pages of positioned text fragments.
"""

import io
import logging
from typing import BinaryIO

import pdfplumber
from pdfminer.pdfparser import PDFSyntaxError

from ..models import TextFragment

logger = logging.getLogger(__name__)


class PDFConversionError(Exception):
    """Raised when a PDF cannot be decoded."""

    pass


class PDFService:
    """
    Service for PDF text decoding.

    Each word pdfplumber finds on a page becomes a TextFragment positioned
    at the word's left edge (``x0``) and top edge (``top``).
    """

    def __init__(self, x_tolerance: float = 3.0, y_tolerance: float = 3.0):
        """
        Initialize the PDF service.

        Args:
            x_tolerance: Max horizontal gap between characters of one word.
            y_tolerance: Max vertical offset between characters of one word.
        """
        self.x_tolerance = x_tolerance
        self.y_tolerance = y_tolerance

    @staticmethod
    def _read_bytes(file_bytes: bytes | BinaryIO) -> bytes:
        if hasattr(file_bytes, "read"):
            pdf_bytes = file_bytes.read()
        else:
            pdf_bytes = file_bytes

        if not pdf_bytes:
            raise PDFConversionError("Empty PDF file provided")

        # Validate PDF magic bytes
        if not pdf_bytes[:4] == b"%PDF":
            raise PDFConversionError(
                "Invalid PDF file: does not start with PDF header"
            )
        return pdf_bytes

    def extract_fragments(
        self, file_bytes: bytes | BinaryIO
    ) -> list[list[TextFragment]]:
        """
        Decode a PDF into positioned text fragments.

        Args:
            file_bytes: PDF file as bytes or file-like object.

        Returns:
            One list of fragments per page, in document order.

        Raises:
            PDFConversionError: If decoding fails for any reason.
        """
        pdf_bytes = self._read_bytes(file_bytes)

        try:
            pages: list[list[TextFragment]] = []
            with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
                logger.info("Decoding PDF text (%d pages)", len(pdf.pages))
                for page in pdf.pages:
                    words = page.extract_words(
                        x_tolerance=self.x_tolerance,
                        y_tolerance=self.y_tolerance,
                    )
                    pages.append(
                        [
                            TextFragment(x=word["x0"], y=word["top"], text=word["text"])
                            for word in words
                        ]
                    )

            logger.info(
                "Decoded %d fragment(s) from %d page(s)",
                sum(len(p) for p in pages),
                len(pages),
            )
            return pages

        except PDFSyntaxError as e:
            logger.error("PDF syntax error: %s", e)
            raise PDFConversionError(f"Invalid or corrupted PDF file: {e}") from e

        except Exception as e:
            logger.exception("Unexpected error during PDF decoding")
            raise PDFConversionError(f"PDF decoding failed: {e}") from e


# Singleton instance for convenience
_pdf_service: PDFService | None = None


def get_pdf_service() -> PDFService:
    """Get or create the PDF service singleton."""
    global _pdf_service
    if _pdf_service is None:
        _pdf_service = PDFService()
    return _pdf_service
