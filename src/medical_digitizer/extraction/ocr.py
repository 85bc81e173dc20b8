# ============================================================================
# src/medical_digitizer/extraction/ocr.py
# ============================================================================
"""
Upstream Collaborators

Image-to-text conversion happens outside this package. The pipeline talks
to it through two small interfaces:
- OCRProducer: yields text plus a raw 0-100 confidence for a document
- DocumentScanner: optional scanning pass for photographed input
"""

from abc import ABC, abstractmethod
import logging

from ..core.models import Document, OCRResult


class OCRProducer(ABC):
    """Turns an uploaded document into raw text."""

    @abstractmethod
    async def recognize(self, document: Document) -> OCRResult:
        """
        Run OCR for a document.

        Raises:
            Any exception; the pipeline treats OCR failure as unrecoverable
        """


class DocumentScanner(ABC):
    """Pre-OCR scanning pass (deskew, crop, re-capture) for photographed pages."""

    @abstractmethod
    async def scan(self, document: Document) -> None:
        pass


class PassThroughScanner(DocumentScanner):
    """Scanner used when the deployment has no scanning step."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    async def scan(self, document: Document) -> None:
        self.logger.debug(f"No scanning pass configured for document {document.id}")
