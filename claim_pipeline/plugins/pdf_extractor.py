"""PDF text extraction plugin for Semantic Kernel."""

import importlib.util
import io
import logging

from semantic_kernel.functions import kernel_function

logger = logging.getLogger(__name__)


class PDFExtractorPlugin:
    """
    Semantic Kernel plugin for extracting text from scanned reports and PDFs.

    Uses PyPDF2 as primary extractor with pdfplumber as fallback
    for better handling of complex layouts.
    """

    def __init__(self):
        """Initialize PDF extractor plugin."""
        self._validate_dependencies()
        logger.info("Initialized PDFExtractorPlugin")

    def _validate_dependencies(self):
        """Validate that required libraries are available."""
        self.has_pypdf2 = importlib.util.find_spec("PyPDF2") is not None
        if not self.has_pypdf2:
            logger.warning("PyPDF2 not available")

        self.has_pdfplumber = importlib.util.find_spec("pdfplumber") is not None
        if not self.has_pdfplumber:
            logger.warning("pdfplumber not available")

        if not self.has_pypdf2 and not self.has_pdfplumber:
            raise ImportError(
                "Neither PyPDF2 nor pdfplumber is available. "
                "Install at least one: pip install PyPDF2 pdfplumber"
            )

    @kernel_function(
        name="extract_pdf_text",
        description="Extract text content from PDF documents. Returns the full text with page markers."
    )
    def extract_text(self, pdf_bytes: bytes, include_page_numbers: bool = True) -> str:
        """
        Extract text from PDF bytes.

        Args:
            pdf_bytes: Raw PDF bytes
            include_page_numbers: Whether to include '--- Page N ---' markers

        Returns:
            Extracted text content, stripped; "" when the PDF has no text layer

        Raises:
            RuntimeError: If text extraction fails with every available library
        """
        if self.has_pypdf2:
            try:
                text = self._extract_with_pypdf2(pdf_bytes, include_page_numbers)
                if text:
                    logger.info(f"Extracted {len(text)} characters using PyPDF2")
                    return text
                logger.warning("PyPDF2 returned empty text, trying pdfplumber")
            except Exception as e:
                logger.warning(f"PyPDF2 extraction failed: {str(e)}, trying pdfplumber")

        if self.has_pdfplumber:
            try:
                text = self._extract_with_pdfplumber(pdf_bytes, include_page_numbers)
                logger.info(f"Extracted {len(text)} characters using pdfplumber")
                return text
            except Exception as e:
                logger.error(f"pdfplumber extraction failed: {str(e)}")
                raise RuntimeError(f"Failed to extract text from PDF: {str(e)}") from e

        raise RuntimeError("PDF text extraction failed with every available library")

    def _extract_with_pypdf2(self, pdf_bytes: bytes, include_page_numbers: bool) -> str:
        """Extract text using PyPDF2."""
        import PyPDF2

        reader = PyPDF2.PdfReader(io.BytesIO(pdf_bytes))
        text_parts = []

        for page_num, page in enumerate(reader.pages, start=1):
            page_text = page.extract_text()

            if page_text:
                if include_page_numbers:
                    text_parts.append(f"\n--- Page {page_num} ---\n")
                text_parts.append(page_text)

        return ''.join(text_parts).strip()

    def _extract_with_pdfplumber(self, pdf_bytes: bytes, include_page_numbers: bool) -> str:
        """Extract text using pdfplumber."""
        import pdfplumber

        text_parts = []

        with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
            for page_num, page in enumerate(pdf.pages, start=1):
                page_text = page.extract_text()

                if page_text:
                    if include_page_numbers:
                        text_parts.append(f"\n--- Page {page_num} ---\n")
                    text_parts.append(page_text)

        return ''.join(text_parts).strip()
