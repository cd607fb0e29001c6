"""PDF text extraction with PyMuPDF.

Page boundaries are not kept; pages are joined with a blank line so the
chunker sees one continuous text.
"""
from pathlib import Path
from typing import List, Union
import fitz  # pymupdf
import structlog

logger = structlog.get_logger()


class PDFParser:
    """Extracts plain text from PDF files."""

    def extract_pages(self, pdf_path: Union[str, Path]) -> List[str]:
        """Extract the text of every readable page.

        Args:
            pdf_path: Path to the PDF file

        Returns:
            One string per page, in page order. Pages that fail to extract
            are skipped.

        Raises:
            FileNotFoundError: If the PDF file doesn't exist
            RuntimeError: If the PDF cannot be opened
        """
        pdf_path = Path(pdf_path)

        if not pdf_path.exists():
            raise FileNotFoundError(f"PDF not found: {pdf_path}")

        try:
            doc = fitz.open(pdf_path)
        except Exception as e:
            raise RuntimeError(f"Failed to open PDF {pdf_path}: {e}") from e

        pages = []
        with doc:
            for page_number, page in enumerate(doc, 1):
                try:
                    pages.append(page.get_text())
                except Exception as e:
                    logger.warning(
                        "pdf_page_extraction_failed",
                        path=str(pdf_path),
                        page=page_number,
                        error=str(e),
                    )

            logger.info(
                "pdf_parsed",
                path=str(pdf_path),
                total_pages=doc.page_count,
                pages_extracted=len(pages),
            )

        return pages

    def extract_text(self, pdf_path: Union[str, Path]) -> str:
        """Extract all text from a PDF file as one string."""
        return "".join(f"{page}\n\n" for page in self.extract_pages(pdf_path))
