"""Page text extraction from PDF sources.

A source locator is either an http(s) URL, downloaded with httpx, or a
local file path. Pages are returned 1-indexed and in order; a page without
extractable text yields an empty string rather than being skipped.
"""

import asyncio
from io import BytesIO
from pathlib import Path
from typing import List, Optional, Protocol

import httpx

from tender_ai.core.exceptions import TextExtractionError
from tender_ai.schemas.batch import PageText
from tender_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)


class TextExtractor(Protocol):
    async def extract(self, source_locator: str) -> List[PageText]:
        ...


class PdfTextExtractor:
    """Extracts per-page text with pdfplumber."""

    def __init__(self, download_timeout: float = 60.0):
        self.download_timeout = download_timeout
        self._pdfplumber = None

    @property
    def pdfplumber(self):
        """Lazy-load pdfplumber to avoid import overhead."""
        if self._pdfplumber is None:
            import pdfplumber
            self._pdfplumber = pdfplumber
        return self._pdfplumber

    async def fetch(self, source_locator: str) -> bytes:
        """Read the raw document bytes.

        Raises:
            TextExtractionError: If the source cannot be read
        """
        if source_locator.startswith(("http://", "https://")):
            try:
                async with httpx.AsyncClient(timeout=self.download_timeout, follow_redirects=True) as client:
                    response = await client.get(source_locator)
                    response.raise_for_status()
                    return response.content
            except httpx.HTTPError as e:
                raise TextExtractionError(f"Failed to download {source_locator}: {e}", original_error=e) from e

        path = Path(source_locator)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise TextExtractionError(f"Failed to read {source_locator}: {e}", original_error=e) from e

    def _extract_pages(self, pdf_bytes: bytes) -> List[PageText]:
        with self.pdfplumber.open(BytesIO(pdf_bytes)) as pdf:
            return [
                PageText(page_number=page_number, text=page.extract_text() or "")
                for page_number, page in enumerate(pdf.pages, start=1)
            ]

    async def extract(self, source_locator: str, pdf_bytes: Optional[bytes] = None) -> List[PageText]:
        """Extract the text of every page.

        Args:
            source_locator: URL or local path of the PDF
            pdf_bytes: Already-fetched content (skips the fetch)

        Returns:
            Ordered pages

        Raises:
            TextExtractionError: If the source cannot be read or parsed, or has no pages
        """
        if pdf_bytes is None:
            pdf_bytes = await self.fetch(source_locator)

        try:
            pages = await asyncio.to_thread(self._extract_pages, pdf_bytes)
        except Exception as e:
            LOGGER.error(
                f"PDF text extraction failed: {e}",
                extra={"error_type": type(e).__name__},
                exc_info=True,
            )
            raise TextExtractionError(f"Failed to extract text: {e}", original_error=e) from e

        if not pages:
            raise TextExtractionError(f"No pages found in {source_locator}")

        LOGGER.info(
            f"Extracted text from {len(pages)} pages",
            extra={"source": source_locator, "total_pages": len(pages)},
        )
        return pages
