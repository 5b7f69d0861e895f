"""Unit tests for PdfTextExtractor."""

import pytest
from types import SimpleNamespace
from unittest.mock import MagicMock

from tender_ai.core.exceptions import TextExtractionError
from tender_ai.services.pipeline.text_extractor import PdfTextExtractor


class FakePdf:

    def __init__(self, texts):
        self.pages = [SimpleNamespace(extract_text=lambda t=t: t) for t in texts]

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


def _extractor(texts=None, error=None):
    extractor = PdfTextExtractor()
    fake = MagicMock()
    if error is not None:
        fake.open.side_effect = error
    else:
        fake.open.return_value = FakePdf(texts or [])
    extractor._pdfplumber = fake
    return extractor


class TestExtract:

    @pytest.mark.asyncio
    async def test_pages_are_numbered_from_one(self):
        extractor = _extractor(["Capa", None, "Cláusula 1"])

        pages = await extractor.extract("edital.pdf", pdf_bytes=b"%PDF-1.7")

        assert [(p.page_number, p.text) for p in pages] == [(1, "Capa"), (2, ""), (3, "Cláusula 1")]

    @pytest.mark.asyncio
    async def test_reads_local_file(self, tmp_path):
        path = tmp_path / "edital.pdf"
        path.write_bytes(b"%PDF-1.7")
        extractor = _extractor(["Página única"])

        pages = await extractor.extract(str(path))

        assert len(pages) == 1
        assert extractor._pdfplumber.open.call_args.args[0].read() == b"%PDF-1.7"

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        with pytest.raises(TextExtractionError):
            await _extractor(["x"]).extract(str(tmp_path / "missing.pdf"))

    @pytest.mark.asyncio
    async def test_unparsable_pdf(self):
        with pytest.raises(TextExtractionError) as exc_info:
            await _extractor(error=ValueError("bad xref")).extract("edital.pdf", pdf_bytes=b"junk")

        assert isinstance(exc_info.value.original_error, ValueError)

    @pytest.mark.asyncio
    async def test_no_pages(self):
        with pytest.raises(TextExtractionError):
            await _extractor([]).extract("edital.pdf", pdf_bytes=b"%PDF-1.7")
