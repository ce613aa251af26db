"""PDF page text.

A page source opens a PDF byte string once and hands back a PdfPages object
that reads one page at a time. Opening failures are whole-document failures
and raise ServiceUnavailable; page reads raise whatever the parser raises and
are left to the caller to skip.
"""
from __future__ import annotations

import io

import PyPDF2

try:
    import fitz  # PyMuPDF
except Exception:
    fitz = None

from docboard.errors import ServiceUnavailable, ValidationError


class PdfPages:
    """Opened document: page_count plus 1-based page_text(n)."""

    page_count = 0

    def page_text(self, page_number: int) -> str:
        raise NotImplementedError

    def _check_page(self, page_number: int) -> None:
        if page_number < 1 or page_number > self.page_count:
            raise IndexError(f"page {page_number} out of range 1..{self.page_count}")

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class PageSource:
    name = ""

    def open(self, data: bytes) -> PdfPages:
        raise NotImplementedError

    def get_page_text(self, data: bytes, page_number: int) -> str:
        with self.open(data) as pages:
            return pages.page_text(page_number)

    def get_page_count(self, data: bytes) -> int:
        with self.open(data) as pages:
            return pages.page_count


class _PyPDF2Pages(PdfPages):
    def __init__(self, reader):
        self._reader = reader
        self.page_count = len(reader.pages)

    def page_text(self, page_number: int) -> str:
        self._check_page(page_number)
        return self._reader.pages[page_number - 1].extract_text() or ""


class PyPDF2PageSource(PageSource):
    name = "pypdf2"

    def open(self, data: bytes) -> PdfPages:
        try:
            reader = PyPDF2.PdfReader(io.BytesIO(data))
            return _PyPDF2Pages(reader)
        except Exception as e:
            raise ServiceUnavailable.for_operation("PDF parser", "opening document", e)


class _PyMuPDFPages(PdfPages):
    def __init__(self, doc):
        self._doc = doc
        self.page_count = len(doc)

    def page_text(self, page_number: int) -> str:
        self._check_page(page_number)
        page = self._doc.load_page(page_number - 1)
        return page.get_text("text") or ""

    def close(self) -> None:
        try:
            self._doc.close()
        except Exception:
            pass


class PyMuPDFPageSource(PageSource):
    name = "pymupdf"

    def open(self, data: bytes) -> PdfPages:
        if fitz is None:
            raise ServiceUnavailable("PDF parser service unavailable", details={'reason': "PyMuPDF not available"})
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as e:
            raise ServiceUnavailable.for_operation("PDF parser", "opening document", e)
        return _PyMuPDFPages(doc)


PAGE_SOURCES = {
    PyPDF2PageSource.name: PyPDF2PageSource,
    PyMuPDFPageSource.name: PyMuPDFPageSource,
}


def make_page_source(backend: str = "pypdf2") -> PageSource:
    key = (backend or "pypdf2").strip().lower()
    if key not in PAGE_SOURCES:
        raise ValidationError("Unknown PDF text backend", details={
            'received': backend,
            'allowed': sorted(PAGE_SOURCES),
        })
    return PAGE_SOURCES[key]()
