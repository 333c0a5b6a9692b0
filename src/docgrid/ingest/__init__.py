"""Ingest stage: PDF validation, metadata, and positioned-element extraction.

Public API
----------
- :func:`ingest_pdf`: open + validate a PDF, return :class:`PdfMeta`
- :func:`extract_page_elements`: turn one pdfplumber page into positioned elements
- :func:`load_document`: positioned element lists for the pages of a PDF
- :class:`PdfMeta`: PDF-level metadata container
- :class:`PageInfo`: per-page dimensions
- :class:`LoadedPage`: one page (or stack of pages) ready for grouping
- :class:`IngestError`: raised on validation failures
"""

from .ingest import (
    IngestError,
    LoadedPage,
    PageInfo,
    PdfMeta,
    extract_page_elements,
    ingest_pdf,
    load_document,
)

__all__ = [
    "IngestError",
    "LoadedPage",
    "PageInfo",
    "PdfMeta",
    "extract_page_elements",
    "ingest_pdf",
    "load_document",
]
