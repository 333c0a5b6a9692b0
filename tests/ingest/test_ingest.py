"""Tests for docgrid.ingest: PDF validation, metadata, and element extraction."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from docgrid.ingest import (
    IngestError,
    PageInfo,
    PdfMeta,
    extract_page_elements,
    ingest_pdf,
    load_document,
)
from docgrid.ingest.ingest import font_family, font_styles, graphic_elements, to_rgb, word_to_element
from docgrid.models import HorizontalLine, Image, PageBreak, Rectangle, TextElement, TextStyle, VerticalLine


def _mock_pdf(pages, metadata=None):
    mock_pdf = MagicMock()
    mock_pdf.pages = pages
    mock_pdf.metadata = metadata
    mock_pdf.__enter__ = MagicMock(return_value=mock_pdf)
    mock_pdf.__exit__ = MagicMock(return_value=False)
    return mock_pdf


def _mock_page(words=(), lines=(), rects=(), images=(), width=612.0, height=792.0):
    page = MagicMock(width=width, height=height)
    page.extract_words.return_value = list(words)
    page.lines = list(lines)
    page.rects = list(rects)
    page.images = list(images)
    return page


def _word(x0, top, text, x1=None, **extra):
    w = {"x0": x0, "x1": x1 if x1 is not None else x0 + 6 * len(text), "top": top, "bottom": top + 10, "text": text}
    w.update(extra)
    return w


def _fake_pdf_file(tmp_path):
    f = tmp_path / "test.pdf"
    f.write_bytes(b"%PDF-1.4\n%%EOF")
    return f


# ── Data containers ───────────────────────────────────────────────────


class TestPageInfo:
    def test_to_dict(self):
        d = PageInfo(index=2, width=612.0, height=792.0).to_dict()
        assert d == {"index": 2, "width": 612.0, "height": 792.0}


class TestPdfMeta:
    def test_page_accessor(self):
        pages = [PageInfo(0, 100, 200), PageInfo(1, 300, 400)]
        meta = PdfMeta(path=Path("test.pdf"), num_pages=2, pages=pages)
        assert meta.page(0).width == 100
        assert meta.page(1).height == 400
        with pytest.raises(IndexError):
            meta.page(5)

    def test_to_dict_without_metadata(self):
        d = PdfMeta(path=Path("x.pdf"), num_pages=0).to_dict()
        assert d["path"] == "x.pdf"
        assert "pdf_metadata" not in d


# ── Element conversion ────────────────────────────────────────────────


class TestColours:
    @pytest.mark.parametrize(
        "color, expected",
        [
            (None, None),
            (0, None),
            ((0, 0, 0), None),
            ((1,), (255, 255, 255)),
            ((1, 0, 0), (255, 0, 0)),
            ((0, 1, 1, 0), (255, 0, 0)),
            ((0.5, 0.5), None),
            ("bad", None),
        ],
    )
    def test_to_rgb(self, color, expected):
        assert to_rgb(color) == expected


class TestFonts:
    def test_family_strips_subset_and_style(self):
        assert font_family("ABCDEF+Helvetica-Bold") == "Helvetica"
        assert font_family("Times,Italic") == "Times"
        assert font_family("") is None

    def test_styles(self):
        assert font_styles("Arial-BoldItalic") == {TextStyle.BOLD, TextStyle.ITALIC}
        assert font_styles("Courier") == frozenset()
        assert font_styles(None) == frozenset()


class TestWordToElement:
    def test_typography(self):
        e = word_to_element(_word(50, 100, "Total", fontname="XYZ+Arial-Bold", size=9,
                                  non_stroking_color=(1, 0, 0)))
        assert isinstance(e, TextElement)
        assert (e.left, e.top, e.width, e.height) == (50, 100, 30, 10)
        assert e.is_bold
        assert e.font_size == 9.0
        assert e.font_family == "Arial"
        assert e.color == (255, 0, 0)

    def test_offset(self):
        assert word_to_element(_word(0, 10, "a"), offset=792).top == 802

    def test_degenerate(self):
        assert word_to_element(_word(50, 100, "x", x1=50)) is None
        assert word_to_element(_word(50, 100, "   ", x1=60)) is None


class TestGraphicElements:
    def test_lines_and_boxes(self):
        page = _mock_page(
            lines=[{"x0": 200, "x1": 40, "top": 90, "bottom": 90}],
            rects=[
                {"x0": 40, "x1": 200, "top": 95, "bottom": 135},
                {"x0": 0, "x1": 50, "top": 0, "bottom": 50, "stroke": False, "fill": True},
                {"x0": 10, "x1": 11, "top": 0, "bottom": 40},
            ],
        )
        elements = graphic_elements(page)
        kinds = [type(e) for e in elements]
        assert kinds == [
            HorizontalLine,
            HorizontalLine, HorizontalLine, VerticalLine, VerticalLine,
            Rectangle,
            VerticalLine,
        ]
        rule = elements[0]
        assert (rule.left, rule.top, rule.stretch) == (40, 90, 160)
        assert elements[-1].left == 10.5

    def test_unstroked_unfilled_box_is_ignored(self):
        page = _mock_page(rects=[{"x0": 0, "x1": 50, "top": 0, "bottom": 50, "stroke": False}])
        assert graphic_elements(page) == []

    def test_extract_page_elements(self):
        page = _mock_page(
            words=[_word(50, 100, "Name"), _word(50, 100, "", x1=60)],
            images=[{"x0": 0, "x1": 10, "top": 0, "bottom": 10}, {"x0": 5, "x1": 5, "top": 0, "bottom": 10}],
        )
        elements = extract_page_elements(page, offset=10)
        assert [type(e) for e in elements] == [TextElement, Image]
        assert elements[1].top == 10
        page.extract_words.assert_called_once()


# ── Validation ────────────────────────────────────────────────────────


class TestValidation:
    def test_missing_file(self, tmp_path):
        with pytest.raises(IngestError, match="not found"):
            ingest_pdf(tmp_path / "nonexistent.pdf")

    def test_directory_not_file(self, tmp_path):
        d = tmp_path / "subdir.pdf"
        d.mkdir()
        with pytest.raises(IngestError, match="Not a file"):
            ingest_pdf(d)

    def test_empty_file(self, tmp_path):
        f = tmp_path / "empty.pdf"
        f.write_bytes(b"")
        with pytest.raises(IngestError, match="Empty file"):
            ingest_pdf(f)

    def test_wrong_extension(self, tmp_path):
        f = tmp_path / "data.txt"
        f.write_text("hello")
        with pytest.raises(IngestError, match="Not a PDF"):
            load_document(f)

    def test_corrupt_pdf(self, tmp_path):
        f = tmp_path / "corrupt.pdf"
        f.write_bytes(b"this is not a pdf file at all")
        with pytest.raises(IngestError, match="Cannot open PDF"):
            ingest_pdf(f)


# ── ingest_pdf / load_document with mock pdfplumber ───────────────────


class TestIngestPdf:
    def test_basic_ingest(self, tmp_path):
        pdf_path = _fake_pdf_file(tmp_path)
        mock_pdf = _mock_pdf(
            [MagicMock(width=612.0, height=792.0), MagicMock(width=842.0, height=595.0)],
            {"Title": "Annual report", "Producer": b"Writer\x00"},
        )
        with patch("docgrid.ingest.ingest.pdfplumber.open", return_value=mock_pdf):
            meta = ingest_pdf(str(pdf_path))

        assert meta.num_pages == 2
        assert meta.page(1).width == 842.0
        assert meta.pdf_metadata["Title"] == "Annual report"
        assert "Writer" in meta.pdf_metadata["Producer"]
        assert meta.file_size_bytes > 0

    def test_encrypted_pdf_raises(self, tmp_path):
        pdf_path = _fake_pdf_file(tmp_path)
        mock_pdf = _mock_pdf([MagicMock(width=100.0, height=200.0)], {})
        mock_pdf.doc = MagicMock(is_extractable=False)
        with patch("docgrid.ingest.ingest.pdfplumber.open", return_value=mock_pdf):
            with pytest.raises(IngestError, match="password-protected"):
                ingest_pdf(pdf_path)


class TestLoadDocument:
    def _pages(self):
        return [
            _mock_page(words=[_word(50, 100, "first")]),
            _mock_page(words=[_word(50, 100, "second")]),
        ]

    def test_one_entry_per_page(self, tmp_path):
        pdf_path = _fake_pdf_file(tmp_path)
        with patch("docgrid.ingest.ingest.pdfplumber.open", return_value=_mock_pdf(self._pages())):
            loaded = load_document(pdf_path, pages=[1])

        (page,) = loaded
        assert page.index == 1
        assert page.source_pages == [1]
        assert [e.text for e in page.elements] == ["second"]

    def test_stacked_pages(self, tmp_path):
        pdf_path = _fake_pdf_file(tmp_path)
        with patch("docgrid.ingest.ingest.pdfplumber.open", return_value=_mock_pdf(self._pages())):
            (stacked,) = load_document(pdf_path, stack_pages=True)

        assert stacked.height == 1584.0
        assert stacked.source_pages == [0, 1]
        kinds = [type(e) for e in stacked.elements]
        assert kinds == [TextElement, PageBreak, TextElement]
        assert stacked.elements[2].top == 892.0

    def test_page_out_of_range(self, tmp_path):
        pdf_path = _fake_pdf_file(tmp_path)
        with patch("docgrid.ingest.ingest.pdfplumber.open", return_value=_mock_pdf(self._pages())):
            with pytest.raises(IngestError, match="out of range"):
                load_document(pdf_path, pages=[5])
