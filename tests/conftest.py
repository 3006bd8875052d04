"""Shared fixtures: small PDFs built with pikepdf and layout primitives."""

import io
from typing import Dict, Optional, Sequence, Tuple

import pikepdf
import pytest
from pikepdf import Dictionary, Name

from models.layout_types import Line, Run

LETTER = (612, 792)


def text_op(x: float, y: float, text: str, size: float = 12, font: str = '/F1') -> str:
    """One positioned string in PDF user space."""
    escaped = text.replace('\\', '\\\\').replace('(', '\\(').replace(')', '\\)')
    return f"BT {font} {size} Tf 1 0 0 1 {x} {y} Tm ({escaped}) Tj ET\n"


def make_pdf(
    pages: Sequence[str],
    size: Tuple[float, float] = LETTER,
    images: Optional[Dict[str, Tuple[int, int, bytes]]] = None,
    rotate: int = 0,
) -> bytes:
    """
    Build a PDF whose pages carry the given content streams.

    Every page gets Helvetica as /F1 and Helvetica-Bold as /F2, plus the
    raw 8-bit RGB `images` as XObjects keyed by resource name.
    """
    pdf = pikepdf.new()
    fonts = Dictionary(
        F1=pdf.make_indirect(Dictionary(
            Type=Name.Font, Subtype=Name.Type1, BaseFont=Name.Helvetica, Encoding=Name.WinAnsiEncoding,
        )),
        F2=pdf.make_indirect(Dictionary(
            Type=Name.Font, Subtype=Name.Type1, BaseFont=Name('/Helvetica-Bold'), Encoding=Name.WinAnsiEncoding,
        )),
    )
    xobjects = Dictionary()
    for name, (width, height, data) in (images or {}).items():
        xobjects[Name('/' + name)] = pikepdf.Stream(
            pdf, data,
            Type=Name.XObject, Subtype=Name.Image,
            Width=width, Height=height,
            ColorSpace=Name.DeviceRGB, BitsPerComponent=8,
        )

    for content in pages:
        page = pdf.add_blank_page(page_size=size)
        page.Contents = pdf.make_stream(content.encode('latin-1'))
        page.Resources = Dictionary(Font=fonts, XObject=xobjects)
        if rotate:
            page.Rotate = rotate

    buffer = io.BytesIO()
    pdf.save(buffer)
    return buffer.getvalue()


def two_paragraph_content() -> str:
    """Two body paragraphs of two lines each, separated by a blank band."""
    return ''.join([
        text_op(72, 700, 'The first paragraph starts here'),
        text_op(72, 686, 'and continues on a second line.'),
        text_op(72, 640, 'A second paragraph follows'),
        text_op(72, 626, 'after a visible gap.'),
    ])


def make_run(
    text: str = 'text',
    x: float = 72.0,
    y: float = 100.0,
    width: Optional[float] = None,
    size: float = 10.0,
    font_name: str = 'Helvetica',
) -> Run:
    return Run(
        text=text,
        x=x,
        y=y,
        width=width if width is not None else len(text) * size * 0.5,
        height=size,
        font_size=size,
        font_name=font_name,
    )


def make_line(x_start: float, x_end: float, y: float, text: str = 'line', size: float = 10.0, **kwargs) -> Line:
    return Line(runs=[make_run(text, x=x_start, y=y, width=x_end - x_start, size=size, **kwargs)], y=y)


@pytest.fixture
def two_paragraph_pdf() -> bytes:
    return make_pdf([two_paragraph_content()])


@pytest.fixture
def two_page_pdf() -> bytes:
    return make_pdf([two_paragraph_content(), text_op(72, 700, 'Second page')])


@pytest.fixture
def image_pdf() -> bytes:
    pixels = bytes([255, 0, 0, 0, 255, 0, 0, 0, 255, 255, 255, 255])
    content = "q 100 0 0 50 20 30 cm /Im0 Do Q\n"
    return make_pdf([content], size=(200, 200), images={'Im0': (2, 2, pixels)})
