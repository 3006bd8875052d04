"""
Content stream assembly for rebuilt pages.

`ContentBuilder` collects operators as pikepdf `ContentStreamInstruction`s
and serializes them with `unparse_content_stream`, the same path used when
rewriting existing content streams. `PageResources` names the fonts, images
and graphics states a page refers to.
"""

from typing import Dict, List, Optional, Sequence, Tuple

import pikepdf
from pikepdf import ContentStreamInstruction, Dictionary, Name, Operator, unparse_content_stream

from constants.pdf_operators import (
    OP_BEGIN_TEXT,
    OP_CLOSE_PATH,
    OP_CTM,
    OP_CURVE_TO,
    OP_END_PATH,
    OP_END_TEXT,
    OP_FILL,
    OP_FILL_STROKE,
    OP_LINE_TO,
    OP_MOVE_TO,
    OP_PAINT_XOBJECT,
    OP_RECTANGLE,
    OP_RESTORE_STATE,
    OP_SAVE_STATE,
    OP_SET_CHAR_SPACING,
    OP_SET_FONT,
    OP_SET_GRAPHICS_STATE_PARAMS,
    OP_SET_LINE_CAP,
    OP_SET_LINE_JOIN,
    OP_SET_LINE_WIDTH,
    OP_SET_RGB_COLOR_FILL,
    OP_SET_RGB_COLOR_STROKE,
    OP_SET_TEXT_MATRIX,
    OP_SHOW_TEXT,
    OP_STROKE,
)
from utils.font_metrics import PDF_TEXT_ENCODING, to_pdf_text

NUMBER_PRECISION = 4

# Line cap / join styles
ROUND_CAP = 1
ROUND_JOIN = 1


def _num(value: float) -> float:
    return round(float(value), NUMBER_PRECISION)


class ContentBuilder:
    """Accumulates content stream operators for one page."""

    def __init__(self):
        self.instructions: List[ContentStreamInstruction] = []

    def _emit(self, operator: bytes, *operands) -> 'ContentBuilder':
        self.instructions.append(ContentStreamInstruction(list(operands), Operator(operator.decode('ascii'))))
        return self

    def __len__(self) -> int:
        return len(self.instructions)

    def mark(self) -> int:
        return len(self.instructions)

    def rollback(self, mark: int) -> None:
        """Drop everything emitted after `mark`, keeping q/Q balanced after a failed draw."""
        del self.instructions[mark:]

    # Graphics state

    def save(self):
        return self._emit(OP_SAVE_STATE)

    def restore(self):
        return self._emit(OP_RESTORE_STATE)

    def concat(self, matrix: Sequence[float]):
        return self._emit(OP_CTM, *(_num(v) for v in matrix))

    def line_width(self, width: float):
        return self._emit(OP_SET_LINE_WIDTH, _num(width))

    def line_cap(self, style: int):
        return self._emit(OP_SET_LINE_CAP, style)

    def line_join(self, style: int):
        return self._emit(OP_SET_LINE_JOIN, style)

    def graphics_state(self, name: str):
        return self._emit(OP_SET_GRAPHICS_STATE_PARAMS, Name('/' + name))

    def stroke_rgb(self, rgb: Tuple[float, float, float]):
        return self._emit(OP_SET_RGB_COLOR_STROKE, *(_num(c) for c in rgb))

    def fill_rgb(self, rgb: Tuple[float, float, float]):
        return self._emit(OP_SET_RGB_COLOR_FILL, *(_num(c) for c in rgb))

    # Path construction and painting

    def move_to(self, x: float, y: float):
        return self._emit(OP_MOVE_TO, _num(x), _num(y))

    def line_to(self, x: float, y: float):
        return self._emit(OP_LINE_TO, _num(x), _num(y))

    def curve_to(self, x1: float, y1: float, x2: float, y2: float, x3: float, y3: float):
        return self._emit(OP_CURVE_TO, _num(x1), _num(y1), _num(x2), _num(y2), _num(x3), _num(y3))

    def rect(self, x: float, y: float, w: float, h: float):
        return self._emit(OP_RECTANGLE, _num(x), _num(y), _num(w), _num(h))

    def close_path(self):
        return self._emit(OP_CLOSE_PATH)

    def stroke(self):
        return self._emit(OP_STROKE)

    def fill(self):
        return self._emit(OP_FILL)

    def fill_and_stroke(self):
        return self._emit(OP_FILL_STROKE)

    def paint(self, fill: bool, stroke: bool):
        """Paint the current path; with neither fill nor stroke the path is discarded."""
        if fill and stroke:
            return self.fill_and_stroke()
        if fill:
            return self.fill()
        if stroke:
            return self.stroke()
        return self._emit(OP_END_PATH)

    def polyline(self, points: Sequence[Tuple[float, float]], closed: bool = False):
        if not points:
            return self
        self.move_to(*points[0])
        for point in points[1:]:
            self.line_to(*point)
        if closed:
            self.close_path()
        return self

    # Text

    def begin_text(self):
        return self._emit(OP_BEGIN_TEXT)

    def end_text(self):
        return self._emit(OP_END_TEXT)

    def font(self, name: str, size: float):
        return self._emit(OP_SET_FONT, Name('/' + name), _num(size))

    def char_spacing(self, spacing: float):
        return self._emit(OP_SET_CHAR_SPACING, _num(spacing))

    def text_matrix(self, x: float, y: float):
        return self._emit(OP_SET_TEXT_MATRIX, 1, 0, 0, 1, _num(x), _num(y))

    def show_text(self, text: str):
        encoded = to_pdf_text(text).encode(PDF_TEXT_ENCODING)
        return self._emit(OP_SHOW_TEXT, pikepdf.String(encoded))

    # XObjects

    def draw_xobject(self, name: str, x: float, y: float, w: float, h: float):
        """Paint an image XObject into the rectangle with bottom-left corner (x, y)."""
        self.save()
        self.concat((w, 0, 0, h, x, y))
        self._emit(OP_PAINT_XOBJECT, Name('/' + name))
        return self.restore()

    def to_bytes(self) -> bytes:
        return unparse_content_stream(self.instructions)


class PageResources:
    """
    Resource names used by one page.

    Font dictionaries are shared document-wide through `font_objects`; images
    and graphics states are registered per page.
    """

    def __init__(self, pdf: pikepdf.Pdf, font_objects: Dict[str, pikepdf.Object]):
        self.pdf = pdf
        self._font_objects = font_objects
        self._fonts: Dict[str, str] = {}
        self._xobjects: Dict[str, pikepdf.Object] = {}
        self._states: Dict[float, str] = {}

    def font(self, base_font: str) -> str:
        """Resource name for a base-14 font, creating the font dictionary once per document."""
        if base_font not in self._fonts:
            if base_font not in self._font_objects:
                self._font_objects[base_font] = self.pdf.make_indirect(Dictionary(
                    Type=Name.Font,
                    Subtype=Name.Type1,
                    BaseFont=Name('/' + base_font),
                    Encoding=Name.WinAnsiEncoding,
                ))
            self._fonts[base_font] = f"F{len(self._fonts) + 1}"
        return self._fonts[base_font]

    def image(self, stream: pikepdf.Stream) -> str:
        name = f"Im{len(self._xobjects) + 1}"
        self._xobjects[name] = stream
        return name

    def opacity(self, alpha: float) -> Optional[str]:
        """Graphics state name setting both stroke and fill alpha; None when opaque."""
        alpha = round(max(0.0, min(1.0, alpha)), 3)
        if alpha >= 1.0:
            return None
        if alpha not in self._states:
            self._states[alpha] = f"GS{len(self._states) + 1}"
        return self._states[alpha]

    def to_dictionary(self) -> Dictionary:
        resources = Dictionary()
        if self._fonts:
            resources.Font = Dictionary({
                '/' + name: self._font_objects[base] for base, name in self._fonts.items()
            })
        if self._xobjects:
            resources.XObject = Dictionary({'/' + name: stream for name, stream in self._xobjects.items()})
        if self._states:
            resources.ExtGState = Dictionary({
                '/' + name: Dictionary(Type=Name.ExtGState, CA=alpha, ca=alpha)
                for alpha, name in self._states.items()
            })
        return resources
