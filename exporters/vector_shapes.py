"""
Annotation overlays as native vector operators.

DrawingObjects use top-down page pixels with (left, top) as the object's
origin; PDF user space is bottom-up, so every y is flipped against the page
height. Fabric-style rotation is clockwise about the origin.
"""

import logging
import math
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from engine.config import ExportOptions
from exporters.content_builder import ContentBuilder, PageResources, ROUND_CAP, ROUND_JOIN
from exporters.image_embedding import decode_data_url, embed_image_bytes
from models.drawing_types import DrawingObject
from utils.font_mapping import is_bold_weight, parse_css_color
from utils.font_metrics import select_font_variant
from utils.pdf_transforms import rotate_about

logger = logging.getLogger(__name__)

# Control point distance for a quarter ellipse drawn with one cubic Bezier
BEZIER_KAPPA = 0.5522847498

BLACK = (0.0, 0.0, 0.0)

Point = Tuple[float, float]


def ellipse_curves(cx: float, cy: float, rx: float, ry: float) -> List[Tuple[float, ...]]:
    """Four cubic segments approximating an ellipse, starting at its rightmost point."""
    kx, ky = rx * BEZIER_KAPPA, ry * BEZIER_KAPPA
    return [
        (cx + rx, cy + ky, cx + kx, cy + ry, cx, cy + ry),
        (cx - kx, cy + ry, cx - rx, cy + ky, cx - rx, cy),
        (cx - rx, cy - ky, cx - kx, cy - ry, cx, cy - ry),
        (cx + kx, cy - ry, cx + rx, cy - ky, cx + rx, cy),
    ]


def _quadratic(p0: Point, p1: Point, p2: Point, t: float) -> Point:
    u = 1 - t
    return (
        u * u * p0[0] + 2 * u * t * p1[0] + t * t * p2[0],
        u * u * p0[1] + 2 * u * t * p1[1] + t * t * p2[1],
    )


def _cubic(p0: Point, p1: Point, p2: Point, p3: Point, t: float) -> Point:
    u = 1 - t
    return (
        u ** 3 * p0[0] + 3 * u * u * t * p1[0] + 3 * u * t * t * p2[0] + t ** 3 * p3[0],
        u ** 3 * p0[1] + 3 * u * u * t * p1[1] + 3 * u * t * t * p2[1] + t ** 3 * p3[1],
    )


def linearize_path(path: Sequence[Sequence], segments: int = 8) -> List[List[Point]]:
    """
    Flatten SVG-style path commands into polylines.

    Supports absolute M, L, H, V, Q, C and Z; curves are sampled with
    `segments` points. Each M starts a new polyline. Commands with missing
    or non-numeric coordinates are skipped.
    """
    polylines: List[List[Point]] = []
    current: List[Point] = []
    start: Optional[Point] = None

    for command in path:
        if not command:
            continue
        op = str(command[0]).upper()
        try:
            args = [float(v) for v in command[1:]]
        except (TypeError, ValueError):
            logger.debug(f"Skipping malformed path command {command!r}")
            continue
        last = current[-1] if current else start

        if op == 'M' and len(args) >= 2:
            if len(current) > 1:
                polylines.append(current)
            start = (args[0], args[1])
            current = [start]
        elif last is None:
            continue
        elif op == 'L' and len(args) >= 2:
            current.append((args[0], args[1]))
        elif op == 'H' and args:
            current.append((args[0], last[1]))
        elif op == 'V' and args:
            current.append((last[0], args[0]))
        elif op == 'Q' and len(args) >= 4:
            control, end = (args[0], args[1]), (args[2], args[3])
            current.extend(_quadratic(last, control, end, i / segments) for i in range(1, segments + 1))
        elif op == 'C' and len(args) >= 6:
            c1, c2, end = (args[0], args[1]), (args[2], args[3]), (args[4], args[5])
            current.extend(_cubic(last, c1, c2, end, i / segments) for i in range(1, segments + 1))
        elif op == 'Z' and start is not None:
            current.append(start)
        else:
            logger.debug(f"Unsupported path command {op}")

    if len(current) > 1:
        polylines.append(current)
    return polylines


def is_finite_object(obj: DrawingObject) -> bool:
    values = [obj.left, obj.top, obj.angle, obj.scaleX, obj.scaleY]
    values.extend(v for v in (obj.width, obj.height, obj.x1, obj.y1, obj.x2, obj.y2) if v is not None)
    return all(math.isfinite(v) for v in values)


class DrawingRenderer:
    """Writes one page's DrawingObjects into a ContentBuilder."""

    def __init__(self, options: Optional[ExportOptions] = None):
        self.options = options or ExportOptions()
        self._handlers: Dict[str, Callable] = {
            'rect': self._draw_rect,
            'ellipse': self._draw_ellipse,
            'line': self._draw_line,
            'path': self._draw_path,
            'polygon': self._draw_polygon,
            'text': self._draw_text,
            'image': self._draw_image,
        }

    def draw(self, builder: ContentBuilder, resources: PageResources, obj: DrawingObject, page_height: float) -> bool:
        """
        Draw one object. Returns False when the object was skipped.

        Unknown types and objects without usable geometry are skipped with a
        warning; the rest of the page is unaffected.
        """
        handler = self._handlers.get(obj.type)
        if handler is None:
            logger.warning(f"Skipping unsupported drawing object type '{obj.type}'")
            return False

        if not is_finite_object(obj):
            logger.warning(f"Skipping {obj.type} with non-finite geometry")
            return False

        builder.save()
        state = resources.opacity(obj.effective_opacity)
        if state:
            builder.graphics_state(state)
        if obj.angle:
            builder.concat(rotate_about(-obj.angle, obj.left, page_height - obj.top))
        drawn = handler(builder, resources, obj, page_height)
        builder.restore()
        return drawn

    # Paint setup

    @staticmethod
    def _paint_colors(obj: DrawingObject):
        fill = parse_css_color(obj.fill)
        stroke = parse_css_color(obj.stroke)
        if stroke is None and fill is None:
            stroke = BLACK
        return fill, stroke

    @staticmethod
    def _apply_paint(builder: ContentBuilder, obj: DrawingObject, fill, stroke) -> None:
        if fill is not None:
            builder.fill_rgb(fill)
        if stroke is not None:
            builder.stroke_rgb(stroke)
            builder.line_width(obj.effective_stroke_width)

    # Shapes

    def _draw_rect(self, builder, resources, obj: DrawingObject, page_height: float) -> bool:
        w, h = obj.scaled_width, obj.scaled_height
        if w <= 0 or h <= 0:
            logger.warning(f"Skipping rect without size at ({obj.left}, {obj.top})")
            return False
        fill, stroke = self._paint_colors(obj)
        self._apply_paint(builder, obj, fill, stroke)
        builder.rect(obj.left, page_height - obj.top - h, w, h)
        builder.paint(fill is not None, stroke is not None)
        return True

    def _draw_ellipse(self, builder, resources, obj: DrawingObject, page_height: float) -> bool:
        rx, ry = obj.scaled_width / 2, obj.scaled_height / 2
        if rx <= 0 or ry <= 0:
            logger.warning(f"Skipping ellipse without radius at ({obj.left}, {obj.top})")
            return False
        fill, stroke = self._paint_colors(obj)
        self._apply_paint(builder, obj, fill, stroke)

        cx, cy = obj.left + rx, page_height - (obj.top + ry)
        builder.move_to(cx + rx, cy)
        for curve in ellipse_curves(cx, cy, rx, ry):
            builder.curve_to(*curve)
        builder.close_path()
        builder.paint(fill is not None, stroke is not None)
        return True

    def _draw_line(self, builder, resources, obj: DrawingObject, page_height: float) -> bool:
        if None in (obj.x1, obj.y1, obj.x2, obj.y2):
            logger.warning("Skipping line without endpoints")
            return False
        stroke = parse_css_color(obj.stroke) or BLACK
        builder.stroke_rgb(stroke)
        builder.line_width(obj.effective_stroke_width)
        builder.move_to(obj.x1, page_height - obj.y1)
        builder.line_to(obj.x2, page_height - obj.y2)
        builder.stroke()
        return True

    def _draw_path(self, builder, resources, obj: DrawingObject, page_height: float) -> bool:
        polylines = linearize_path(obj.path or [], self.options.curve_segments)
        if not polylines:
            logger.warning("Skipping path without drawable segments")
            return False

        builder.stroke_rgb(parse_css_color(obj.stroke) or BLACK)
        builder.line_width(obj.effective_stroke_width)
        builder.line_cap(ROUND_CAP)
        builder.line_join(ROUND_JOIN)
        for polyline in polylines:
            builder.polyline([(obj.left + x, page_height - (obj.top + y)) for x, y in polyline])
        builder.stroke()
        return True

    def _draw_polygon(self, builder, resources, obj: DrawingObject, page_height: float) -> bool:
        points = obj.polygon_points()
        if len(points) < 3:
            logger.warning("Skipping polygon with fewer than 3 points")
            return False
        fill, stroke = self._paint_colors(obj)
        self._apply_paint(builder, obj, fill, stroke)
        builder.polyline(
            [(obj.left + p.x * obj.scaleX, page_height - (obj.top + p.y * obj.scaleY)) for p in points],
            closed=True,
        )
        builder.paint(fill is not None, stroke is not None)
        return True

    def _draw_text(self, builder, resources, obj: DrawingObject, page_height: float) -> bool:
        if not obj.text:
            return False
        font_size = obj.fontSize or self.options.default_annotation_font_size
        italic = (obj.fontStyle or '').lower() in ('italic', 'oblique')
        font_name = resources.font(select_font_variant(is_bold_weight(obj.fontWeight), italic))
        color = parse_css_color(obj.fill) or parse_css_color(obj.stroke) or BLACK
        advance = font_size * self.options.line_height_ratio

        builder.fill_rgb(color)
        builder.begin_text()
        builder.font(font_name, font_size)
        for index, line in enumerate(obj.text.split('\n')):
            builder.text_matrix(obj.left, page_height - (obj.top + font_size + index * advance))
            builder.show_text(line)
        builder.end_text()
        return True

    def _draw_image(self, builder, resources, obj: DrawingObject, page_height: float) -> bool:
        w, h = obj.scaled_width, obj.scaled_height
        if not obj.src or w <= 0 or h <= 0:
            logger.warning("Skipping image annotation without source or size")
            return False
        data, mime_type = decode_data_url(obj.src)
        if data is None:
            logger.warning("Skipping image annotation: only base64 data URLs are embedded")
            return False
        try:
            stream = embed_image_bytes(resources.pdf, data, mime_type)
        except ValueError as e:
            logger.warning(f"Skipping image annotation: {e}")
            return False
        builder.draw_xobject(resources.image(stream), obj.left, page_height - obj.top - h, w, h)
        return True
