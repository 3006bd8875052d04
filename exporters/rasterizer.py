"""
Page rasterizers for the raster export mode.

A `Rasterizer` turns one hydrated page plus its overlays into a Pillow
image. `PillowRasterizer` draws blocks and annotations with `ImageDraw`;
`BlankRasterizer` produces white pages and is meant for tests and for
callers that supply their own surfaces.
"""

import io
import logging
from typing import List, Protocol, Sequence, Tuple, runtime_checkable

from PIL import Image, ImageDraw, ImageFont

from exporters.image_embedding import IMAGE_DECODE_ERRORS, decode_data_url
from exporters.vector_shapes import linearize_path
from models.drawing_types import DrawingObject
from models.geometry import Rect
from models.hydration_types import HydratedPage, ImageBlock, TableBlock, TextBlock
from utils.font_mapping import is_bold_weight, parse_css_color
from utils.font_metrics import select_font_variant, wrap_text
from utils.html_text import html_to_plain_text

logger = logging.getLogger(__name__)

WHITE = (255, 255, 255)


@runtime_checkable
class Rasterizer(Protocol):
    def render(self, page: HydratedPage, drawings: Sequence[DrawingObject], scale: float) -> Image.Image:
        """Render a page at `scale` pixels per point."""
        ...


def surface_size(page: HydratedPage, scale: float) -> Tuple[int, int]:
    return max(1, round(page.dims.width * scale)), max(1, round(page.dims.height * scale))


def _rgb255(color, default=(0, 0, 0)):
    rgb = parse_css_color(color) if isinstance(color, str) or color is None else color
    if rgb is None:
        return default
    return tuple(int(round(c * 255)) for c in rgb)


class BlankRasterizer:
    """White page of the right size; no rendering backend involved."""

    def render(self, page: HydratedPage, drawings: Sequence[DrawingObject], scale: float) -> Image.Image:
        return Image.new('RGB', surface_size(page, scale), WHITE)


class PillowRasterizer:
    """
    Approximate page renderer built on Pillow.

    Text uses Pillow's bundled scalable font and is wrapped with the same
    Helvetica metrics as the vector export. Rotation of blocks and overlays
    is not rendered.
    """

    def render(self, page: HydratedPage, drawings: Sequence[DrawingObject], scale: float) -> Image.Image:
        image = Image.new('RGB', surface_size(page, scale), WHITE)
        draw = ImageDraw.Draw(image)
        width, height = page.dims.width, page.dims.height

        for block in page.blocks:
            rect = Rect.from_box(block.box).to_pixels(width, height)
            if isinstance(block, TextBlock):
                self._text(draw, html_to_plain_text(block.html), rect, block.styles.fontSize,
                           is_bold_weight(block.styles.fontWeight), block.styles.italic,
                           _rgb255(block.styles.color), block.meta.lineHeightRatio, scale)
            elif isinstance(block, ImageBlock):
                self._image(image, block, rect, scale)
            elif isinstance(block, TableBlock):
                for row in block.rows:
                    for cell in row.cells:
                        cell_rect = Rect.from_box(cell.box).to_pixels(width, height)
                        draw.rectangle(self._scaled(cell_rect, scale), outline=(153, 153, 153))
                        self._text(draw, html_to_plain_text(cell.content), cell_rect,
                                   cell.styles.fontSize or 10.0, False, False,
                                   _rgb255(cell.styles.color), 1.2, scale)

        for obj in drawings:
            self._drawing(image, draw, obj, scale)
        return image

    @staticmethod
    def _scaled(rect: Rect, scale: float) -> List[float]:
        return [rect.x * scale, rect.y * scale, rect.right * scale, rect.bottom * scale]

    @staticmethod
    def _text(draw, text, rect: Rect, font_size, bold, italic, color, line_ratio, scale) -> None:
        if not text.strip() or not font_size:
            return
        font = ImageFont.load_default(size=max(1, round(font_size * scale)))
        base_font = select_font_variant(bold, italic)
        for index, line in enumerate(wrap_text(text, base_font, font_size, rect.w)):
            y = rect.y + index * font_size * line_ratio
            draw.text((rect.x * scale, y * scale), line, fill=color, font=font)

    @staticmethod
    def _image(image: Image.Image, block: ImageBlock, rect: Rect, scale: float) -> None:
        if not block.blob:
            return
        try:
            source = Image.open(io.BytesIO(block.blob)).convert('RGBA')
        except IMAGE_DECODE_ERRORS as e:
            logger.warning(f"Raster export: skipping image {block.id}: {e}")
            return
        size = (max(1, round(rect.w * scale)), max(1, round(rect.h * scale)))
        source = source.resize(size)
        image.paste(source, (round(rect.x * scale), round(rect.y * scale)), source)

    def _drawing(self, image: Image.Image, draw, obj: DrawingObject, scale: float) -> None:
        stroke = _rgb255(obj.stroke, None) if obj.stroke else None
        fill = _rgb255(obj.fill, None) if obj.fill else None
        if stroke is None and fill is None:
            stroke = (0, 0, 0)
        width = max(1, round(obj.effective_stroke_width * scale))
        box = [obj.left * scale, obj.top * scale,
               (obj.left + obj.scaled_width) * scale, (obj.top + obj.scaled_height) * scale]

        if obj.type == 'rect' and obj.scaled_width > 0 and obj.scaled_height > 0:
            draw.rectangle(box, outline=stroke, fill=fill, width=width)
        elif obj.type == 'ellipse' and obj.scaled_width > 0 and obj.scaled_height > 0:
            draw.ellipse(box, outline=stroke, fill=fill, width=width)
        elif obj.type == 'line' and None not in (obj.x1, obj.y1, obj.x2, obj.y2):
            draw.line([obj.x1 * scale, obj.y1 * scale, obj.x2 * scale, obj.y2 * scale],
                      fill=stroke or (0, 0, 0), width=width)
        elif obj.type == 'path':
            for polyline in linearize_path(obj.path or []):
                points = [((obj.left + x) * scale, (obj.top + y) * scale) for x, y in polyline]
                draw.line(points, fill=stroke or (0, 0, 0), width=width, joint='curve')
        elif obj.type == 'polygon':
            points = [((obj.left + p.x * obj.scaleX) * scale, (obj.top + p.y * obj.scaleY) * scale)
                      for p in obj.polygon_points()]
            if len(points) >= 3:
                draw.polygon(points, outline=stroke, fill=fill)
        elif obj.type == 'text' and obj.text:
            font = ImageFont.load_default(size=max(1, round((obj.fontSize or 14.0) * scale)))
            draw.text((obj.left * scale, obj.top * scale), obj.text, fill=fill or stroke or (0, 0, 0), font=font)
        elif obj.type == 'image' and obj.src:
            data, _ = decode_data_url(obj.src)
            if data is None:
                return
            try:
                source = Image.open(io.BytesIO(data)).convert('RGBA')
            except IMAGE_DECODE_ERRORS as e:
                logger.warning(f"Raster export: skipping image annotation: {e}")
                return
            size = (max(1, round(obj.scaled_width * scale)), max(1, round(obj.scaled_height * scale)))
            source = source.resize(size)
            image.paste(source, (round(obj.left * scale), round(obj.top * scale)), source)
        else:
            logger.debug(f"Raster export: nothing drawn for {obj.type}")
