"""
PDF Reconstructor

Serializes hydrated pages and their annotation overlays into a new PDF with
selectable text and native vector graphics.

Text is set in the base-14 Helvetica family and wrapped with real glyph
widths, so a line that fit its box when hydrated fits again when rebuilt.
Blocks and drawing objects that cannot be rendered are skipped with a
warning; only conditions that would produce an invalid document raise.
"""

import io
import logging
import math
from typing import Dict, List, Optional, Sequence

import pikepdf

from engine.config import ExportOptions
from exporters.content_builder import ContentBuilder, PageResources
from exporters.image_embedding import embed_image_bytes
from exporters.vector_shapes import BLACK, DrawingRenderer
from models.drawing_types import AnnotationSet, coerce_annotations
from models.geometry import Rect
from models.hydration_types import HydratedPage, ImageBlock, TableBlock, TableCell, TextBlock
from utils.font_mapping import is_bold_weight, parse_css_color
from utils.font_metrics import measure_text, select_font_variant, wrap_text
from utils.html_text import html_to_plain_text
from utils.pdf_transforms import rotate_about
from utils.validation import ExportError

logger = logging.getLogger(__name__)

DEFAULT_FONT_SIZE = 12.0
TABLE_FONT_SIZE = 10.0
TABLE_BORDER_GRAY = (0.6, 0.6, 0.6)

# Underline offset below the baseline and stroke width, as fractions of the font size
UNDERLINE_OFFSET = 0.1
UNDERLINE_WIDTH = 0.05


def validate_export_input(pages: Sequence[HydratedPage], annotations: Optional[list]) -> None:
    """
    Reject inputs that cannot produce a valid document.

    Raises:
        ExportError: On an empty page list, invalid page dimensions, or
            more annotation lists than pages
    """
    if not pages:
        raise ExportError("Nothing to export: no pages")
    if annotations is not None and len(annotations) > len(pages):
        raise ExportError(f"{len(annotations)} annotation lists for {len(pages)} pages")
    for page in pages:
        width, height = page.dims.width, page.dims.height
        if not (math.isfinite(width) and math.isfinite(height)) or width <= 0 or height <= 0:
            raise ExportError(f"Page {page.pageIndex + 1}: invalid dimensions {width}x{height}")


def save_document(pdf: pikepdf.Pdf) -> bytes:
    """Serialize a document, converting writer failures into ExportError."""
    buffer = io.BytesIO()
    try:
        pdf.save(buffer)
    except (pikepdf.PdfError, ValueError) as e:
        raise ExportError(f"Failed to serialize PDF: {e}")
    result_bytes = buffer.getvalue()
    logger.debug(f"Generated PDF: {len(result_bytes)} bytes")
    return result_bytes


class PDFReconstructor:
    """
    Vector export of a hydrated document.

    Example:
        >>> pdf_bytes = PDFReconstructor().reconstruct(pages, annotations)
    """

    def __init__(self, options: Optional[ExportOptions] = None):
        self.options = options or ExportOptions()
        self.drawings = DrawingRenderer(self.options)
        self.skipped_blocks = 0
        self.skipped_objects = 0

    def reconstruct(self, pages: Sequence[HydratedPage], annotations: Optional[list] = None) -> bytes:
        """
        Build the output document.

        Args:
            pages: Hydrated pages in output order
            annotations: `annotations[i]` holds the DrawingObjects of `pages[i]`

        Raises:
            ExportError: If the input cannot produce a valid document
        """
        validate_export_input(pages, annotations)
        overlays = coerce_annotations(annotations)
        self.skipped_blocks = 0
        self.skipped_objects = 0

        pdf = pikepdf.new()
        font_objects: Dict[str, pikepdf.Object] = {}

        for index, page in enumerate(pages):
            page_overlays = overlays[index] if index < len(overlays) else []
            self._build_page(pdf, font_objects, page, page_overlays)

        result = save_document(pdf)
        logger.info(
            f"Vector export: {len(pages)} pages, {len(result)} bytes "
            f"({self.skipped_blocks} blocks and {self.skipped_objects} drawing objects skipped)"
        )
        return result

    def _build_page(self, pdf: pikepdf.Pdf, font_objects, page: HydratedPage, overlays: AnnotationSet) -> None:
        width, height = page.dims.width, page.dims.height
        builder = ContentBuilder()
        resources = PageResources(pdf, font_objects)

        for block in page.blocks:
            mark = builder.mark()
            try:
                if isinstance(block, TextBlock):
                    drawn = self._draw_text_block(builder, resources, block, width, height)
                elif isinstance(block, ImageBlock):
                    drawn = self._draw_image_block(builder, resources, block, width, height)
                elif isinstance(block, TableBlock):
                    drawn = self._draw_table_block(builder, resources, block, width, height)
                else:
                    logger.warning(f"Page {page.pageIndex + 1}: unknown block {type(block).__name__}")
                    drawn = False
            except Exception as e:
                logger.warning(f"Page {page.pageIndex + 1}: skipping block {block.id}: {e}")
                builder.rollback(mark)
                drawn = False
            if not drawn:
                self.skipped_blocks += 1

        for obj in overlays:
            mark = builder.mark()
            try:
                drawn = self.drawings.draw(builder, resources, obj, height)
            except Exception as e:
                logger.warning(f"Page {page.pageIndex + 1}: skipping {obj.type} annotation: {e}")
                builder.rollback(mark)
                drawn = False
            if not drawn:
                self.skipped_objects += 1

        pdf_page = pdf.add_blank_page(page_size=(width, height))
        pdf_page.Contents = pdf.make_stream(builder.to_bytes())
        pdf_page.Resources = resources.to_dictionary()
        logger.debug(f"Page {page.pageIndex + 1}: {len(builder)} operators")

    # Text

    def _draw_text_block(self, builder, resources, block: TextBlock, page_width: float, page_height: float) -> bool:
        text = html_to_plain_text(block.html)
        if not text.strip():
            return False

        rect = Rect.from_box(block.box).to_pixels(page_width, page_height)
        styles = block.styles
        font_size = styles.fontSize if styles.fontSize and styles.fontSize > 0 else DEFAULT_FONT_SIZE
        line_ratio = styles.lineHeight or block.meta.lineHeightRatio or self.options.line_height_ratio
        rotation = block.meta.rotation or 0.0

        # Quarter-turned blocks are laid out in their unrotated frame
        left, top, box_width = rect.x, rect.y, rect.w
        if rotation and abs(math.sin(math.radians(rotation))) > abs(math.cos(math.radians(rotation))):
            box_width = rect.h
            left = rect.center_x - rect.h / 2
            top = rect.center_y - rect.w / 2

        if rotation:
            builder.save()
            builder.concat(rotate_about(rotation, rect.center_x, page_height - rect.center_y))

        self._set_text(
            builder, resources, text,
            left=left, top=top, width=box_width,
            page_height=page_height,
            font_size=font_size,
            bold=is_bold_weight(styles.fontWeight),
            italic=styles.italic,
            color=parse_css_color(styles.color) or BLACK,
            align=styles.align,
            line_advance=font_size * line_ratio,
            letter_spacing=styles.letterSpacing,
            underline=styles.underline,
        )

        if rotation:
            builder.restore()
        return True

    def _set_text(
        self,
        builder: ContentBuilder,
        resources: PageResources,
        text: str,
        left: float,
        top: float,
        width: float,
        page_height: float,
        font_size: float,
        bold: bool = False,
        italic: bool = False,
        color=BLACK,
        align: str = 'left',
        line_advance: Optional[float] = None,
        letter_spacing: float = 0.0,
        underline: bool = False,
    ) -> int:
        """
        Wrap `text` into the box and show it line by line.

        The first baseline sits one font size below `top` and every
        following line advances by `line_advance`. Returns the number of
        lines set.
        """
        base_font = select_font_variant(bold, italic)
        font_name = resources.font(base_font)
        advance = line_advance or font_size * self.options.line_height_ratio
        lines = wrap_text(text, base_font, font_size, width, letter_spacing)

        placed = []
        for index, line in enumerate(lines):
            line_width = measure_text(line, base_font, font_size, letter_spacing)
            if align == 'center':
                x = left + (width - line_width) / 2
            elif align == 'right':
                x = left + width - line_width
            else:
                x = left
            baseline = page_height - (top + font_size + index * advance)
            placed.append((line, x, baseline, line_width))

        builder.fill_rgb(color)
        builder.begin_text()
        builder.font(font_name, font_size)
        if letter_spacing:
            builder.char_spacing(letter_spacing)
        for line, x, baseline, _ in placed:
            if line:
                builder.text_matrix(x, baseline)
                builder.show_text(line)
        builder.end_text()

        if underline:
            builder.stroke_rgb(color)
            builder.line_width(max(font_size * UNDERLINE_WIDTH, 0.5))
            for line, x, baseline, line_width in placed:
                if line_width > 0:
                    y = baseline - font_size * UNDERLINE_OFFSET
                    builder.move_to(x, y)
                    builder.line_to(x + line_width, y)
            builder.stroke()

        return len(placed)

    # Images

    def _draw_image_block(self, builder, resources, block: ImageBlock, page_width: float, page_height: float) -> bool:
        if not block.blob:
            logger.warning(f"Skipping image {block.id}: no pixel data")
            return False
        try:
            stream = embed_image_bytes(resources.pdf, block.blob, block.mimeType)
        except ValueError as e:
            logger.warning(f"Skipping image {block.id}: {e}")
            return False

        rect = Rect.from_box(block.box).to_pixels(page_width, page_height)
        builder.draw_xobject(resources.image(stream), rect.x, page_height - rect.bottom, rect.w, rect.h)
        return True

    # Tables

    def _draw_table_block(self, builder, resources, block: TableBlock, page_width: float, page_height: float) -> bool:
        cells: List[TableCell] = [cell for row in block.rows for cell in row.cells]
        if not cells:
            return False

        padding = self.options.table_cell_padding
        for cell in cells:
            rect = Rect.from_box(cell.box).to_pixels(page_width, page_height)
            if self.options.draw_table_borders:
                builder.stroke_rgb(TABLE_BORDER_GRAY)
                builder.line_width(self.options.table_border_width)
                builder.rect(rect.x, page_height - rect.bottom, rect.w, rect.h)
                builder.stroke()

            text = html_to_plain_text(cell.content)
            if not text.strip():
                continue
            styles = cell.styles
            self._set_text(
                builder, resources, text,
                left=rect.x + padding,
                top=rect.y + padding,
                width=max(rect.w - 2 * padding, 1.0),
                page_height=page_height,
                font_size=styles.fontSize or TABLE_FONT_SIZE,
                bold=is_bold_weight(styles.fontWeight),
                italic=bool(styles.italic),
                color=parse_css_color(styles.color) or BLACK,
                align=cell.align,
            )
        return True
