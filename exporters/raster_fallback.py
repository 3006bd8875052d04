"""
Raster Fallback Exporter

Builds a PDF in which every page is one full-page image at the page's
original dimensions. Used when the editor applies effects the vector export
cannot reproduce.
"""

import io
import logging
from typing import Optional, Sequence, Union

import pikepdf
from PIL import Image

from engine.config import ExportOptions
from exporters.content_builder import ContentBuilder, PageResources
from exporters.image_embedding import IMAGE_DECODE_ERRORS, embed_pil_image
from exporters.pdf_reconstructor import save_document, validate_export_input
from exporters.rasterizer import PillowRasterizer, Rasterizer
from models.drawing_types import coerce_annotations
from models.hydration_types import HydratedPage
from utils.validation import ExportError

logger = logging.getLogger(__name__)

Surface = Union[bytes, Image.Image]


def load_surface(surface: Surface, page_number: int) -> Image.Image:
    """
    Accept encoded image bytes or a Pillow image.

    Raises:
        ExportError: If the bytes are not a decodable image
    """
    if isinstance(surface, Image.Image):
        return surface
    try:
        image = Image.open(io.BytesIO(surface))
        image.load()
    except IMAGE_DECODE_ERRORS as e:
        raise ExportError(f"Page {page_number}: surface is not a decodable image: {e}")
    return image


class RasterFallbackExporter:
    """
    One embedded image per page.

    Surfaces come from the caller (one per page, e.g. a captured canvas) or,
    when none are given, from the configured `Rasterizer`.
    """

    def __init__(self, options: Optional[ExportOptions] = None, rasterizer: Optional[Rasterizer] = None):
        self.options = options or ExportOptions()
        self.rasterizer = rasterizer or PillowRasterizer()

    def export(
        self,
        pages: Sequence[HydratedPage],
        annotations: Optional[list] = None,
        surfaces: Optional[Sequence[Surface]] = None,
    ) -> bytes:
        """
        Raises:
            ExportError: On invalid pages, a surface count that does not
                match the page count, or an undecodable surface
        """
        validate_export_input(pages, annotations)
        if surfaces is not None and len(surfaces) != len(pages):
            raise ExportError(f"{len(surfaces)} surfaces for {len(pages)} pages")

        overlays = coerce_annotations(annotations)
        pdf = pikepdf.new()

        for index, page in enumerate(pages):
            if surfaces is not None:
                image = load_surface(surfaces[index], index + 1)
            else:
                drawings = overlays[index] if index < len(overlays) else []
                image = self.rasterizer.render(page, drawings, self.options.raster_scale)
            self._add_image_page(pdf, page, image)

        result = save_document(pdf)
        logger.info(f"Raster export: {len(pages)} pages, {len(result)} bytes")
        return result

    @staticmethod
    def _add_image_page(pdf: pikepdf.Pdf, page: HydratedPage, image: Image.Image) -> None:
        width, height = page.dims.width, page.dims.height
        resources = PageResources(pdf, {})
        name = resources.image(embed_pil_image(pdf, image))

        builder = ContentBuilder()
        builder.draw_xobject(name, 0, 0, width, height)

        pdf_page = pdf.add_blank_page(page_size=(width, height))
        pdf_page.Contents = pdf.make_stream(builder.to_bytes())
        pdf_page.Resources = resources.to_dictionary()
        logger.debug(f"Page {page.pageIndex + 1}: {image.width}x{image.height} surface")

