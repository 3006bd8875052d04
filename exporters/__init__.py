"""
Exporters

Rebuild a PDF from hydrated pages and their annotation overlays:

- pdf_reconstructor: vector export with selectable text
- raster_fallback: one full-page image per page
- rasterizer: Rasterizer interface with Pillow and blank implementations

The export mode is always chosen by the caller.
"""

import logging
from typing import Optional, Sequence

from engine.config import ExportOptions
from exporters.pdf_reconstructor import PDFReconstructor
from exporters.raster_fallback import RasterFallbackExporter, Surface
from exporters.rasterizer import BlankRasterizer, PillowRasterizer, Rasterizer
from models.hydration_types import HydratedPage

logger = logging.getLogger(__name__)

EXPORT_MODES = ('vector', 'raster')


def reconstruct(
    pages: Sequence[HydratedPage],
    annotations: Optional[list] = None,
    mode: str = 'vector',
    options: Optional[ExportOptions] = None,
    rasterizer: Optional[Rasterizer] = None,
    surfaces: Optional[Sequence[Surface]] = None,
) -> bytes:
    """
    Serialize pages plus per-page annotations into PDF bytes.

    Args:
        pages: Hydrated pages in output order
        annotations: `annotations[i]` holds the DrawingObjects of `pages[i]`
        mode: 'vector' or 'raster'
        options: Export options (defaults if None)
        rasterizer: Raster mode renderer (PillowRasterizer if None)
        surfaces: Raster mode pre-rendered page images, one per page

    Raises:
        ValueError: If `mode` is not a known export mode
        ExportError: If the input cannot produce a valid document
    """
    if mode not in EXPORT_MODES:
        raise ValueError(f"Unknown export mode '{mode}', expected one of {EXPORT_MODES}")

    options = options or ExportOptions()
    if not options.validate():
        raise ValueError("Invalid export options")

    logger.info(f"Exporting {len(pages)} pages in {mode} mode")
    if mode == 'raster':
        return RasterFallbackExporter(options, rasterizer).export(pages, annotations, surfaces)
    return PDFReconstructor(options).reconstruct(pages, annotations)


__all__ = [
    'reconstruct',
    'EXPORT_MODES',
    'PDFReconstructor',
    'RasterFallbackExporter',
    'Rasterizer',
    'PillowRasterizer',
    'BlankRasterizer',
]
