"""
PDF Image Extraction Module

Walks a page's flattened operator list with a graphics state tracker and
turns every painted image (XObject or inline) into an `ImageBlock`. The
placed rectangle is the unit square under the CTM at paint time, mapped
through the page viewport.
"""

import hashlib
import io
import logging
from typing import List, Optional, Sequence, Tuple

import pikepdf
from pikepdf import PdfImage
from PIL import Image

from engine.config import ExtractionOptions, HydrationThresholds
from models.geometry import Rect
from models.hydration_types import ImageBlock
from processors.operator_list import ContentOp
from processors.pdf_graphics import GraphicsStateTracker
from utils.pdf_transforms import Viewport, calculate_image_bbox, decompose_ctm

logger = logging.getLogger(__name__)


# --- Module Constants ---

IMAGE_EXTRACTION_CONSTANTS = {
    'COORDINATE_PRECISION': 4,
    'ID_DIGEST_CHARS': 10,
}

JPEG_FILTERS = ('/DCTDecode', '/DCT')
# Filters whose output is still a compressed image rather than raw samples
ENCODED_IMAGE_FILTERS = JPEG_FILTERS + ('/JPXDecode', '/CCITTFaxDecode', '/CCF', '/JBIG2Decode')
COMPONENT_MODES = {1: 'L', 3: 'RGB', 4: 'CMYK'}


def generate_image_id(page_index: int, index: int, name: str, box: Sequence[float]) -> str:
    """Stable image ID built from the page, paint order and placement."""
    signature = f"{name}_{'_'.join(f'{v:.2f}' for v in box)}"
    digest = hashlib.sha256(signature.encode('utf-8')).hexdigest()
    return f"img-{page_index}-{index}-{digest[:IMAGE_EXTRACTION_CONSTANTS['ID_DIGEST_CHARS']]}"


def _filter_names(stream: pikepdf.Object) -> List[str]:
    filters = stream.get('/Filter')
    if filters is None:
        return []
    if isinstance(filters, pikepdf.Array):
        return [str(f) for f in filters]
    return [str(filters)]


def _components(color_space) -> Optional[int]:
    """Samples per pixel for the device colour spaces decoded without a palette."""
    if color_space is None:
        return None
    name = str(color_space)
    return {'/DeviceGray': 1, '/CalGray': 1, '/DeviceRGB': 3, '/CalRGB': 3, '/DeviceCMYK': 4}.get(name)


class ImageExtractor:
    """
    Extracts the images painted on one page.

    Every failure is local to one image: it is logged and the image is
    skipped (or kept without pixels), never escalated to the page.
    """

    def __init__(
        self,
        thresholds: Optional[HydrationThresholds] = None,
        options: Optional[ExtractionOptions] = None,
    ):
        self.thresholds = thresholds or HydrationThresholds()
        self.options = options or ExtractionOptions()
        self.skipped_count = 0

    def extract(self, ops: Sequence[ContentOp], viewport: Viewport, page_index: int = 0) -> List[ImageBlock]:
        tracker = GraphicsStateTracker()
        images: List[ImageBlock] = []
        paint_index = 0

        for op in ops:
            if tracker.update(op):
                continue
            if not op.is_image:
                continue
            if op.inline_image is not None and not self.options.include_inline_images:
                continue

            block = self._image_block(op, tracker.current_matrix(), viewport, page_index, paint_index)
            paint_index += 1
            if block is None:
                self.skipped_count += 1
                continue
            images.append(block)

        if images:
            logger.debug(f"Page {page_index + 1}: extracted {len(images)} images")
        return images

    def _image_block(
        self,
        op: ContentOp,
        ctm: Tuple[float, ...],
        viewport: Viewport,
        page_index: int,
        paint_index: int,
    ) -> Optional[ImageBlock]:
        name = str(op.operands[0]) if op.operands else 'inline'
        x, y, w, h = calculate_image_bbox(ctm, viewport)
        placed = Rect(x, y, w, h).intersection(Rect(0.0, 0.0, viewport.width, viewport.height))

        min_size = self.thresholds.min_image_size_px
        if not placed.is_finite() or placed.w < min_size or placed.h < min_size:
            logger.debug(f"Skipping image {name}: placed size {placed.w:.1f}x{placed.h:.1f}px")
            return None

        box = placed.to_percent(viewport.width, viewport.height).clamp_percent()
        precision = IMAGE_EXTRACTION_CONSTANTS['COORDINATE_PRECISION']
        box_tuple = tuple(round(v, precision) for v in box.as_box())

        blob, mime_type = None, 'image/png'
        if self.options.decode_image_data:
            try:
                if op.xobject is not None:
                    blob, mime_type = self._encode_xobject(op.xobject)
                else:
                    blob, mime_type = self._encode_inline(op.inline_image)
            except Exception as e:
                # Any decoder failure, including pikepdf's UnsupportedImageTypeError, skips this image only
                logger.warning(f"Page {page_index + 1}: skipping undecodable image {name}: {e}")
                return None

        return ImageBlock(
            id=generate_image_id(page_index, paint_index, name, box_tuple),
            box=box_tuple,
            blob=blob,
            mimeType=mime_type,
            rotation=round(decompose_ctm(ctm).rotation, 2),
        )

    # --- Pixel decoding ---

    def _too_large(self, width: int, height: int) -> bool:
        return width * height > self.options.max_image_pixels

    def _encode_xobject(self, stream: pikepdf.Object) -> Tuple[Optional[bytes], str]:
        width = int(stream.get('/Width', 0))
        height = int(stream.get('/Height', 0))
        if width <= 0 or height <= 0:
            raise ValueError(f"invalid image dimensions {width}x{height}")
        if self._too_large(width, height):
            logger.warning(f"Image of {width}x{height} pixels exceeds the decode limit; keeping placement only")
            return None, 'image/png'

        filters = _filter_names(stream)
        smask = stream.get('/SMask')
        if filters and filters[-1] in JPEG_FILTERS and len(filters) == 1 and smask is None:
            return bytes(stream.read_raw_bytes()), 'image/jpeg'

        image = self._decode_pixels(stream, width, height)
        if smask is not None:
            image = self._apply_soft_mask(image, smask)
        return self._to_png(image), 'image/png'

    def _encode_inline(self, inline_image) -> Tuple[Optional[bytes], str]:
        if inline_image is None:
            raise ValueError("inline image payload missing")
        image = inline_image.as_pil_image()
        if self._too_large(image.width, image.height):
            return None, 'image/png'
        return self._to_png(image), 'image/png'

    def _decode_pixels(self, stream: pikepdf.Object, width: int, height: int) -> Image.Image:
        """
        Decode an image stream to a Pillow image.

        Plain 8-bit device colour images are read straight from the decoded
        stream; everything else (palettes, ICC, packed bits) goes through
        pikepdf's image helper.
        """
        components = _components(stream.get('/ColorSpace'))
        bits = int(stream.get('/BitsPerComponent', 8))
        is_mask = bool(stream.get('/ImageMask', False))

        encoded = any(f in ENCODED_IMAGE_FILTERS for f in _filter_names(stream))

        if components and bits == 8 and not is_mask and not encoded:
            data = stream.read_bytes()
            expected = width * height * components
            if len(data) < expected:
                logger.debug(f"Image stream short by {expected - len(data)} bytes; padding with zeros")
                data = data + b'\x00' * (expected - len(data))
            mode = COMPONENT_MODES[components]
            image = Image.frombytes(mode, (width, height), bytes(data[:expected]))
            return image.convert('RGB') if mode == 'CMYK' else image

        return PdfImage(stream).as_pil_image()

    def _apply_soft_mask(self, image: Image.Image, smask: pikepdf.Object) -> Image.Image:
        try:
            alpha = self._decode_pixels(smask, int(smask.get('/Width', 0)), int(smask.get('/Height', 0))).convert('L')
        except Exception as e:
            logger.debug(f"Ignoring undecodable soft mask: {e}")
            return image
        if alpha.size != image.size:
            alpha = alpha.resize(image.size, Image.Resampling.LANCZOS)
        rgba = image.convert('RGBA')
        rgba.putalpha(alpha)
        return rgba

    @staticmethod
    def _to_png(image: Image.Image) -> bytes:
        if image.mode not in ('1', 'L', 'LA', 'P', 'RGB', 'RGBA'):
            image = image.convert('RGB')
        buffer = io.BytesIO()
        image.save(buffer, format='PNG', optimize=True)
        return buffer.getvalue()
