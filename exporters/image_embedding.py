"""Embedding encoded raster payloads as PDF image XObjects."""

import base64
import binascii
import io
import zlib
from typing import Optional, Tuple

import pikepdf
from PIL import Image, UnidentifiedImageError
from pikepdf import Name

JPEG_MIME_TYPES = ('image/jpeg', 'image/jpg', 'image/pjpeg')

# Pillow modes whose bytes DCTDecode can carry unchanged
JPEG_COLOR_SPACES = {
    'L': Name.DeviceGray,
    'RGB': Name.DeviceRGB,
}

IMAGE_DECODE_ERRORS = (UnidentifiedImageError, OSError, ValueError, SyntaxError)


def decode_data_url(src: str) -> Tuple[Optional[bytes], Optional[str]]:
    """
    Split a `data:` URL into its bytes and MIME type.

    Returns (None, None) for anything that is not a base64 data URL; remote
    URLs are never fetched.
    """
    if not src or not src.startswith('data:') or ',' not in src:
        return None, None
    header, payload = src[5:].split(',', 1)
    mime_type = header.split(';', 1)[0] or 'application/octet-stream'
    if ';base64' not in header:
        return None, None
    try:
        return base64.b64decode(payload, validate=True), mime_type
    except (binascii.Error, ValueError):
        return None, None


def _flate_stream(pdf: pikepdf.Pdf, data: bytes, width: int, height: int, color_space: Name, bits: int = 8):
    stream = pikepdf.Stream(pdf, zlib.compress(data))
    stream.Type = Name.XObject
    stream.Subtype = Name.Image
    stream.Width = width
    stream.Height = height
    stream.ColorSpace = color_space
    stream.BitsPerComponent = bits
    stream.Filter = Name.FlateDecode
    return stream


def embed_pil_image(pdf: pikepdf.Pdf, image: Image.Image) -> pikepdf.Stream:
    """
    Embed a Pillow image as a Flate-compressed RGB (or gray) XObject.

    Transparency becomes a separate /SMask so the image composes over the
    page content below it.
    """
    alpha = None
    if image.mode in ('RGBA', 'LA') or (image.mode == 'P' and 'transparency' in image.info):
        rgba = image.convert('RGBA')
        alpha = rgba.getchannel('A')
        image = rgba.convert('RGB')
    elif image.mode == 'L':
        pass
    elif image.mode != 'RGB':
        image = image.convert('RGB')

    color_space = Name.DeviceGray if image.mode == 'L' else Name.DeviceRGB
    stream = _flate_stream(pdf, image.tobytes(), image.width, image.height, color_space)

    if alpha is not None and alpha.getextrema() != (255, 255):
        stream.SMask = _flate_stream(pdf, alpha.tobytes(), alpha.width, alpha.height, Name.DeviceGray)
    return stream


def embed_image_bytes(pdf: pikepdf.Pdf, data: bytes, mime_type: Optional[str]) -> pikepdf.Stream:
    """
    Embed an encoded image, picking the codec from its MIME type.

    JPEG bytes pass through under DCTDecode; everything else is decoded
    with Pillow and re-encoded with Flate.

    Raises:
        ValueError: If the payload cannot be decoded as an image
    """
    if not data:
        raise ValueError("empty image payload")

    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except IMAGE_DECODE_ERRORS as e:
        raise ValueError(f"undecodable image payload ({mime_type}): {e}")

    if (mime_type or '').lower() in JPEG_MIME_TYPES and image.format == 'JPEG' and image.mode in JPEG_COLOR_SPACES:
        stream = pikepdf.Stream(pdf, data)
        stream.Type = Name.XObject
        stream.Subtype = Name.Image
        stream.Width = image.width
        stream.Height = image.height
        stream.ColorSpace = JPEG_COLOR_SPACES[image.mode]
        stream.BitsPerComponent = 8
        stream.Filter = Name.DCTDecode
        return stream

    return embed_pil_image(pdf, image)

