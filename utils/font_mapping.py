"""
Font and colour mapping utilities.

Maps PDF font resource names to CSS families, weights and styles for the
editable text model, and converts between PDF colour operands, CSS colour
strings and the normalized RGB triples used when writing content streams.
"""

import re
from functools import lru_cache
from typing import Optional, Sequence, Tuple

DEFAULT_FONT_FAMILY = "Helvetica, Arial, sans-serif"
DEFAULT_TEXT_COLOR = "#000000"

# Substring -> CSS family, checked in order
_FONT_FAMILY_MAP = (
    ('timesnewroman', 'Times New Roman, Times, serif'),
    ('times', 'Times New Roman, Times, serif'),
    ('arial', 'Arial, Helvetica, sans-serif'),
    ('helvetica', 'Helvetica, Arial, sans-serif'),
    ('liberationsans', 'Liberation Sans, Arial, Helvetica, sans-serif'),
    ('liberationserif', 'Liberation Serif, Times, serif'),
    ('liberationmono', 'Liberation Mono, Courier, monospace'),
    ('dejavusansmono', 'DejaVu Sans Mono, Courier, monospace'),
    ('dejavusans', 'DejaVu Sans, Arial, Helvetica, sans-serif'),
    ('dejavuserif', 'DejaVu Serif, Times, serif'),
    ('couriernew', 'Courier New, Courier, monospace'),
    ('courier', 'Courier New, Courier, monospace'),
    ('calibri', 'Calibri, sans-serif'),
    ('verdana', 'Verdana, sans-serif'),
    ('georgia', 'Georgia, serif'),
    ('tahoma', 'Tahoma, sans-serif'),
    ('trebuchet', 'Trebuchet MS, sans-serif'),
    ('symbol', 'Symbol, serif'),
    ('zapfdingbats', 'Zapf Dingbats, serif'),
)

_BOLD_MARKERS = ('bold', 'black', 'heavy', 'semibold', 'demibold', 'extrabold', 'ultrabold')
_ITALIC_MARKERS = ('italic', 'oblique', 'slant')

_HEX_COLOR = re.compile(r'^#([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$')
_RGB_COLOR = re.compile(r'rgba?\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})')


def strip_subset_prefix(font_name: str) -> str:
    """Remove an `ABCDEF+` subset tag and any leading slash."""
    name = (font_name or '').lstrip('/')
    if '+' in name:
        name = name.split('+', 1)[1]
    return name


@lru_cache(maxsize=256)
def map_pdf_font_to_css(font_name: str) -> str:
    """
    Map a PDF font name to a CSS font-family list.

    Weight and style suffixes are removed before matching so that
    `ABCDEF+Arial-BoldMT` and `Arial` land on the same family.
    """
    if not font_name:
        return DEFAULT_FONT_FAMILY

    base_name = strip_subset_prefix(font_name).split(',')[0].strip().strip('\'"')
    base_name = re.sub(r'-(Bold|Italic|BoldItalic|BoldOblique|Oblique|Regular|Roman|Normal|MT|PS)+$', '', base_name, flags=re.IGNORECASE)
    base_name = re.sub(r'(Bold|Italic|Oblique|Regular|MT|PS)+$', '', base_name)

    clean_name = base_name.lower().replace('-', '').replace('_', '').replace(' ', '')

    for pdf_font, css_font in _FONT_FAMILY_MAP:
        if pdf_font in clean_name:
            return css_font

    if clean_name in ('serif', 'sansserif', 'monospace'):
        return 'sans-serif' if clean_name == 'sansserif' else clean_name

    if base_name and len(base_name) > 1:
        return f'{base_name.replace("-", " ")}, sans-serif'

    return DEFAULT_FONT_FAMILY


@lru_cache(maxsize=256)
def get_font_weight_and_style(font_name: str) -> Tuple[int, bool]:
    """
    Derive CSS numeric weight and italic flag from a PDF font name.

    Returns:
        (weight, italic) where weight is 700 for bold faces and 400 otherwise
    """
    if not font_name:
        return 400, False

    lowered = strip_subset_prefix(font_name).lower()
    weight = 700 if any(marker in lowered for marker in _BOLD_MARKERS) else 400
    italic = any(marker in lowered for marker in _ITALIC_MARKERS)
    return weight, italic


def is_bold_weight(weight) -> bool:
    """CSS weights of 600 and above render with the bold face."""
    if isinstance(weight, str):
        if weight.lower() in ('bold', 'bolder'):
            return True
        try:
            weight = int(weight)
        except ValueError:
            return False
    return weight is not None and weight >= 600


def convert_color_to_hex(color_info) -> Optional[str]:
    """
    Convert a PDF non-stroking colour value to a `#rrggbb` string.

    Handles grayscale, RGB and CMYK component tuples (or a bare gray
    number). Pattern colours and unknown layouts return None.
    """
    if color_info is None:
        return None

    try:
        if isinstance(color_info, (int, float)):
            color_info = (color_info,)
        components = [float(c) for c in color_info]
    except (TypeError, ValueError):
        return None

    if len(components) == 1:
        rgb = (components[0],) * 3
    elif len(components) == 3:
        rgb = tuple(components)
    elif len(components) == 4:
        c, m, y, k = components
        rgb = ((1 - c) * (1 - k), (1 - m) * (1 - k), (1 - y) * (1 - k))
    else:
        return None

    return rgb_to_hex(rgb)


def rgb_to_hex(rgb: Sequence[float]) -> str:
    """Normalized (0..1) RGB triple to `#rrggbb`."""
    r, g, b = (max(0, min(255, int(round(float(v) * 255)))) for v in rgb)
    return f"#{r:02x}{g:02x}{b:02x}"


def parse_css_color(color: Optional[str]) -> Optional[Tuple[float, float, float]]:
    """
    Parse a CSS colour into a normalized RGB triple.

    Supports `#rgb`, `#rrggbb`, `rgb()` and `rgba()`. Returns None for
    `transparent`, empty values and anything unparseable.
    """
    if not color:
        return None
    value = color.strip()
    if value.lower() in ('transparent', 'none'):
        return None

    match = _HEX_COLOR.match(value)
    if match:
        digits = match.group(1)
        if len(digits) == 3:
            digits = ''.join(ch * 2 for ch in digits)
        return tuple(int(digits[i:i + 2], 16) / 255 for i in (0, 2, 4))

    match = _RGB_COLOR.match(value)
    if match:
        return tuple(min(int(match.group(i)), 255) / 255 for i in range(1, 4))

    if value.lower() == 'black':
        return 0.0, 0.0, 0.0
    if value.lower() == 'white':
        return 1.0, 1.0, 1.0
    return None
