"""
Glyph-width metrics for the standard Helvetica family.

Widths come from the AFM tables bundled with pdfminer.six, so measuring on
export and re-extraction after export agree on the same numbers.
"""

import logging
from functools import lru_cache
from typing import Dict, List

from pdfminer.fontmetrics import FONT_METRICS

logger = logging.getLogger(__name__)

PDF_TEXT_ENCODING = 'cp1252'
REPLACEMENT_CHAR = '?'
WIDTH_EPSILON = 0.5

HELVETICA_VARIANTS = {
    (False, False): 'Helvetica',
    (True, False): 'Helvetica-Bold',
    (False, True): 'Helvetica-Oblique',
    (True, True): 'Helvetica-BoldOblique',
}


def select_font_variant(bold: bool, italic: bool) -> str:
    """Pick the base-14 Helvetica face for a weight/italic combination."""
    return HELVETICA_VARIANTS[(bool(bold), bool(italic))]


@lru_cache(maxsize=8)
def _glyph_widths(font_name: str) -> Dict[str, float]:
    try:
        _descriptor, widths = FONT_METRICS[font_name]
    except KeyError:
        logger.warning(f"No bundled metrics for {font_name}, falling back to Helvetica")
        _descriptor, widths = FONT_METRICS['Helvetica']
    return widths


def to_pdf_text(text: str) -> str:
    """Replace characters the WinAnsi encoding cannot carry."""
    return text.encode(PDF_TEXT_ENCODING, errors='replace').decode(PDF_TEXT_ENCODING)


def char_width(char: str, font_name: str) -> float:
    """Advance width of one character in 1/1000 text-space units."""
    widths = _glyph_widths(font_name)
    width = widths.get(char)
    if width is None:
        width = widths.get(REPLACEMENT_CHAR, 556)
    return float(width)


def measure_text(text: str, font_name: str, font_size: float, letter_spacing: float = 0.0) -> float:
    """Rendered width of `text` in points."""
    if not text:
        return 0.0
    encoded = to_pdf_text(text)
    total = sum(char_width(ch, font_name) for ch in encoded)
    return total * font_size / 1000.0 + letter_spacing * len(encoded)


def wrap_text(
    text: str,
    font_name: str,
    font_size: float,
    max_width: float,
    letter_spacing: float = 0.0,
) -> List[str]:
    """
    Greedy word wrap using real glyph widths.

    Newlines are hard breaks and blank lines are preserved. A single word
    wider than `max_width` is kept on its own line rather than split.
    """
    lines: List[str] = []
    limit = max_width + WIDTH_EPSILON

    for paragraph in text.split('\n'):
        words = paragraph.split()
        if not words:
            lines.append('')
            continue

        current = words[0]
        for word in words[1:]:
            candidate = f"{current} {word}"
            if measure_text(candidate, font_name, font_size, letter_spacing) <= limit:
                current = candidate
            else:
                lines.append(current)
                current = word
        lines.append(current)

    return lines
