"""Conversions between the editor's rich-text HTML and plain text."""

import html
import re

_BREAK_TAGS = re.compile(r'<\s*br\s*/?\s*>|</\s*(p|div|li|h[1-6])\s*>', re.IGNORECASE)
_TAG = re.compile(r'<[^>]+>')
_INLINE_SPACE = re.compile(r'[ \t\r\f\v]+')


def html_to_plain_text(markup: str) -> str:
    """
    Strip rich-text markup down to plain text.

    `<br>` and closing block tags become hard line breaks, entities are
    unescaped and runs of inline whitespace collapse to one space.
    """
    if not markup:
        return ''
    text = _BREAK_TAGS.sub('\n', markup)
    text = _TAG.sub('', text)
    text = html.unescape(text).replace('\xa0', ' ')
    lines = [_INLINE_SPACE.sub(' ', line).strip() for line in text.split('\n')]
    return '\n'.join(lines).strip('\n')


def lines_to_html(lines) -> str:
    """Escape plain-text lines and join them with newlines."""
    return '\n'.join(html.escape(line, quote=False) for line in lines)
