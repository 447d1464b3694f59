"""
Input sanitization helpers shared by request schemas and e-mail rendering.
"""

import html
import re
from typing import Any, Optional

_SCRIPT_TAG = re.compile(r'<script[^>]*>.*?</script>', re.IGNORECASE | re.DOTALL)
_EVENT_HANDLER = re.compile(r'on\w+\s*=', re.IGNORECASE)
_CONTROL_CHARS = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]')


def strip_dangerous_tags(value: Any) -> Any:
    """Remove <script> blocks and inline event handlers from free text."""
    if not isinstance(value, str):
        return value
    value = _SCRIPT_TAG.sub('', value)
    value = _EVENT_HANDLER.sub('', value)
    return value


def sanitize_text(value: Any) -> Any:
    """Field validator body for names and other free text."""
    if not isinstance(value, str):
        return value
    value = strip_dangerous_tags(value)
    value = _CONTROL_CHARS.sub('', value)
    return value.strip()


def escape_html(value: Optional[Any]) -> str:
    """HTML-escape a value for template interpolation; None becomes ''."""
    if value is None:
        return ''
    return html.escape(str(value), quote=True)


def sanitize_header_value(value: str) -> str:
    """Strip CR/LF so a value cannot inject extra mail headers."""
    return re.sub(r'[\r\n]+', ' ', value or '').strip()
