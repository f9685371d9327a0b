from cssshaker.config import DEFAULT_STYLES_LIMIT, ShakerConfig
from cssshaker.css import parse_stylesheet
from cssshaker.errors import InvalidInputError, MalformedStyleError, SelectorError, ShakerError
from cssshaker.html import parse_html
from cssshaker.selector import matches
from cssshaker.shaker import CssTreeShaker, Shaker, ShakeStats, StyleSlot, normalize_selector, shake

__version__ = "0.1.0"

__all__ = [
    "CssTreeShaker",
    "DEFAULT_STYLES_LIMIT",
    "InvalidInputError",
    "MalformedStyleError",
    "SelectorError",
    "ShakeStats",
    "Shaker",
    "ShakerConfig",
    "ShakerError",
    "StyleSlot",
    "matches",
    "normalize_selector",
    "parse_html",
    "parse_stylesheet",
    "shake",
]
