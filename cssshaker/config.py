from __future__ import annotations
from dataclasses import dataclass

DEFAULT_STYLES_LIMIT = 50000  # AMP allows 50kb of custom CSS
BOILERPLATE_ATTRIBUTE = "amp-boilerplate"


@dataclass(frozen=True)
class ShakerConfig:
    styles_limit: int = DEFAULT_STYLES_LIMIT
    force: bool = False
    strict: bool = False  # raise on malformed CSS instead of skipping the slot
    boilerplate_attribute: str = BOILERPLATE_ATTRIBUTE
