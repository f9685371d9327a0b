"""Remove CSS rules that no element of the document can match.

Usually used to build AMP pages, which put a hard limit on the size of the
custom stylesheet::

    shaker = CssTreeShaker(html)
    if shaker.should_shake():
        html = shaker.shake_it()
"""

from __future__ import annotations
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Union, runtime_checkable

from cssshaker.config import BOILERPLATE_ATTRIBUTE, DEFAULT_STYLES_LIMIT, ShakerConfig
from cssshaker.css import AtBlockList, BlockList, DeclarationBlock, parse_stylesheet
from cssshaker.dom import Document, ElementNode
from cssshaker.errors import MalformedStyleError, SelectorError
from cssshaker.html import parse_html
from cssshaker.selector import matches

logger = logging.getLogger(__name__)

IDENT_CHARS = r"-_a-zA-Z0-9\\\u00a0-\U0010ffff"

# ".card.card" -> ".card", but ".card.cardx" stays as it is
DUPLICATE_CLASS_RE = re.compile(rf"(\.[{IDENT_CHARS}]+)\1+(?![{IDENT_CHARS}])")


@runtime_checkable
class Shaker(Protocol):
    def should_shake(self) -> bool:
        """Check whether the current styles should be shaken."""
        ...

    def shake_it(self, force: bool = False) -> str:
        """Shake the styles and return the HTML with the updated styles.

        With ``force`` the styles are shaken anyway, otherwise only when the
        limit is exceeded.
        """
        ...

    def extract_styles(self) -> List["StyleSlot"]:
        """Collect the custom styles of the document."""
        ...


@dataclass(eq=False)
class StyleSlot:
    element: ElementNode

    @property
    def text(self) -> str:
        return self.element.text

    @text.setter
    def text(self, value: str) -> None:
        self.element.text = value

    @property
    def size(self) -> int:
        return len(self.text.encode("utf-8"))


@dataclass
class ShakeStats:
    slots_shaken: int = 0
    slots_skipped: int = 0
    selectors_removed: int = 0
    blocks_removed: int = 0
    queries: int = 0
    bytes_before: int = 0
    bytes_after: int = 0


def normalize_selector(selector: str) -> str:
    """Reduce a selector to the part that can be checked against the DOM.

    Pseudo classes and elements are cut off, so ``a:hover`` is checked as
    ``a``. Repeated classes are collapsed.
    """
    raw = selector.split(":", 1)[0]
    return DUPLICATE_CLASS_RE.sub(r"\1", raw)


class SelectorCache:
    """Verdicts for normalized selectors, one DOM query per distinct selector."""

    def __init__(self, document: Document, stats: Optional[ShakeStats] = None) -> None:
        self.document = document
        self.stats = stats if stats is not None else ShakeStats()
        self._verdicts: Dict[str, bool] = {}

    def __len__(self) -> int:
        return len(self._verdicts)

    def __contains__(self, selector: str) -> bool:
        return normalize_selector(selector) in self._verdicts

    def is_alive(self, selector: str) -> bool:
        key = normalize_selector(selector)
        verdict = self._verdicts.get(key)
        if verdict is None:
            verdict = self._query(key)
            self._verdicts[key] = verdict
        return verdict

    def _query(self, key: str) -> bool:
        self.stats.queries += 1
        try:
            found = matches(self.document, key)
        except SelectorError as exc:
            # can't prove it dead, keep it
            logger.debug("Keeping unsupported selector %r: %s", key, exc)
            return True
        logger.debug("Selector %r %s", key, "matches" if found else "is dead")
        return found


class Pruner:
    def __init__(self, cache: SelectorCache) -> None:
        self.cache = cache
        self.stats = cache.stats

    def prune(self, block_list: BlockList) -> None:
        for child in list(block_list.children):
            if isinstance(child, BlockList):
                self.prune(child)
                if not child.children and not (isinstance(child, AtBlockList) and child.orders_layers):
                    block_list.remove(child)
                    self.stats.blocks_removed += 1
            elif isinstance(child, DeclarationBlock):
                self._prune_declaration_block(child, block_list)
            # other at-rules (@font-face, @keyframes, ...) are kept

    def _prune_declaration_block(self, block: DeclarationBlock, parent: BlockList) -> None:
        if not block.declarations:
            parent.remove(block)
            self.stats.blocks_removed += 1
            return

        for selector in list(block.selectors):
            # found a dead css, remove the selector
            if not self.cache.is_alive(selector):
                block.remove_selector(selector)
                self.stats.selectors_removed += 1

        if not block.selectors:
            parent.remove(block)
            self.stats.blocks_removed += 1


class CssTreeShaker:
    """Eliminate the portions of the inline CSS a document does not use."""

    def __init__(
        self,
        html: Union[str, bytes],
        styles_limit: int = DEFAULT_STYLES_LIMIT,
        *,
        strict: bool = False,
        boilerplate_attribute: str = BOILERPLATE_ATTRIBUTE,
    ) -> None:
        self.document = parse_html(html)
        self.styles_limit = styles_limit
        self.strict = strict
        self.boilerplate_attribute = boilerplate_attribute
        self.stats = ShakeStats()
        self._styles: Optional[List[StyleSlot]] = None

    @classmethod
    def from_config(cls, html: Union[str, bytes], config: ShakerConfig) -> "CssTreeShaker":
        return cls(
            html,
            config.styles_limit,
            strict=config.strict,
            boilerplate_attribute=config.boilerplate_attribute,
        )

    @property
    def styles(self) -> List[StyleSlot]:
        return self.extract_styles()

    @property
    def styles_size(self) -> int:
        return sum(slot.size for slot in self.extract_styles())

    def extract_styles(self) -> List[StyleSlot]:
        if self._styles is None:
            slots: List[StyleSlot] = []
            for el in self.document.find_all("style"):
                if el.has_attribute(self.boilerplate_attribute):
                    logger.debug("Skipping <style %s>", self.boilerplate_attribute)
                    continue
                if not el.text:
                    continue
                slots.append(StyleSlot(el))
            self._styles = slots
        return self._styles

    def should_shake(self) -> bool:
        return self.styles_size >= self.styles_limit

    def shake_it(self, force: bool = False) -> str:
        styles = self.extract_styles()

        # No styles found, return the initial HTML.
        if not styles:
            logger.debug("No styles to shake")
            return self.document.serialize(add_doctype=False)

        # Styles fit into the limit, shaking is not needed.
        if not (force or self.should_shake()):
            logger.debug("Styles fit into %d bytes, not shaking", self.styles_limit)
            return self.document.serialize(add_doctype=False)

        self.stats = stats = ShakeStats()
        pruner = Pruner(SelectorCache(self.document, stats))
        for slot in styles:
            size = slot.size
            stats.bytes_before += size
            try:
                sheet = parse_stylesheet(slot.text)
            except MalformedStyleError as exc:
                if self.strict:
                    raise
                logger.warning("Leaving malformed style untouched: %s", exc)
                stats.slots_skipped += 1
                stats.bytes_after += size
                continue

            pruner.prune(sheet)
            slot.text = sheet.render()
            stats.slots_shaken += 1
            stats.bytes_after += slot.size

        logger.info(
            "Shook %d style(s): removed %d selector(s), %d -> %d bytes",
            stats.slots_shaken,
            stats.selectors_removed,
            stats.bytes_before,
            stats.bytes_after,
        )
        return self.export_html()

    def export_html(self) -> str:
        return self.document.serialize()


def shake(
    html: Union[str, bytes],
    styles_limit: int = DEFAULT_STYLES_LIMIT,
    force: bool = False,
    strict: bool = False,
) -> str:
    return CssTreeShaker(html, styles_limit, strict=strict).shake_it(force=force)
