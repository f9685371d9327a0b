from __future__ import annotations
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional, Tuple

from cssshaker.dom import ElementNode, ParentNode
from cssshaker.errors import SelectorError

_NAME_CHAR = r"(?:[-_a-zA-Z0-9\u00a0-\U0010ffff]|\\[0-9a-fA-F]{1,6}\s?|\\[^\n\r\f0-9a-fA-F])"
IDENT_RE = re.compile(rf"{_NAME_CHAR}+")
ESCAPE_RE = re.compile(r"\\([0-9a-fA-F]{1,6})\s?|\\(.)")
STRING_RE = re.compile(r""""((?:[^"\\\n]|\\.)*)"|'((?:[^'\\\n]|\\.)*)'""")
ATTR_OP_RE = re.compile(r"[~|^$*]?=")
COMBINATORS = ">+~"


def _unescape(s: str) -> str:
    def repl(m: re.Match) -> str:
        if m.group(1):
            code = int(m.group(1), 16)
            return chr(code) if 0 < code <= 0x10FFFF else "\ufffd"
        return m.group(2)
    return ESCAPE_RE.sub(repl, s)


@dataclass(frozen=True)
class AttributeTest:
    name: str
    op: Optional[str] = None
    value: str = ""
    ignore_case: bool = False

    def matches(self, el: ElementNode) -> bool:
        actual = el.attributes.get(self.name)
        if actual is None:
            return False
        if self.op is None:
            return True
        expected = self.value
        if self.ignore_case:
            actual, expected = actual.lower(), expected.lower()
        if self.op == "=":
            return actual == expected
        if self.op == "~=":
            return bool(expected) and expected in actual.split()
        if self.op == "|=":
            return actual == expected or actual.startswith(expected + "-")
        if self.op == "^=":
            return bool(expected) and actual.startswith(expected)
        if self.op == "$=":
            return bool(expected) and actual.endswith(expected)
        if self.op == "*=":
            return bool(expected) and expected in actual
        return False


@dataclass(frozen=True)
class Compound:
    tag: Optional[str] = None
    ids: Tuple[str, ...] = ()
    classes: Tuple[str, ...] = ()
    attributes: Tuple[AttributeTest, ...] = ()

    def matches(self, el: ElementNode) -> bool:
        if self.tag and self.tag != "*" and el.tag != self.tag:
            return False
        if self.ids:
            el_id = el.attributes.get("id")
            if any(i != el_id for i in self.ids):
                return False
        if self.classes:
            have = set((el.attributes.get("class") or "").split())
            if not have.issuperset(self.classes):
                return False
        return all(a.matches(el) for a in self.attributes)


@dataclass(frozen=True)
class Selector:
    # combinators[i] sits between compounds[i] and compounds[i + 1]
    compounds: Tuple[Compound, ...]
    combinators: Tuple[str, ...] = ()

    def matches(self, el: ElementNode) -> bool:
        return self._matches_at(el, len(self.compounds) - 1)

    def _matches_at(self, el: ElementNode, idx: int) -> bool:
        if not self.compounds[idx].matches(el):
            return False
        if idx == 0:
            return True

        comb = self.combinators[idx - 1]
        if comb == ">":
            p = _parent_element(el)
            return p is not None and self._matches_at(p, idx - 1)
        if comb == " ":
            p = _parent_element(el)
            while p is not None:
                if self._matches_at(p, idx - 1):
                    return True
                p = _parent_element(p)
            return False
        siblings = _previous_siblings(el)
        if comb == "+":
            return bool(siblings) and self._matches_at(siblings[-1], idx - 1)
        return any(self._matches_at(s, idx - 1) for s in siblings)


def _parent_element(el: ElementNode) -> Optional[ElementNode]:
    p = el.parent
    return p if isinstance(p, ElementNode) else None


def _previous_siblings(el: ElementNode) -> List[ElementNode]:
    parent = el.parent
    if parent is None:
        return []
    out: List[ElementNode] = []
    for c in parent.children:
        if c is el:
            return out
        if isinstance(c, ElementNode):
            out.append(c)
    return []


class SelectorParser:
    """Parse a selector list into ``Selector`` objects.

    Supports type, universal, id, class and attribute selectors joined by the
    descendant, child and sibling combinators. Anything else raises
    ``SelectorError``.
    """

    def __init__(self, source: str) -> None:
        self.source = source or ""
        self.pos = 0

    def parse(self) -> Tuple[Selector, ...]:
        s = self.source
        self.pos = 0
        out: List[Selector] = []
        while True:
            self._skip_ws()
            out.append(self._complex())
            if self.pos >= len(s):
                break
            # _complex only stops at a comma or the end
            self.pos += 1
        return tuple(out)

    def _complex(self) -> Selector:
        s = self.source
        compounds = [self._compound()]
        combinators: List[str] = []
        while True:
            had_ws = self._skip_ws()
            if self.pos >= len(s) or s[self.pos] == ",":
                break
            c = s[self.pos]
            if c in COMBINATORS:
                self.pos += 1
                self._skip_ws()
                comb = c
            elif had_ws:
                comb = " "
            else:
                raise SelectorError(f"Unsupported selector syntax at {c!r}", s)
            combinators.append(comb)
            compounds.append(self._compound())
        return Selector(compounds=tuple(compounds), combinators=tuple(combinators))

    def _compound(self) -> Compound:
        s = self.source
        tag: Optional[str] = None
        ids: List[str] = []
        classes: List[str] = []
        attrs: List[AttributeTest] = []

        if self.pos < len(s) and s[self.pos] == "*":
            tag = "*"
            self.pos += 1
        else:
            m = IDENT_RE.match(s, self.pos)
            if m:
                tag = _unescape(m.group(0)).lower()
                self.pos = m.end()
        if self.pos < len(s) and s[self.pos] == "|":
            raise SelectorError("Namespaced selectors are not supported", s)

        while self.pos < len(s):
            c = s[self.pos]
            if c == "#":
                self.pos += 1
                ids.append(self._ident())
            elif c == ".":
                self.pos += 1
                classes.append(self._ident())
            elif c == "[":
                self.pos += 1
                attrs.append(self._attribute())
            else:
                break

        if tag is None and not (ids or classes or attrs):
            where = repr(s[self.pos]) if self.pos < len(s) else "end of selector"
            raise SelectorError(f"Expected a selector at {where}", s)
        return Compound(tag=tag, ids=tuple(ids), classes=tuple(classes), attributes=tuple(attrs))

    def _attribute(self) -> AttributeTest:
        s = self.source
        self._skip_ws()
        name = self._ident().lower()
        self._skip_ws()
        m = ATTR_OP_RE.match(s, self.pos)
        if not m:
            self._expect("]")
            return AttributeTest(name=name)

        op = m.group(0)
        self.pos = m.end()
        self._skip_ws()
        sm = STRING_RE.match(s, self.pos)
        if sm:
            raw = sm.group(1) if sm.group(1) is not None else sm.group(2)
            value = _unescape(raw)
            self.pos = sm.end()
        else:
            value = self._ident()
        self._skip_ws()

        ignore_case = False
        if self.pos < len(s) and s[self.pos] in "iIsS":
            ignore_case = s[self.pos] in "iI"
            self.pos += 1
            self._skip_ws()
        self._expect("]")
        return AttributeTest(name=name, op=op, value=value, ignore_case=ignore_case)

    def _ident(self) -> str:
        m = IDENT_RE.match(self.source, self.pos)
        if not m:
            raise SelectorError(f"Expected an identifier at position {self.pos}", self.source)
        self.pos = m.end()
        return _unescape(m.group(0))

    def _expect(self, ch: str) -> None:
        if self.pos >= len(self.source) or self.source[self.pos] != ch:
            raise SelectorError(f"Expected {ch!r} at position {self.pos}", self.source)
        self.pos += 1

    def _skip_ws(self) -> bool:
        start = self.pos
        while self.pos < len(self.source) and self.source[self.pos].isspace():
            self.pos += 1
        return self.pos > start


@lru_cache(maxsize=1024)
def compile_selector(text: str) -> Tuple[Selector, ...]:
    if not text or not text.strip():
        raise SelectorError("Empty selector", text or "")
    return SelectorParser(text.strip()).parse()


def select(root: ParentNode, selector: str) -> List[ElementNode]:
    compiled = compile_selector(selector)
    return [el for el in root.iter_elements() if any(sel.matches(el) for sel in compiled)]


def select_first(root: ParentNode, selector: str) -> Optional[ElementNode]:
    compiled = compile_selector(selector)
    for el in root.iter_elements():
        if any(sel.matches(el) for sel in compiled):
            return el
    return None


def matches(root: ParentNode, selector: str) -> bool:
    """True if at least one element under ``root`` matches ``selector``."""
    return select_first(root, selector) is not None
