"""CSS rule tree, parser and compact renderer.

The tree only distinguishes what shaking needs:

    Stylesheet / AtBlockList   block-lists, their children get pruned
    DeclarationBlock           selectors + declarations
    AtRule                     anything else, carried through as is
"""

from __future__ import annotations
import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple, Union

from cssshaker.errors import MalformedStyleError

# at-rules whose block holds ordinary rules
BLOCK_AT_RULES = {
    "media", "supports", "document", "-moz-document", "container",
    "layer", "scope", "starting-style",
}

AT_KEYWORD_RE = re.compile(r"@(-?[_a-zA-Z][-_a-zA-Z0-9]*)")
IMPORTANT_RE = re.compile(r"\s*!\s*important\s*$", re.IGNORECASE)
BLOCK_PUNCT_RE = re.compile(r"\s*([{};:])\s*")


@dataclass(eq=False)
class Declaration:
    name: str
    value: str
    important: bool = False

    def render(self) -> str:
        return f"{self.name}:{self.value}{'!important' if self.important else ''}"


@dataclass(eq=False)
class DeclarationBlock:
    selectors: List[str] = field(default_factory=list)
    declarations: List[Declaration] = field(default_factory=list)

    def remove_selector(self, selector: str) -> bool:
        try:
            self.selectors.remove(selector)
        except ValueError:
            return False
        return True

    def render(self) -> str:
        body = ";".join(d.render() for d in self.declarations)
        return f"{','.join(self.selectors)}{{{body}}}"


@dataclass(eq=False)
class AtRule:
    name: str
    prelude: str = ""
    body: Optional[str] = None  # None for statements like @import

    def render(self) -> str:
        head = f"@{self.name} {self.prelude}" if self.prelude else f"@{self.name}"
        if self.body is None:
            return head + ";"
        return f"{head}{{{self.body}}}"


@dataclass(eq=False)
class BlockList:
    children: List["CSSNode"] = field(default_factory=list)

    def append(self, node: "CSSNode") -> None:
        self.children.append(node)

    def remove(self, node: "CSSNode") -> bool:
        # nodes compare by identity
        try:
            self.children.remove(node)
        except ValueError:
            return False
        return True

    def render(self) -> str:
        return "".join(c.render() for c in self.children)


@dataclass(eq=False)
class Stylesheet(BlockList):
    pass


@dataclass(eq=False)
class AtBlockList(BlockList):
    name: str = ""
    prelude: str = ""

    @property
    def orders_layers(self) -> bool:
        # "@layer base {}" still fixes where "base" sits in the cascade
        return self.name.lower() == "layer" and bool(self.prelude)

    def render(self) -> str:
        head = f"@{self.name} {self.prelude}" if self.prelude else f"@{self.name}"
        return f"{head}{{{super().render()}}}"


CSSNode = Union[BlockList, DeclarationBlock, AtRule]


class CSSParser:
    def __init__(self, source: str) -> None:
        self.source = source or ""
        self.text = ""
        self.pos = 0

    def parse(self) -> Stylesheet:
        self.text = self._strip_comments(self.source)
        self.pos = 0
        sheet = Stylesheet()
        self._parse_rule_list(sheet, nested=False)
        return sheet

    def _parse_rule_list(self, into: BlockList, nested: bool) -> None:
        s = self.text
        while True:
            self._skip_ws()
            if self.pos >= len(s):
                if nested:
                    raise MalformedStyleError("Unclosed block at end of stylesheet", self.pos)
                return

            # legacy HTML comment markers around style contents
            if s.startswith("<!--", self.pos):
                self.pos += 4
                continue
            if s.startswith("-->", self.pos):
                self.pos += 3
                continue

            ch = s[self.pos]
            if ch == "}":
                if nested:
                    self.pos += 1
                    return
                raise MalformedStyleError("Unexpected '}'", self.pos)
            if ch == ";":
                self.pos += 1
                continue
            if ch == "@":
                into.append(self._parse_at_rule())
            else:
                into.append(self._parse_qualified_rule())

    def _parse_qualified_rule(self) -> DeclarationBlock:
        start = self.pos
        prelude, terminator = self._read_prelude()
        if terminator != "{":
            raise MalformedStyleError(f"Expected '{{' after {prelude.strip()!r}", start)
        body_start = self.pos + 1
        body = self._read_block()
        return DeclarationBlock(
            selectors=split_selectors(prelude, start),
            declarations=parse_declarations(body, body_start),
        )

    def _parse_at_rule(self) -> CSSNode:
        start = self.pos
        m = AT_KEYWORD_RE.match(self.text, self.pos)
        if not m:
            raise MalformedStyleError("Invalid at-rule", start)
        name = m.group(1)
        self.pos = m.end()

        prelude, terminator = self._read_prelude()
        prelude = collapse_whitespace(prelude)
        if terminator == "{":
            if name.lower() in BLOCK_AT_RULES:
                self.pos += 1
                block = AtBlockList(name=name, prelude=prelude)
                self._parse_rule_list(block, nested=True)
                return block
            return AtRule(name=name, prelude=prelude, body=_compact_block(self._read_block()))
        if terminator == ";":
            self.pos += 1
        # a "}" or the end of input also ends the statement
        return AtRule(name=name, prelude=prelude)

    def _read_prelude(self) -> Tuple[str, str]:
        s = self.text
        start = self.pos
        depth = 0
        while self.pos < len(s):
            c = s[self.pos]
            if c in "\"'":
                self.pos = _skip_string(s, self.pos)
                continue
            if c == "\\":
                self.pos += 2
                continue
            if c in "([":
                depth += 1
            elif c in ")]":
                depth = max(0, depth - 1)
            elif depth == 0 and c in "{;}":
                return s[start:self.pos], c
            self.pos += 1
        self.pos = len(s)
        return s[start:], ""

    def _read_block(self) -> str:
        s = self.text
        start = self.pos
        self.pos += 1  # "{"
        body_start = self.pos
        depth = 1
        while self.pos < len(s):
            c = s[self.pos]
            if c in "\"'":
                self.pos = _skip_string(s, self.pos)
                continue
            if c == "\\":
                self.pos += 2
                continue
            if c == "{":
                depth += 1
            elif c == "}":
                depth -= 1
                if depth == 0:
                    body = s[body_start:self.pos]
                    self.pos += 1
                    return body
            self.pos += 1
        raise MalformedStyleError("Unclosed block", start)

    def _skip_ws(self) -> None:
        s = self.text
        while self.pos < len(s) and s[self.pos].isspace():
            self.pos += 1

    def _strip_comments(self, s: str) -> str:
        out = []
        i = 0
        start = 0
        while i < len(s):
            c = s[i]
            if c in "\"'":
                i = _skip_string(s, i)
            elif c == "\\":
                i += 2
            elif c == "/" and s.startswith("/*", i):
                j = s.find("*/", i + 2)
                if j == -1:
                    raise MalformedStyleError("Unterminated comment", i)
                out.append(s[start:i])
                i = start = j + 2
            else:
                i += 1
        out.append(s[start:])
        return "".join(out)


def _skip_string(s: str, i: int) -> int:
    """Return the index just past the string literal starting at ``s[i]``."""
    quote = s[i]
    j = i + 1
    while j < len(s):
        c = s[j]
        if c == "\\":
            j += 2
            continue
        if c == quote:
            return j + 1
        if c == "\n":
            break
        j += 1
    raise MalformedStyleError("Unterminated string", i)


def _map_outside_strings(text: str, fn: Callable[[str], str]) -> str:
    out: List[str] = []
    i = 0
    start = 0
    while i < len(text):
        c = text[i]
        if c == "\\":
            i += 2
        elif c in "\"'":
            out.append(fn(text[start:i]))
            end = _skip_string(text, i)
            out.append(text[i:end])
            i = start = end
        else:
            i += 1
    out.append(fn(text[start:]))
    return "".join(out)


def collapse_whitespace(text: str) -> str:
    return _map_outside_strings(text, lambda seg: re.sub(r"\s+", " ", seg)).strip()


def _compact_block(body: str) -> str:
    collapsed = collapse_whitespace(body)
    return _map_outside_strings(collapsed, lambda seg: BLOCK_PUNCT_RE.sub(r"\1", seg))


def _split_top_level(text: str, sep: str, offset: int = 0) -> List[str]:
    parts: List[str] = []
    depth = 0
    start = 0
    i = 0
    while i < len(text):
        c = text[i]
        if c in "\"'":
            i = _skip_string(text, i)
            continue
        if c == "\\":
            i += 2
            continue
        if c in "([":
            depth += 1
        elif c in ")]":
            depth = max(0, depth - 1)
        elif c in "{}":
            raise MalformedStyleError("Nested rules are not supported", offset + i)
        elif c == sep and depth == 0:
            parts.append(text[start:i])
            start = i + 1
        i += 1
    parts.append(text[start:])
    return parts


def split_selectors(prelude: str, offset: int = 0) -> List[str]:
    selectors = [collapse_whitespace(p) for p in _split_top_level(prelude, ",", offset)]
    if not all(selectors):
        raise MalformedStyleError(f"Empty selector in {prelude.strip()!r}", offset)
    return selectors


def parse_declarations(body: str, offset: int = 0) -> List[Declaration]:
    out: List[Declaration] = []
    for part in _split_top_level(body, ";", offset):
        part = part.strip()
        if not part or ":" not in part:
            continue
        name, value = part.split(":", 1)
        name = name.strip()
        value = collapse_whitespace(value)
        important = False
        m = IMPORTANT_RE.search(value)
        if m:
            important = True
            value = value[:m.start()]
        if not name or not value:
            continue
        out.append(Declaration(name=name, value=value, important=important))
    return out


def parse_stylesheet(source: str) -> Stylesheet:
    return CSSParser(source).parse()
