from __future__ import annotations
import re
from html import unescape
from typing import Dict, List, Union

from cssshaker.dom import Document, ElementNode, ParentNode, TextNode
from cssshaker.errors import InvalidInputError

# quoted attribute values may contain ">"
TAG_RE = re.compile(r"""<(/?)([a-zA-Z][a-zA-Z0-9:_-]*)((?:[^>"']|"[^"]*"|'[^']*')*)>""")
LOOSE_TAG_RE = re.compile(r"<(/?)([a-zA-Z][a-zA-Z0-9:_-]*)([^>]*)>")
ATTR_RE = re.compile(r"""([^\s"'<>/=]+)(?:\s*=\s*("[^"]*"|'[^']*'|[^\s>]+))?""")
DOCTYPE_RE = re.compile(r"<!doctype\b", re.IGNORECASE)

RAW_TEXT_TAGS = {"script", "style", "textarea", "title"}  # do not parse inner tags
VOID_TAGS = {
    "area", "base", "br", "col", "embed", "hr", "img", "input",
    "link", "meta", "param", "source", "track", "wbr",
}

# start tag -> open elements it closes implicitly
IMPLIED_END = {
    "body": {"head"},
    "li": {"li"},
    "dt": {"dt", "dd"},
    "dd": {"dt", "dd"},
    "tr": {"tr", "td", "th"},
    "td": {"td", "th"},
    "th": {"td", "th"},
    "option": {"option"},
    "thead": {"tbody", "thead", "tfoot", "tr", "td", "th"},
    "tbody": {"tbody", "thead", "tfoot", "tr", "td", "th"},
    "tfoot": {"tbody", "thead", "tfoot", "tr", "td", "th"},
}
P_CLOSERS = {
    "address", "article", "aside", "blockquote", "details", "div", "dl",
    "fieldset", "figcaption", "figure", "footer", "form", "h1", "h2", "h3",
    "h4", "h5", "h6", "header", "hr", "main", "menu", "nav", "ol", "p",
    "pre", "section", "table", "ul",
}

# elements that stay in an implied <head> until the first other content
HEAD_TAGS = {"base", "link", "meta", "noscript", "script", "style", "template", "title"}


class HTMLParser:
    def __init__(self, source: Union[str, bytes]) -> None:
        if isinstance(source, bytes):
            try:
                source = source.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise InvalidInputError(f"HTML is not valid UTF-8: {exc}", exc.start) from exc
        if not isinstance(source, str):
            raise InvalidInputError(f"Expected HTML text, got {type(source).__name__}")
        self.source = source

    def parse(self) -> Document:
        src = self.source
        doc = Document(source=src)
        stack: List[ParentNode] = [doc]

        i = 0
        text_start = 0
        while True:
            lt = src.find("<", i)
            if lt == -1:
                break
            i = lt

            if src.startswith("<!--", i):
                end = src.find("-->", i + 4)
                if end == -1:
                    raise InvalidInputError("Unterminated comment", i)
                self._emit_text(stack[-1], src[text_start:i])
                i = text_start = end + 3
                continue

            if src.startswith("<!", i) or src.startswith("<?", i):
                end = src.find(">", i)
                if end == -1:
                    break
                self._emit_text(stack[-1], src[text_start:i])
                if doc.doctype is None and DOCTYPE_RE.match(src, i):
                    doc.doctype = src[i:end + 1]
                i = text_start = end + 1
                continue

            m = TAG_RE.match(src, i) or LOOSE_TAG_RE.match(src, i)
            if not m:
                # a lone "<" is text
                i += 1
                continue

            self._emit_text(stack[-1], src[text_start:i])
            closing, tag, attr_text = m.group(1), m.group(2).lower(), m.group(3)
            i = text_start = m.end()

            if closing:
                self._close(stack, tag)
                continue

            self._close_implied(stack, tag)
            if tag == "tr" and self._top_tag(stack) == "table":
                tbody = ElementNode(tag="tbody")
                stack[-1].append(tbody)
                stack.append(tbody)

            el = ElementNode(tag=tag, attributes=self._parse_attrs(attr_text))
            stack[-1].append(el)

            if tag in RAW_TEXT_TAGS:
                i = text_start = self._consume_raw_text(doc, el, i)
                continue

            # void tags and "<path/>" style self-closing tags
            if tag in VOID_TAGS or attr_text.rstrip().endswith("/"):
                continue

            stack.append(el)

        self._emit_text(stack[-1], src[text_start:])
        self._add_implied_elements(doc)
        return doc

    def _add_implied_elements(self, doc: Document) -> None:
        """Create the html, head and body elements the source left out.

        Only the tree changes. Serialization works on source offsets, so the
        output never gains tags that were not written.
        """
        root = next((el for el in doc.element_children() if el.tag == "html"), None)
        if root is None:
            root = ElementNode(tag="html")
            for child in doc.children:
                root.append(child)
            doc.children = []
            doc.append(root)

        present = {el.tag for el in root.element_children()}
        if "head" not in present:
            count = 0
            for child in root.children:
                if not (isinstance(child, ElementNode) and child.tag in HEAD_TAGS):
                    break
                count += 1
            head = ElementNode(tag="head")
            for child in root.children[:count]:
                head.append(child)
            head.parent = root
            root.children[:count] = [head]
        else:
            head = next(el for el in root.element_children() if el.tag == "head")

        if "body" not in present:
            body = ElementNode(tag="body")
            for child in root.children:
                if child is not head:
                    body.append(child)
            root.children = [head]
            root.append(body)

    def _consume_raw_text(self, doc: Document, el: ElementNode, start: int) -> int:
        close_re = re.compile(rf"</{re.escape(el.tag)}(?=[\s/>])[^>]*>", re.IGNORECASE)
        m = close_re.search(self.source, start)
        if not m:
            raise InvalidInputError(f"Unterminated <{el.tag}> element", start)
        raw = self.source[start:m.start()]
        if raw:
            el.append(TextNode(text=raw))
        el.source_span = (start, m.start())
        doc.raw_text_elements.append(el)
        return m.end()

    def _close(self, stack: List[ParentNode], tag: str) -> None:
        # unmatched end tags are ignored
        for depth in range(len(stack) - 1, 0, -1):
            node = stack[depth]
            if isinstance(node, ElementNode) and node.tag == tag:
                del stack[depth:]
                return

    def _close_implied(self, stack: List[ParentNode], tag: str) -> None:
        if tag in P_CLOSERS and self._top_tag(stack) == "p":
            stack.pop()
        closes = IMPLIED_END.get(tag)
        if closes:
            while self._top_tag(stack) in closes:
                stack.pop()

    def _top_tag(self, stack: List[ParentNode]) -> str:
        top = stack[-1]
        return top.tag if isinstance(top, ElementNode) else ""

    def _emit_text(self, parent: ParentNode, text: str) -> None:
        if not text:
            return
        # collapse whitespace
        t = re.sub(r"\s+", " ", text).strip()
        if t:
            parent.append(TextNode(text=unescape(t)))

    def _parse_attrs(self, s: str) -> Dict[str, str]:
        attrs: Dict[str, str] = {}
        # supports key="value" / key='value' / key=value / key
        for k, v in ATTR_RE.findall(s):
            k = k.lower()
            if k in attrs:
                continue  # first one wins
            if len(v) >= 2 and v[0] == v[-1] and v[0] in "\"'":
                v = v[1:-1]
            attrs[k] = unescape(v)
        return attrs


def parse_html(source: Union[str, bytes]) -> Document:
    return HTMLParser(source).parse()
