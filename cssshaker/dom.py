from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

DEFAULT_DOCTYPE = "<!doctype html>"


class Node:
    parent: Optional["ParentNode"] = None


@dataclass(eq=False)
class TextNode(Node):
    text: str = ""


class ParentNode(Node):
    children: List[Node]

    def append(self, child: Node) -> None:
        child.parent = self
        self.children.append(child)

    def iter_elements(self) -> Iterator["ElementNode"]:
        # document order, without recursion so deep trees are fine
        stack = [c for c in reversed(self.children) if isinstance(c, ElementNode)]
        while stack:
            el = stack.pop()
            yield el
            stack.extend(c for c in reversed(el.children) if isinstance(c, ElementNode))

    def element_children(self) -> List["ElementNode"]:
        return [c for c in self.children if isinstance(c, ElementNode)]

    def find_all(self, tag: str) -> List["ElementNode"]:
        tag = tag.lower()
        return [el for el in self.iter_elements() if el.tag == tag]


@dataclass(eq=False)
class ElementNode(ParentNode):
    tag: str
    attributes: Dict[str, str] = field(default_factory=dict)
    children: List[Node] = field(default_factory=list)
    # offsets of the raw text content in the source, for script/style/...
    source_span: Optional[Tuple[int, int]] = None

    def get_attribute(self, name: str) -> Optional[str]:
        return self.attributes.get(name.lower())

    def has_attribute(self, name: str) -> bool:
        return name.lower() in self.attributes

    @property
    def text(self) -> str:
        out: List[str] = []
        stack: List[Node] = [self]
        while stack:
            n = stack.pop()
            if isinstance(n, TextNode):
                out.append(n.text)
            elif isinstance(n, ElementNode):
                stack.extend(reversed(n.children))
        return "".join(out)

    @text.setter
    def text(self, value: str) -> None:
        for c in self.children:
            c.parent = None
        self.children = []
        if value:
            self.append(TextNode(text=value))


@dataclass(eq=False)
class Document(ParentNode):
    source: str = ""
    doctype: Optional[str] = None
    children: List[Node] = field(default_factory=list)
    # raw text elements in source order, used to splice content back
    raw_text_elements: List[ElementNode] = field(default_factory=list)

    def serialize(self, add_doctype: bool = True) -> str:
        """Return the source with the current content of raw text elements.

        Everything outside those elements is copied from the source as is, so
        a document nobody touched serializes to exactly its input. With
        ``add_doctype``, a document without a doctype gets ``<!doctype html>``.
        """
        out: List[str] = []
        pos = 0
        for el in self.raw_text_elements:
            start, end = el.source_span
            out.append(self.source[pos:start])
            out.append(el.text)
            pos = end
        out.append(self.source[pos:])
        html = "".join(out)
        if add_doctype and self.doctype is None:
            html = DEFAULT_DOCTYPE + html
        return html
