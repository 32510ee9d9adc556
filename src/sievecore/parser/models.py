"""
Data models for parsed documents and search results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from html import escape
from typing import Any, Dict, Iterator, List, Optional

# Elements serialized without a closing tag.
VOID_ELEMENTS = frozenset(
    {
        "area",
        "base",
        "br",
        "col",
        "embed",
        "hr",
        "img",
        "input",
        "link",
        "meta",
        "source",
        "track",
        "wbr",
    }
)

DOCUMENT_TAG = "#document"


@dataclass(slots=True)
class ParsedElement:
    """One node of a parsed HTML document.

    ``text`` holds the element's own and descendant text in document order,
    ``own_text`` only its direct text nodes. Children are owned exclusively
    by their parent and always sit one level deeper.
    """

    tag: str
    text: str = ""
    own_text: str = ""
    attributes: Dict[str, str] = field(default_factory=dict)
    children: List[ParsedElement] = field(default_factory=list)
    depth: int = 0

    @property
    def is_document(self) -> bool:
        return self.tag == DOCUMENT_TAG

    @property
    def class_list(self) -> List[str]:
        return self.attributes.get("class", "").split()

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Return an attribute value."""
        return self.attributes.get(name, default)

    def iter(self) -> Iterator[ParsedElement]:
        """Yield this element and all descendants in depth-first pre-order."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def descendants(self) -> Iterator[ParsedElement]:
        """Yield all descendants in depth-first pre-order, excluding this element."""
        iterator = self.iter()
        next(iterator)
        yield from iterator

    def to_html(self) -> str:
        """Serialize the subtree back to HTML.

        Own text is emitted before the children, so mixed content loses its
        interleaving; tags and attributes survive a re-parse.
        """
        inner = escape(self.own_text, quote=False) + "".join(child.to_html() for child in self.children)
        if self.is_document:
            return inner

        attrs = "".join(f' {name}="{escape(value, quote=True)}"' for name, value in self.attributes.items())
        if self.tag in VOID_ELEMENTS and not inner:
            return f"<{self.tag}{attrs}>"
        return f"<{self.tag}{attrs}>{inner}</{self.tag}>"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tag": self.tag,
            "text": self.text,
            "attributes": dict(self.attributes),
            "depth": self.depth,
            "children": [child.to_dict() for child in self.children],
        }


@dataclass(slots=True, frozen=True)
class SearchMatch:
    """A single occurrence of a search term."""

    term: str
    text: str
    start_position: int
    end_position: int
    context: str
    line_number: Optional[int] = None
    element_path: Optional[str] = None


@dataclass(slots=True, frozen=True)
class SearchResult:
    """All occurrences of one search term."""

    term: str
    matches: List[SearchMatch]

    @property
    def total_matches(self) -> int:
        return len(self.matches)
