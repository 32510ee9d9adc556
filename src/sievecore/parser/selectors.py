"""
Simple selector matching over parsed element trees.

Supported forms are single tokens only: ``.class``, ``#id``, ``tag``,
``[attr]``, ``[attr=value]`` and ``*``. Anything compound (descendant or
child combinators, selector lists, pseudo-classes, chained tokens such as
``div.item``) is rejected with :class:`InvalidSelectorError` instead of being
matched loosely. A full CSS engine can be plugged in by implementing
:class:`SelectorMatcher`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Protocol, runtime_checkable

from ..errors import InvalidSelectorError
from .models import ParsedElement

_CLASS_RE = re.compile(r"^\.([\w-]+)$")
_ID_RE = re.compile(r"^#([\w-]+)$")
_TAG_RE = re.compile(r"^([A-Za-z][A-Za-z0-9-]*)$")
_ATTR_RE = re.compile(
    r"""^\[\s*([^\s=\]"']+)\s*(?:=\s*(?:"([^"]*)"|'([^']*)'|([^\s\]"']+))\s*)?\]$"""
)


@runtime_checkable
class SelectorMatcher(Protocol):
    """Pluggable selector engine."""

    def select(self, root: ParsedElement, selector: str, *, include_self: bool = False) -> List[ParsedElement]:
        """Return elements under ``root`` matching ``selector`` in document order."""
        ...


@dataclass(slots=True, frozen=True)
class SimpleSelector:
    kind: str  # "class" | "id" | "tag" | "attr" | "any"
    name: str = ""
    value: Optional[str] = None

    def matches(self, element: ParsedElement) -> bool:
        if element.is_document:
            return False
        if self.kind == "class":
            return self.name in element.class_list
        if self.kind == "id":
            return element.attributes.get("id") == self.name
        if self.kind == "tag":
            return element.tag == self.name
        if self.kind == "attr":
            if self.name not in element.attributes:
                return False
            return self.value is None or element.attributes[self.name] == self.value
        return True


def parse_selector(selector: str) -> SimpleSelector:
    """Parse a simple selector, raising InvalidSelectorError for anything else."""
    text = selector.strip() if selector else ""
    if not text:
        raise InvalidSelectorError("Empty selector")

    if text == "*":
        return SimpleSelector(kind="any")

    match = _CLASS_RE.match(text)
    if match:
        return SimpleSelector(kind="class", name=match.group(1))

    match = _ID_RE.match(text)
    if match:
        return SimpleSelector(kind="id", name=match.group(1))

    match = _TAG_RE.match(text)
    if match:
        return SimpleSelector(kind="tag", name=match.group(1).lower())

    match = _ATTR_RE.match(text)
    if match:
        name, double_quoted, single_quoted, bare = match.groups()
        value = next((v for v in (double_quoted, single_quoted, bare) if v is not None), None)
        return SimpleSelector(kind="attr", name=name.lower(), value=value)

    raise InvalidSelectorError(
        f"Unsupported selector '{selector}': only single .class, #id, tag, [attr] or [attr=value] selectors are supported"
    )


class SimpleSelectorMatcher:
    """Default selector engine for single-token selectors."""

    def select(self, root: ParsedElement, selector: str, *, include_self: bool = False) -> List[ParsedElement]:
        compiled = parse_selector(selector)
        nodes = root.iter() if include_self else root.descendants()

        if compiled.kind == "id":
            for node in nodes:
                if compiled.matches(node):
                    return [node]
            return []

        return [node for node in nodes if compiled.matches(node)]
