"""
HTML parsing, simple selectors and free-text search.
"""

from __future__ import annotations

from typing import Optional, Union

from ..config.config import ParserConfig, SearchConfig
from .dom_parser import DomParser, normalize_whitespace
from .models import ParsedElement, SearchMatch, SearchResult
from .selectors import SelectorMatcher, SimpleSelector, SimpleSelectorMatcher, parse_selector


def parse(html: Union[str, bytes], config: Optional[ParserConfig] = None) -> ParsedElement:
    """Parse HTML with a one-off :class:`DomParser`."""
    return DomParser(config).parse_html(html)


__all__ = [
    "DomParser",
    "ParsedElement",
    "ParserConfig",
    "SearchConfig",
    "SearchMatch",
    "SearchResult",
    "SelectorMatcher",
    "SimpleSelector",
    "SimpleSelectorMatcher",
    "normalize_whitespace",
    "parse",
    "parse_selector",
]
