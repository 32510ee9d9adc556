"""
BeautifulSoup-backed DOM parser with simple selectors and free-text search.
"""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Mapping, Optional, Union

import structlog
from bs4 import BeautifulSoup
from bs4.element import NavigableString, PreformattedString, Tag

from .. import observability
from ..config.config import ParserConfig, SearchConfig
from ..errors import ElementNotFoundError, InvalidHtmlError, ParseError, ParseFailedError
from .models import DOCUMENT_TAG, ParsedElement, SearchMatch, SearchResult
from .selectors import SelectorMatcher, SimpleSelectorMatcher

logger = structlog.get_logger(__name__)

Document = Union[str, bytes, ParsedElement]

# Elements whose text content is not document text.
_RAW_TEXT_TAGS = frozenset({"script", "style", "template", "noscript"})

_WHITESPACE_RE = re.compile(r"\s+")


class DomParser:
    """
    Parses HTML into :class:`ParsedElement` trees and queries them.

    Every query method accepts either raw HTML (``str``/``bytes``) or a tree
    returned by :meth:`parse_html`, so callers running several queries over
    one document can parse it once.
    """

    def __init__(
        self,
        config: Optional[ParserConfig] = None,
        matcher: Optional[SelectorMatcher] = None,
    ) -> None:
        self.config = config or ParserConfig()
        self.matcher: SelectorMatcher = matcher or SimpleSelectorMatcher()
        self.logger = logger.bind(component="DomParser")

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def parse_html(self, html: Union[str, bytes]) -> ParsedElement:
        """Parse HTML into a tree rooted at a ``#document`` element.

        Raises:
            InvalidHtmlError: the input is empty.
            ParseFailedError: ``max_depth`` was exceeded.
        """
        if isinstance(html, bytes):
            html = html.decode(self.config.encoding, errors="replace")

        if not html or not html.strip():
            raise InvalidHtmlError("Empty HTML content")

        self.logger.debug("Parsing HTML content", html_len=len(html))

        soup = BeautifulSoup(html, self.config.tree_builder, multi_valued_attributes=None)
        try:
            root = self._build(soup, DOCUMENT_TAG, 0)
        except RecursionError as e:
            raise ParseFailedError("Document nesting too deep to parse") from e

        observability.increment("documents_parsed")
        return root

    parse = parse_html

    def _build(self, node: Tag, tag: str, depth: int) -> ParsedElement:
        max_depth = self.config.max_depth
        if max_depth is not None and depth > max_depth:
            raise ParseFailedError(f"Maximum depth exceeded ({max_depth})")

        preserve = self.config.preserve_whitespace
        element = ParsedElement(tag=tag, depth=depth)
        if tag != DOCUMENT_TAG:
            element.attributes = {str(k): _attr_value(v) for k, v in node.attrs.items()}

        own_parts: List[str] = []
        text_parts: List[str] = []
        skip_text = tag in _RAW_TEXT_TAGS

        for child in node.children:
            if isinstance(child, Tag):
                parsed = self._build(child, child.name.lower(), depth + 1)
                element.children.append(parsed)
                if parsed.text:
                    text_parts.append(parsed.text)
            elif isinstance(child, NavigableString) and not isinstance(child, PreformattedString):
                if skip_text:
                    continue
                raw = str(child)
                if preserve:
                    own_parts.append(raw)
                    text_parts.append(raw)
                elif raw.strip():
                    own_parts.append(raw.strip())
                    text_parts.append(raw.strip())

        if preserve:
            element.own_text = "".join(own_parts)
            element.text = "".join(text_parts)
        else:
            element.own_text = " ".join(own_parts)
            element.text = " ".join(text_parts)
        return element

    def _tree(self, document: Document) -> ParsedElement:
        if isinstance(document, ParsedElement):
            return document
        return self.parse_html(document)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select_css(self, document: Document, selector: str) -> List[ParsedElement]:
        """Return elements matching a simple selector in depth-first order."""
        root = self._tree(document)
        results = self.matcher.select(root, selector)
        self.logger.debug("Selected elements", selector=selector, count=len(results))
        return results

    select = select_css

    def select_in(self, element: ParsedElement, selector: str, *, include_self: bool = False) -> List[ParsedElement]:
        """Match a selector within an already parsed subtree."""
        return self.matcher.select(element, selector, include_self=include_self)

    def extract_text(self, document: Document, selector: str) -> str:
        """Join the text of all matched elements with single spaces."""
        elements = self.select_css(document, selector)
        if not elements:
            raise ElementNotFoundError(selector)

        text = " ".join(element.text for element in elements)
        if self.config.normalize_spaces:
            text = normalize_whitespace(text)
        return text

    def extract_attribute(self, document: Document, selector: str, attr: str) -> str:
        """Return the attribute value from the first matched element that has it."""
        elements = self.select_css(document, selector)
        if not elements:
            raise ElementNotFoundError(selector)

        for element in elements:
            if attr in element.attributes:
                return element.attributes[attr]
        raise ElementNotFoundError(f"{attr} attribute on {selector}")

    def extract_attributes(self, document: Document, selector: str, attr: str) -> List[str]:
        """Return the attribute values of all matched elements that have it."""
        elements = self.select_css(document, selector)
        if not elements:
            raise ElementNotFoundError(selector)
        return [element.attributes[attr] for element in elements if attr in element.attributes]

    def extract_structured(self, document: Document, rules: Mapping[str, str]) -> Dict[str, str]:
        """Extract text per named selector; failing rules are logged and skipped."""
        root = self._tree(document)
        result: Dict[str, str] = {}

        for key, selector in rules.items():
            try:
                result[key] = self.extract_text(root, selector)
                self.logger.debug("Extracted structured field", field=key)
            except ParseError as e:
                self.logger.warning("Failed to extract structured field", field=key, selector=selector, error=str(e))

        return result

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search_content(
        self,
        content: Union[str, bytes],
        terms: Iterable[str],
        config: Optional[SearchConfig] = None,
    ) -> List[SearchResult]:
        """Search raw content for each term, one SearchResult per term."""
        if isinstance(content, bytes):
            content = content.decode(self.config.encoding, errors="replace")
        config = config or SearchConfig()

        results = []
        for term in terms:
            matches = self._search_term(content, term, config)
            self.logger.debug("Searched term", term=term, matches=len(matches))
            results.append(SearchResult(term=term, matches=matches))
        return results

    def _search_term(self, content: str, term: str, config: SearchConfig) -> List[SearchMatch]:
        if not term:
            return []

        pattern = re.escape(term)
        if config.whole_words:
            pattern = rf"\b{pattern}\b"
        regex = re.compile(pattern, 0 if config.case_sensitive else re.IGNORECASE)

        half = config.max_context_length // 2
        matches: List[SearchMatch] = []
        offset = 0

        for line_index, raw_line in enumerate(content.split("\n")):
            line = raw_line[:-1] if raw_line.endswith("\r") else raw_line
            for found in regex.finditer(line):
                start, end = found.span()
                before = line[max(0, start - half) : start]
                after = line[end : end + half]
                matches.append(
                    SearchMatch(
                        term=term,
                        text=found.group(0),
                        start_position=offset + start,
                        end_position=offset + end,
                        context=f"...{before}[{found.group(0)}]{after}...",
                        line_number=line_index + 1 if config.include_line_numbers else None,
                    )
                )
            offset += len(raw_line) + 1

        return matches

    def search_in_elements(
        self,
        document: Document,
        selector: str,
        terms: Iterable[str],
        config: Optional[SearchConfig] = None,
    ) -> List[SearchResult]:
        """Search the serialized HTML of each matched element.

        Returns one SearchResult per (element, term) pair; every match is
        tagged with the element's tag name.
        """
        terms = list(terms)
        results: List[SearchResult] = []

        for element in self.select_css(document, selector):
            for result in self.search_content(element.to_html(), terms, config):
                tagged = [
                    SearchMatch(
                        term=m.term,
                        text=m.text,
                        start_position=m.start_position,
                        end_position=m.end_position,
                        context=m.context,
                        line_number=m.line_number,
                        element_path=element.tag,
                    )
                    for m in result.matches
                ]
                results.append(SearchResult(term=result.term, matches=tagged))

        return results


def normalize_whitespace(text: str) -> str:
    """Collapse runs of whitespace into single spaces and trim."""
    return _WHITESPACE_RE.sub(" ", text).strip()


def _attr_value(value: object) -> str:
    if isinstance(value, (list, tuple)):
        return " ".join(str(v) for v in value)
    return str(value)
