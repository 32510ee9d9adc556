"""
Schema-driven field extraction over parsed documents.
"""

from __future__ import annotations

import math
import re
from typing import Any, Dict, List, Optional, Union

import structlog

from .. import observability
from ..config.config import ExtractorConfig
from ..errors import (
    ConversionError,
    ExtractionError,
    FieldValidationError,
    MissingFieldError,
    ParseError,
    SchemaValidationError,
)
from ..parser.dom_parser import DomParser
from ..parser.models import ParsedElement
from ..parser.selectors import parse_selector
from .models import DataType, ExtractionResult, ExtractionSchema, FieldRule
from .patterns import PatternCache, apply_transformation, parse_transformation

logger = structlog.get_logger(__name__)

Document = Union[str, bytes, ParsedElement]

_TRUE_VALUES = frozenset({"true", "1", "yes"})


class DataExtractor:
    """
    Applies :class:`ExtractionSchema` rules to HTML documents.

    Features:
    - Text or attribute extraction per rule
    - Ordered string transformations (trim, case, regex, replace)
    - Pattern validation and type coercion
    - Strict mode: a failing required field aborts the whole extraction
    - Partial-failure accounting with default-value substitution
    """

    def __init__(self, config: Optional[ExtractorConfig] = None, parser: Optional[DomParser] = None) -> None:
        self.config = config or ExtractorConfig()
        self.parser = parser or DomParser()
        self.pattern_cache = PatternCache()
        self.logger = logger.bind(component="DataExtractor")

    @property
    def _validation_flags(self) -> int:
        return 0 if self.config.case_sensitive else re.IGNORECASE

    def validate_schema(self, schema: ExtractionSchema) -> None:
        """Check every selector, pattern and transformation up front.

        Raises:
            InvalidSelectorError: a selector outside the supported forms.
            PatternError: an invalid regex or an unknown/malformed transformation.
        """
        if schema.root_selector:
            parse_selector(schema.root_selector)
        for rule in schema.rules:
            self._validate_rule(rule)

    def _validate_rule(self, rule: FieldRule) -> None:
        parse_selector(rule.selector)
        for spec in rule.transformations:
            name, args = parse_transformation(spec)
            if name == "regex":
                self.pattern_cache.get(args[0])
        if rule.pattern is not None:
            self.pattern_cache.get(rule.pattern, self._validation_flags)

    def extract(self, document: Document, schema: ExtractionSchema) -> ExtractionResult:
        """Extract one record from a document.

        If the schema has a ``root_selector``, rules are evaluated inside the
        first matching element.
        """
        self.validate_schema(schema)
        root = self._tree(document)

        self.logger.debug("Extracting data with schema", schema=schema.name)

        scope: Optional[ParsedElement] = root
        if schema.root_selector:
            roots = self.parser.select_in(root, schema.root_selector)
            scope = roots[0] if roots else None

        return self._extract_record(scope, schema)

    def extract_multiple(self, document: Document, schema: ExtractionSchema) -> List[ExtractionResult]:
        """Extract one record per element matching the schema's root selector."""
        if not schema.multiple:
            raise SchemaValidationError(f"Schema '{schema.name}' is not configured for multiple extraction")

        self.validate_schema(schema)
        root = self._tree(document)

        roots = self.parser.select_in(root, schema.root_selector) if schema.root_selector else [root]

        max_size = self.config.max_array_size
        if max_size is not None and len(roots) > max_size:
            self.logger.debug("Truncating records", schema=schema.name, found=len(roots), limit=max_size)
            roots = roots[:max_size]

        self.logger.debug("Extracting multiple records", schema=schema.name, count=len(roots))
        return [self._extract_record(scope, schema) for scope in roots]

    def extract_field(self, document: Document, rule: FieldRule) -> Any:
        """Extract a single field, raising on failure."""
        self._validate_rule(rule)
        return self._extract_rule(self._tree(document), rule)

    def _tree(self, document: Document) -> ParsedElement:
        if isinstance(document, ParsedElement):
            return document
        return self.parser.parse_html(document)

    def _extract_record(self, scope: Optional[ParsedElement], schema: ExtractionSchema) -> ExtractionResult:
        data: Dict[str, Any] = {}
        success_count = 0
        fail_count = 0

        for rule in schema.rules:
            try:
                if scope is None:
                    raise MissingFieldError(f"No element matches root selector '{schema.root_selector}'")
                data[rule.name] = self._extract_rule(scope, rule)
                success_count += 1
                self.logger.debug("Extracted field", field=rule.name)
            except (ExtractionError, ParseError) as e:
                fail_count += 1
                if rule.required and self.config.strict_mode:
                    self.logger.error("Failed to extract required field", field=rule.name, error=str(e))
                    observability.increment("fields_extracted", success_count, labels={"schema": schema.name})
                    observability.increment("fields_failed", fail_count, labels={"schema": schema.name})
                    raise
                if rule.default_value is not None:
                    data[rule.name] = rule.default_value
                    self.logger.debug("Using default value", field=rule.name, error=str(e))
                else:
                    self.logger.debug("Field not extracted and no default value", field=rule.name, error=str(e))

        observability.increment("fields_extracted", success_count, labels={"schema": schema.name})
        observability.increment("fields_failed", fail_count, labels={"schema": schema.name})

        return ExtractionResult.build(schema.name, data, success_count, fail_count)

    def _extract_rule(self, scope: ParsedElement, rule: FieldRule) -> Any:
        elements = self.parser.select_in(scope, rule.selector, include_self=not scope.is_document)
        if not elements:
            raise MissingFieldError(f"No element matches '{rule.selector}' for field '{rule.name}'")

        if rule.data_type is DataType.ARRAY:
            raw_values = [raw for raw in (self._raw_value(el, rule) for el in elements) if raw is not None]
            if not raw_values:
                raise MissingFieldError(f"No '{rule.attribute}' attribute on '{rule.selector}' for field '{rule.name}'")
            max_size = self.config.max_array_size
            if max_size is not None:
                raw_values = raw_values[:max_size]
            return [self._process(raw, rule, rule.item_type) for raw in raw_values]

        for element in elements:
            raw = self._raw_value(element, rule)
            if raw is not None:
                return self._process(raw, rule, rule.data_type)
        raise MissingFieldError(f"No '{rule.attribute}' attribute on '{rule.selector}' for field '{rule.name}'")

    @staticmethod
    def _raw_value(element: ParsedElement, rule: FieldRule) -> Optional[str]:
        if rule.attribute:
            return element.attributes.get(rule.attribute)
        return element.text

    def _process(self, raw: str, rule: FieldRule, target_type: DataType) -> Any:
        value = raw.strip() if self.config.trim_whitespace else raw

        for spec in rule.transformations:
            value = apply_transformation(value, spec, self.pattern_cache)

        if rule.pattern is not None and self.config.validate_patterns:
            regex = self.pattern_cache.get(rule.pattern, self._validation_flags)
            if not regex.search(value):
                self.logger.debug("Validation failed", field=rule.name, pattern=rule.pattern)
                raise FieldValidationError(f"Value '{value}' does not match pattern '{rule.pattern}'")

        return convert_value(value, target_type)


def convert_value(value: Any, target_type: DataType) -> Any:
    """Coerce a transformed value to ``target_type``."""
    if target_type is DataType.STRING:
        return value if isinstance(value, str) else str(value)

    if target_type is DataType.INTEGER:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            try:
                return int(value.strip())
            except ValueError:
                raise ConversionError(f"Cannot convert '{value}' to integer") from None
        raise ConversionError("Cannot convert to integer")

    if target_type is DataType.FLOAT:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            result = float(value)
        elif isinstance(value, str):
            try:
                result = float(value.strip())
            except ValueError:
                raise ConversionError(f"Cannot convert '{value}' to float") from None
        else:
            raise ConversionError("Cannot convert to float")
        if not math.isfinite(result):
            raise ConversionError(f"Cannot convert '{value}' to a finite float")
        return result

    if target_type is DataType.BOOLEAN:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.strip().lower() in _TRUE_VALUES
        raise ConversionError("Cannot convert to boolean")

    if target_type is DataType.DATETIME:
        if isinstance(value, str):
            return value
        raise ConversionError("Cannot convert to datetime")

    if target_type is DataType.ARRAY:
        return [value]

    return value
