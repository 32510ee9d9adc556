"""
Exception hierarchy for SieveCore.

Every error raised by the parser, extractor, transformer and batch processor
derives from :class:`SieveError`, grouped into one family per module.
"""

from __future__ import annotations

from typing import Optional


class SieveError(Exception):
    """Base class for all SieveCore errors."""


# --- Parser ---


class ParseError(SieveError):
    """Base error for HTML parsing and selection."""


class InvalidHtmlError(ParseError):
    """Raised when the input document is empty or unusable."""


class InvalidSelectorError(ParseError):
    """Raised for selectors outside the supported simple-selector forms."""


class ElementNotFoundError(ParseError):
    """Raised when a selector matches no element (or no element carries an attribute)."""


class ParseFailedError(ParseError):
    """Raised when parsing aborts, e.g. because the depth limit was exceeded."""


# --- Extraction ---


class ExtractionError(SieveError):
    """Base error for schema-driven field extraction."""


class SchemaValidationError(ExtractionError):
    """Raised when a schema is misconfigured or used in the wrong mode."""


class FieldValidationError(ExtractionError):
    """Raised when an extracted value does not match its validation pattern."""


class PatternError(ExtractionError):
    """Raised for invalid regular expressions or failing transformations."""


class ConversionError(ExtractionError):
    """Raised when a value cannot be coerced to the rule's data type."""


class MissingFieldError(ExtractionError):
    """Raised when a rule's selector or attribute yields nothing."""


# --- Transformation ---


class TransformationError(SieveError):
    """Base error for record transformation."""


class InvalidFilterError(TransformationError):
    """Raised for invalid filter or pipeline-step configuration."""


class MappingError(TransformationError):
    """Raised when a field mapping transform fails."""


class AggregationError(TransformationError):
    """Raised when an aggregation cannot produce a value."""


class NormalizationError(TransformationError):
    """Raised when a normalization rule is misconfigured."""


class SerializationError(TransformationError):
    """Raised when records cannot be serialized to JSON."""


# --- Batch ---


class BatchError(SieveError):
    """Base error for batch processing."""


class BatchProcessingError(BatchError):
    """Raised when an item fails and the batch is configured to stop on error."""

    def __init__(self, message: str, item_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.item_id = item_id


class RateLimitExceededError(BatchError):
    """Reserved for callers that enforce hard request quotas."""


class BatchTimeoutError(BatchError):
    """Raised when a single processing attempt exceeds the configured timeout."""


class ChannelError(BatchError):
    """Raised when a batch task could not be joined."""


class ItemSkipped(Exception):
    """Raised by a processor function to mark an item as skipped.

    Not an error: the item ends in the ``skipped`` state and is never retried.
    """


__all__ = [
    "SieveError",
    "ParseError",
    "InvalidHtmlError",
    "InvalidSelectorError",
    "ElementNotFoundError",
    "ParseFailedError",
    "ExtractionError",
    "SchemaValidationError",
    "FieldValidationError",
    "PatternError",
    "ConversionError",
    "MissingFieldError",
    "TransformationError",
    "InvalidFilterError",
    "MappingError",
    "AggregationError",
    "NormalizationError",
    "SerializationError",
    "BatchError",
    "BatchProcessingError",
    "RateLimitExceededError",
    "BatchTimeoutError",
    "ChannelError",
    "ItemSkipped",
]
