"""
SieveCore - HTML parsing, schema-driven extraction and record transformation.
"""

from __future__ import annotations

__version__ = "0.1.0"

from .batch import BatchProcessor, BatchResult, ProcessingItem, ProcessingStatus
from .config import Config
from .extractor import DataExtractor, DataType, ExtractionResult, ExtractionSchema, FieldRule
from .parser import DomParser, ParsedElement
from .pipeline import ScrapingPipeline
from .transformer import DataTransformer, TransformationPipeline

__all__ = [
    "__version__",
    "BatchProcessor",
    "BatchResult",
    "Config",
    "DataExtractor",
    "DataTransformer",
    "DataType",
    "DomParser",
    "ExtractionResult",
    "ExtractionSchema",
    "FieldRule",
    "ParsedElement",
    "ProcessingItem",
    "ProcessingStatus",
    "ScrapingPipeline",
    "TransformationPipeline",
]
