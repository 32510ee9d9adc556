"""
End-to-end scraping pipeline: parse, extract, transform, over one document or
a batch of them.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Union

import structlog

from . import observability
from .batch import BatchProcessor, BatchResult, ProcessingItem, to_items
from .config import Config
from .config import settings as default_settings
from .errors import ItemSkipped
from .extractor import DataExtractor, ExtractionSchema
from .parser import DomParser
from .transformer import DataTransformer, TransformationPipeline

logger = structlog.get_logger(__name__)

Record = Dict[str, Any]
PipelineSpec = Union[TransformationPipeline, Dict[str, Any]]


class ScrapingPipeline:
    """
    Wires a parser, extractor, transformer and batch processor from one
    :class:`Config`.
    """

    def __init__(self, settings: Optional[Config] = None) -> None:
        self.settings = settings if settings is not None else default_settings
        observability.set_metrics_enabled(self.settings.monitoring.metrics_enabled)

        self.parser = DomParser(self.settings.parser)
        self.extractor = DataExtractor(self.settings.extractor, parser=self.parser)
        self.transformer = DataTransformer()
        self.batch_processor = BatchProcessor(self.settings.batch)
        self.logger = logger.bind(component="ScrapingPipeline")

    def process_document(
        self,
        html: Union[str, bytes],
        schema: ExtractionSchema,
        pipeline: Optional[PipelineSpec] = None,
        url: Optional[str] = None,
    ) -> List[Record]:
        """Extract records from one document and run them through ``pipeline``.

        Each record gets a ``_url`` field when ``url`` is given.
        """
        tree = self.parser.parse_html(html)

        if schema.multiple:
            results = self.extractor.extract_multiple(tree, schema)
        else:
            results = [self.extractor.extract(tree, schema)]

        records: List[Record] = []
        for result in results:
            record = dict(result.data)
            if url is not None:
                record["_url"] = url
            records.append(record)

        self.logger.debug("Extracted records", url=url, schema=schema.name, count=len(records))

        if pipeline is not None:
            records = self.transformer.execute_pipeline(records, pipeline)
        return records

    async def run(
        self,
        documents: Iterable[Union[Record, ProcessingItem]],
        schema: ExtractionSchema,
        pipeline: Optional[PipelineSpec] = None,
        sequential: bool = False,
    ) -> BatchResult:
        """Process many documents as one batch.

        Each document is a ``{"url": ..., "html": ...}`` mapping, or a
        :class:`ProcessingItem` whose ``data`` is one. The item's ``result``
        is the processed record list. Documents without HTML are skipped.
        """
        if pipeline is not None:
            pipeline = self.transformer.load_pipeline(pipeline)
        self.extractor.validate_schema(schema)

        def handle(item: ProcessingItem) -> List[Record]:
            document = item.data if isinstance(item.data, dict) else {}
            html = document.get("html")
            if not html:
                raise ItemSkipped(f"Document {item.id} has no HTML content")
            return self.process_document(html, schema, pipeline, url=document.get("url"))

        items = to_items(documents)
        self.logger.info("Running pipeline", documents=len(items), schema=schema.name, sequential=sequential)

        if sequential:
            return await self.batch_processor.process_sequential(items, handle)
        return await self.batch_processor.process_batch(items, handle)
