"""
Shared test configuration for SieveCore.

Provides parser, extractor and transformer fixtures plus sample documents.
"""

# Standard library imports
from typing import Generator

# Third-party imports
import pytest
import structlog

# Local imports
from sievecore.batch import BatchProcessor
from sievecore.config import BatchConfig, ExtractorConfig, LazyConfig, ParserConfig
from sievecore.extractor import DataExtractor
from sievecore.parser import DomParser
from sievecore.transformer import DataTransformer

# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line("markers", "integration: Integration tests across modules")
    config.addinivalue_line("markers", "slow: Tests that take more than a few seconds")


# ============================================================================
# Isolation Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def reset_global_state() -> Generator[None, None, None]:
    """Drop cached settings and bound log context between tests."""
    LazyConfig.reset()
    structlog.contextvars.clear_contextvars()
    yield
    LazyConfig.reset()
    structlog.contextvars.clear_contextvars()


# ============================================================================
# Component Fixtures
# ============================================================================


@pytest.fixture
def parser() -> DomParser:
    return DomParser(ParserConfig())


@pytest.fixture
def extractor(parser: DomParser) -> DataExtractor:
    return DataExtractor(ExtractorConfig(), parser=parser)


@pytest.fixture
def lenient_extractor(parser: DomParser) -> DataExtractor:
    """Extractor with strict mode off, so required fields degrade gracefully."""
    return DataExtractor(ExtractorConfig(strict_mode=False), parser=parser)


@pytest.fixture
def transformer() -> DataTransformer:
    return DataTransformer()


@pytest.fixture
def fast_batch_config() -> BatchConfig:
    """Batch settings with no rate limit and no retry delay."""
    return BatchConfig(rate_limit=None, retry_delay=0.0, timeout=5.0)


@pytest.fixture
def batch_processor(fast_batch_config: BatchConfig) -> BatchProcessor:
    return BatchProcessor(fast_batch_config)


# ============================================================================
# Sample Documents
# ============================================================================


@pytest.fixture
def login_form_html() -> str:
    return (
        '<form id="login">'
        '<input type="email" name="email" required/>'
        '<input type="password" name="password" required/>'
        "</form>"
    )


@pytest.fixture
def product_list_html() -> str:
    """A product listing with three items, one of them missing a price."""
    return """
    <!DOCTYPE html>
    <html>
    <head>
        <title>Product Catalogue</title>
        <meta name="description" content="Sample catalogue for testing">
        <style>.product { color: red; }</style>
    </head>
    <body>
        <h1 id="title">Product Catalogue</h1>
        <ul class="products">
            <li class="product" data-sku="A-1">
                <span class="name">  Widget  </span>
                <span class="price">$19.99</span>
                <a class="link" href="/p/widget">details</a>
            </li>
            <li class="product" data-sku="B-2">
                <span class="name">Gadget</span>
                <span class="price">$5.00</span>
                <a class="link" href="/p/gadget">details</a>
            </li>
            <li class="product" data-sku="C-3">
                <span class="name">Doohickey</span>
                <a class="link" href="/p/doohickey">details</a>
            </li>
        </ul>
        <!-- footer comment -->
        <script>var tracking = "ignored";</script>
        <p class="note">Prices include <strong>VAT</strong>.</p>
    </body>
    </html>
    """
