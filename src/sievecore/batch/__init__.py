"""Concurrent batch processing of work items."""

from .models import BatchResult, ProcessingItem, ProcessingStats, ProcessingStatus
from .processor import BatchProcessor, to_items
from .rate_limiter import TokenBucketRateLimiter

__all__ = [
    "BatchProcessor",
    "BatchResult",
    "ProcessingItem",
    "ProcessingStats",
    "ProcessingStatus",
    "TokenBucketRateLimiter",
    "to_items",
]
