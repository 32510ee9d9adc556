"""Batch work items and run summaries."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ProcessingStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessingStatus.SUCCESS, ProcessingStatus.FAILED, ProcessingStatus.SKIPPED)


@dataclass
class ProcessingItem:
    """One unit of batch work.

    ``error`` is set only when the item ends ``FAILED``. ``result`` holds the
    processor's return value when it returns something other than an item.
    """

    id: str
    data: Any = None
    status: ProcessingStatus = ProcessingStatus.PENDING
    error: Optional[str] = None
    result: Any = None
    attempts: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "data": self.data,
            "status": self.status.value,
            "error": self.error,
            "result": self.result,
            "attempts": self.attempts,
        }


@dataclass(slots=True)
class BatchResult:
    """Outcome of one batch run. ``results`` is in completion order."""

    batch_id: str
    total_items: int
    processed_items: int
    failed_items: int
    skipped_items: int
    processing_time_ms: float
    results: List[ProcessingItem] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        if self.total_items == 0:
            return 0.0
        return self.processed_items / self.total_items * 100.0

    @classmethod
    def from_items(cls, batch_id: str, items: List[ProcessingItem], processing_time_ms: float) -> BatchResult:
        return cls(
            batch_id=batch_id,
            total_items=len(items),
            processed_items=sum(1 for item in items if item.status is ProcessingStatus.SUCCESS),
            failed_items=sum(1 for item in items if item.status is ProcessingStatus.FAILED),
            skipped_items=sum(1 for item in items if item.status is ProcessingStatus.SKIPPED),
            processing_time_ms=processing_time_ms,
            results=items,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "total_items": self.total_items,
            "processed_items": self.processed_items,
            "failed_items": self.failed_items,
            "skipped_items": self.skipped_items,
            "success_rate": self.success_rate,
            "processing_time_ms": self.processing_time_ms,
            "results": [item.to_dict() for item in self.results],
        }


@dataclass(slots=True, frozen=True)
class ProcessingStats:
    total_items: int
    processed_items: int
    failed_items: int
    skipped_items: int
    success_rate: float
    processing_time_ms: float
    items_per_second: float
