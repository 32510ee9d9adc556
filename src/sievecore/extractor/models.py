"""
Data models for schema-driven extraction.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class DataType(str, Enum):
    """Target types a field value is coerced to."""

    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    DATETIME = "datetime"
    ARRAY = "array"
    OBJECT = "object"


class FieldRule(BaseModel):
    """One named extraction instruction."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    selector: str = Field(..., min_length=1)
    attribute: Optional[str] = Field(default=None, description="Extract this attribute instead of the text.")
    data_type: DataType = DataType.STRING
    item_type: DataType = Field(default=DataType.STRING, description="Element type for array fields.")
    required: bool = False
    default_value: Optional[Any] = None
    transformations: List[str] = Field(default_factory=list)
    pattern: Optional[str] = Field(default=None, description="Regex the transformed value must match.")

    @model_validator(mode="after")
    def check_item_type(self) -> FieldRule:
        if self.item_type is DataType.ARRAY:
            raise ValueError(f"Field '{self.name}': nested arrays are not supported")
        return self


class ExtractionSchema(BaseModel):
    """A named, ordered set of field rules."""

    model_config = ConfigDict(extra="forbid")

    name: str
    rules: List[FieldRule] = Field(default_factory=list)
    root_selector: Optional[str] = None
    multiple: bool = False

    @model_validator(mode="after")
    def check_unique_names(self) -> ExtractionSchema:
        seen = set()
        for rule in self.rules:
            if rule.name in seen:
                raise ValueError(f"Duplicate field rule name '{rule.name}' in schema '{self.name}'")
            seen.add(rule.name)
        return self


@dataclass(slots=True, frozen=True)
class ExtractionResult:
    """Outcome of applying one schema to one document (or root element)."""

    data: Dict[str, Any]
    extracted_at: str
    schema_name: str
    fields_extracted: int
    fields_failed: int
    success_rate: float

    @classmethod
    def build(cls, schema_name: str, data: Dict[str, Any], extracted: int, failed: int) -> ExtractionResult:
        total = extracted + failed
        return cls(
            data=data,
            extracted_at=datetime.now(timezone.utc).isoformat(),
            schema_name=schema_name,
            fields_extracted=extracted,
            fields_failed=failed,
            success_rate=(extracted / total) * 100.0 if total > 0 else 0.0,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
