"""Stored quote result models for Gracemark.

Pydantic models for the quote documents kept in /quotes/{quoteId}.
"""

from enum import Enum
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field


class QuoteRecordStatus(str, Enum):
    """Status of a stored quote calculation."""

    CALCULATING = "calculating"
    COMPLETED = "completed"
    ERROR = "error"


class QuoteMetadata(BaseModel):
    timestamp: int = Field(description="Creation time, ms since epoch")
    currency: str
    usd_conversions: Optional[Dict[str, Any]] = Field(default=None, alias="usdConversions")

    class Config:
        populate_by_name = True


class QuoteRecord(BaseModel):
    """Quote result document."""

    quote_id: Optional[str] = Field(default=None, alias="quoteId")
    calculator_type: Literal["eor", "ic"] = Field(default="eor", alias="calculatorType")
    form_data: Dict[str, Any] = Field(default_factory=dict, alias="formData")
    quotes: Dict[str, Any] = Field(default_factory=dict)
    metadata: QuoteMetadata
    status: QuoteRecordStatus = QuoteRecordStatus.CALCULATING
    error: Optional[str] = None

    class Config:
        populate_by_name = True
        use_enum_values = True

    def to_firestore_dict(self) -> Dict[str, Any]:
        """Camel-case dict without the ID (the document key holds it)."""
        return self.model_dump(by_alias=True, exclude_none=True, exclude={"quote_id"})
