"""Reconciliation models for Gracemark.

Every phase transition of the reconciliation engine produces a new frozen
``ReconciliationState``; nothing is mutated in place.
"""

from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field

from models.enhancement import EnhancedQuote


class ReconciliationPhase(str, Enum):
    """Strictly sequential reconciliation phases."""

    GATHERING = "gathering"
    ANALYZING = "analyzing"
    SELECTING = "selecting"
    COMPLETE = "complete"


PHASE_ORDER: Tuple[ReconciliationPhase, ...] = (
    ReconciliationPhase.GATHERING,
    ReconciliationPhase.ANALYZING,
    ReconciliationPhase.SELECTING,
    ReconciliationPhase.COMPLETE,
)


class SelectionPolicy(str, Enum):
    """How the winner is picked among providers inside the band."""

    HIGHEST_IN_BAND = "highest_in_band"
    CHEAPEST_IN_BAND = "cheapest_in_band"


class _Frozen(BaseModel):
    class Config:
        frozen = True
        populate_by_name = True


class ProviderPrice(_Frozen):
    provider: str
    price: float
    currency: str = "USD"


class PriceBand(_Frozen):
    """Inclusive acceptance band around the baseline price."""

    baseline: float
    lower: float
    upper: float

    def contains(self, price: float) -> bool:
        return self.lower <= price <= self.upper


class VarianceEntry(_Frozen):
    provider: str
    price: float
    in_range: bool = Field(alias="inRange")
    delta: float = Field(description="price - baseline")
    delta_percent: float = Field(alias="deltaPercent")


class FinalChoice(_Frozen):
    """The single provider recommended by a reconciliation run."""

    provider: str
    price: float
    currency: str
    enhanced_quote: Optional[EnhancedQuote] = Field(default=None, alias="enhancedQuote")


class ReconciliationState(_Frozen):
    """Snapshot of one reconciliation run."""

    phase: ReconciliationPhase = ReconciliationPhase.GATHERING
    completed_phases: Tuple[ReconciliationPhase, ...] = ()
    policy: SelectionPolicy = SelectionPolicy.HIGHEST_IN_BAND
    tolerance: float = 0.04
    currency: str = "USD"
    prices: Tuple[ProviderPrice, ...] = ()
    baseline: Optional[ProviderPrice] = None
    band: Optional[PriceBand] = None
    variance: Tuple[VarianceEntry, ...] = ()
    selected: Optional[ProviderPrice] = None
    final_choice: Optional[FinalChoice] = Field(default=None, alias="finalChoice")
    failure_reason: Optional[str] = Field(default=None, alias="failureReason")

    @property
    def failed(self) -> bool:
        return self.failure_reason is not None

    @property
    def is_complete(self) -> bool:
        return ReconciliationPhase.COMPLETE in self.completed_phases

    def is_phase_complete(self, phase: ReconciliationPhase) -> bool:
        return phase in self.completed_phases


class ReconciliationSummary(_Frozen):
    """Descriptive statistics over the gathered provider prices."""

    count: int = 0
    cheapest: Optional[ProviderPrice] = None
    most_expensive: Optional[ProviderPrice] = Field(default=None, alias="mostExpensive")
    mean: float = 0.0
    median: float = 0.0
    std_dev: float = Field(default=0.0, alias="stdDev")
    within_band_count: int = Field(default=0, alias="withinBandCount")
    excluded: List[str] = Field(default_factory=list)
