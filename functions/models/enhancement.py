"""Enhancement models for Gracemark.

An enhancement is an LLM estimate of benefit, termination and allowance
costs a provider's raw quote does not itemize. Field aliases follow the
camelCase keys returned by the enhancement prompt.
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from models.quote import Quote


class QuoteType(str, Enum):
    """Whether termination costs are part of the recurring price."""

    ALL_INCLUSIVE = "all-inclusive"
    STATUTORY_ONLY = "statutory-only"


class EnhancementStatus(str, Enum):
    """Lifecycle of an enhanced quote."""

    PENDING = "pending"
    ACTIVE = "active"
    FAILED = "failed"


class ProviderStatus(str, Enum):
    """Per-provider state driving reconciliation readiness."""

    INACTIVE = "inactive"
    LOADING_ENHANCED = "loading-enhanced"
    ACTIVE = "active"
    ENHANCEMENT_FAILED = "enhancement-failed"
    FAILED = "failed"


class _Aliased(BaseModel):
    class Config:
        populate_by_name = True
        use_enum_values = True


# =============================================================================
# ENHANCEMENT COMPONENTS
# =============================================================================


class TerminationComponent(_Aliased):
    """Severance, probation or notice-period provision."""

    monthly_amount: float = Field(default=0.0, alias="monthlyAmount")
    total_amount: float = Field(default=0.0, alias="totalAmount")
    explanation: str = ""
    confidence: float = Field(default=0.5, ge=0, le=1)
    is_already_included: bool = Field(default=False, alias="isAlreadyIncluded")


class SalaryEnhancement(_Aliased):
    """13th or 14th month salary."""

    monthly_amount: float = Field(default=0.0, alias="monthlyAmount")
    yearly_amount: float = Field(default=0.0, alias="yearlyAmount")
    explanation: str = ""
    confidence: float = Field(default=0.5, ge=0, le=1)
    is_already_included: bool = Field(default=False, alias="isAlreadyIncluded")


class VacationBonus(_Aliased):
    amount: float = 0.0
    frequency: str = "yearly"
    is_already_included: bool = Field(default=False, alias="isAlreadyIncluded")


class AllowanceComponent(_Aliased):
    monthly_amount: float = Field(default=0.0, alias="monthlyAmount")
    currency: Optional[str] = None
    is_mandatory: bool = Field(default=False, alias="isMandatory")
    is_already_included: bool = Field(default=False, alias="isAlreadyIncluded")


class Allowances(_Aliased):
    transportation: Optional[AllowanceComponent] = None
    remote_work: Optional[AllowanceComponent] = Field(default=None, alias="remoteWork")
    meal_vouchers: Optional[AllowanceComponent] = Field(default=None, alias="mealVouchers")


class MedicalExam(_Aliased):
    required: bool = False
    estimated_cost: float = Field(default=0.0, alias="estimatedCost")


class TerminationCosts(_Aliased):
    """Full termination cost if the contract ends; informational only."""

    total_termination_cost: float = Field(default=0.0, alias="totalTerminationCost")
    notice_period_cost: float = Field(default=0.0, alias="noticePeriodCost")
    severance_cost: float = Field(default=0.0, alias="severanceCost")


class Enhancements(_Aliased):
    """All add-on estimates for one provider."""

    severance_provision: Optional[TerminationComponent] = Field(default=None, alias="severanceProvision")
    probation_provision: Optional[TerminationComponent] = Field(default=None, alias="probationProvision")
    notice_period_cost: Optional[TerminationComponent] = Field(default=None, alias="noticePeriodCost")
    thirteenth_salary: Optional[SalaryEnhancement] = Field(default=None, alias="thirteenthSalary")
    fourteenth_salary: Optional[SalaryEnhancement] = Field(default=None, alias="fourteenthSalary")
    vacation_bonus: Optional[VacationBonus] = Field(default=None, alias="vacationBonus")
    allowances: Optional[Allowances] = None
    medical_exam: Optional[MedicalExam] = Field(default=None, alias="medicalExam")
    additional_contributions: Dict[str, float] = Field(default_factory=dict, alias="additionalContributions")
    termination_costs: Optional[TerminationCosts] = Field(default=None, alias="terminationCosts")


# =============================================================================
# FULL QUOTE AND ENHANCED QUOTE
# =============================================================================


class FullQuoteItem(_Aliased):
    key: str
    name: str
    monthly_amount: float = 0.0


class FullQuoteSubtotals(_Aliased):
    contributions: float = 0.0
    bonuses: float = 0.0
    allowances: float = 0.0
    termination: float = 0.0


class FullQuote(_Aliased):
    """LLM-estimated full item list with monthly amounts."""

    type: QuoteType = QuoteType.ALL_INCLUSIVE
    country: str = ""
    currency: str = ""
    base_salary_monthly: float = 0.0
    items: List[FullQuoteItem] = Field(default_factory=list)
    subtotals: FullQuoteSubtotals = Field(default_factory=FullQuoteSubtotals)
    total_monthly: float = 0.0


class MonthlyCostBreakdown(_Aliased):
    base_cost: float = Field(default=0.0, alias="baseCost")
    enhancements: float = 0.0
    total: float = 0.0


class EnhancedQuote(_Aliased):
    """Base quote plus estimated add-ons for one provider."""

    provider: str
    base_quote: Quote = Field(alias="baseQuote")
    quote_type: QuoteType = Field(default=QuoteType.ALL_INCLUSIVE, alias="quoteType")
    enhancements: Enhancements = Field(default_factory=Enhancements)
    full_quote: Optional[FullQuote] = Field(default=None, alias="fullQuote")
    monthly_cost_breakdown: Optional[MonthlyCostBreakdown] = Field(default=None, alias="monthlyCostBreakdown")
    total_enhancement: Optional[float] = Field(default=None, alias="totalEnhancement")
    overall_confidence: float = Field(default=0.5, ge=0, le=1, alias="overallConfidence")
    warnings: List[str] = Field(default_factory=list)
    base_currency: Optional[str] = Field(default=None, alias="baseCurrency")
    display_currency: Optional[str] = Field(default=None, alias="displayCurrency")
    status: EnhancementStatus = EnhancementStatus.PENDING

    @property
    def currency(self) -> str:
        return self.base_currency or self.base_quote.currency


class ProviderState(_Aliased):
    status: ProviderStatus = ProviderStatus.INACTIVE
    error: Optional[str] = None

    class Config:
        frozen = True
        use_enum_values = True
