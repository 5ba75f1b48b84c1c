"""Acid-test models for Gracemark.

Bucketed monthly cost composition of the selected provider and the
profitability of a client bill rate against it.
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class CostBucket(str, Enum):
    """Acid-test cost categories."""

    BASE_SALARY = "baseSalary"
    STATUTORY_MANDATORY = "statutoryMandatory"
    ALLOWANCES_BENEFITS = "allowancesBenefits"
    TERMINATION_COSTS = "terminationCosts"
    ONE_TIME_FEES = "oneTimeFees"


class ProfitStatus(str, Enum):
    PASS = "pass"
    WARNING = "warning"
    FAIL = "fail"


class CostItemInput(BaseModel):
    """Flattened cost item sent to categorization."""

    key: str
    name: str
    monthly_amount: float = 0.0


class AcidTestCostData(BaseModel):
    """Categorized buckets, each mapping item key to monthly amount.

    The bucket sum approximates the enhanced quote total but is not
    required to match it.
    """

    base_salary: Dict[str, float] = Field(default_factory=dict, alias="baseSalary")
    statutory_mandatory: Dict[str, float] = Field(default_factory=dict, alias="statutoryMandatory")
    allowances_benefits: Dict[str, float] = Field(default_factory=dict, alias="allowancesBenefits")
    termination_costs: Dict[str, float] = Field(default_factory=dict, alias="terminationCosts")
    one_time_fees: Dict[str, float] = Field(default_factory=dict, alias="oneTimeFees")

    class Config:
        populate_by_name = True

    @property
    def base_salary_monthly(self) -> float:
        return sum(self.base_salary.values())

    @property
    def statutory_monthly(self) -> float:
        return sum(self.statutory_mandatory.values())

    @property
    def allowances_monthly(self) -> float:
        return sum(self.allowances_benefits.values())

    @property
    def termination_monthly(self) -> float:
        return sum(self.termination_costs.values())

    @property
    def one_time_total(self) -> float:
        return sum(self.one_time_fees.values())

    def bucket(self, name: CostBucket) -> Dict[str, float]:
        return {
            CostBucket.BASE_SALARY: self.base_salary,
            CostBucket.STATUTORY_MANDATORY: self.statutory_mandatory,
            CostBucket.ALLOWANCES_BENEFITS: self.allowances_benefits,
            CostBucket.TERMINATION_COSTS: self.termination_costs,
            CostBucket.ONE_TIME_FEES: self.one_time_fees,
        }[name]

    def is_empty(self) -> bool:
        return not any(self.bucket(b) for b in CostBucket)


class ProfitabilityResult(BaseModel):
    """Arithmetic outcome of one bill rate in the quote currency."""

    recurring_monthly: float = Field(alias="recurringMonthly")
    one_time_total: float = Field(alias="oneTimeTotal")
    target_fee_monthly: float = Field(alias="targetFeeMonthly")
    expected_bill_rate: float = Field(alias="expectedBillRate")
    bill_rate: float = Field(alias="billRate")
    actual_fee_monthly: float = Field(alias="actualFeeMonthly")
    fee_percentage: float = Field(alias="feePercentage")
    months: int
    total_costs: float = Field(alias="totalCosts")
    revenue: float
    profit: float

    class Config:
        populate_by_name = True


class AcidTestResult(BaseModel):
    """Profitability plus USD mirrors and the threshold verdict."""

    provider: str
    currency: str
    is_all_inclusive: bool = Field(alias="isAllInclusive")
    cost_data: AcidTestCostData = Field(alias="costData")
    profitability: ProfitabilityResult
    usd: Dict[str, float] = Field(
        default_factory=dict,
        description="USD mirrors of the monetary fields that converted"
    )
    profit_usd: Optional[float] = Field(default=None, alias="profitUSD")
    min_profit_usd: float = Field(alias="minProfitUSD")
    status: ProfitStatus
    categorization_source: str = Field(default="llm", alias="categorizationSource")
    errors: List[str] = Field(default_factory=list)

    class Config:
        populate_by_name = True
        use_enum_values = True

    @property
    def passed(self) -> bool:
        return self.status == ProfitStatus.PASS
