"""Provider quote models for Gracemark.

Raw partner payloads are validated into a tagged union keyed by ``kind``
and normalized into a single immutable ``Quote`` shape.
"""

from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field


# =============================================================================
# ENUMS
# =============================================================================


class ProviderType(str, Enum):
    """Integrated EOR providers."""

    DEEL = "deel"
    REMOTE = "remote"
    RIVERMATE = "rivermate"
    OYSTER = "oyster"
    RIPPLING = "rippling"
    SKUAD = "skuad"
    VELOCITY = "velocity"
    PLAYROLL = "playroll"
    OMNIPRESENT = "omnipresent"


class CostFrequency(str, Enum):
    """Billing frequency of a quote cost row."""

    MONTHLY = "monthly"
    YEARLY = "yearly"
    ONE_TIME = "one_time"


# Amounts arrive as numbers or as display strings ("1,234.50", "€ 1.234,50")
MoneyValue = Optional[Union[float, str]]


# =============================================================================
# NORMALIZED QUOTE
# =============================================================================


class CostItem(BaseModel):
    """Single cost row of a normalized quote."""

    name: str = Field(..., description="Display name of the cost")
    amount: float = Field(default=0.0, description="Amount in quote currency")
    frequency: CostFrequency = Field(default=CostFrequency.MONTHLY)
    country: Optional[str] = None
    country_code: Optional[str] = None

    class Config:
        frozen = True
        use_enum_values = True


class Quote(BaseModel):
    """Provider quote in the common shape.

    Immutable once constructed; a fresh quote replaces it whenever the
    provider is queried again.
    """

    provider: ProviderType = Field(..., description="Provider that issued the quote")
    currency: str = Field(..., description="ISO 4217 currency code")
    country: str = Field(default="", description="Country name")
    country_code: Optional[str] = Field(default=None, description="ISO country code")
    salary: float = Field(default=0.0, description="Monthly gross salary")
    costs: List[CostItem] = Field(default_factory=list)
    total_costs: float = Field(default=0.0, description="Monthly total employer cost")
    employer_costs: float = Field(default=0.0, description="Monthly employer cost")
    platform_fee: float = Field(default=0.0, description="Provider platform/management fee")
    severance_accrual: float = Field(default=0.0, description="Severance accrual included in total")

    class Config:
        frozen = True
        use_enum_values = True

    @property
    def comparable_total(self) -> float:
        """Monthly total without the platform fee and severance accrual."""
        return max(0.0, self.total_costs - self.platform_fee - self.severance_accrual)


# =============================================================================
# RAW PROVIDER PAYLOADS
# =============================================================================


class RawCost(BaseModel):
    """Cost row as returned by display-style provider APIs."""

    name: str = ""
    amount: MoneyValue = None
    frequency: Optional[str] = None
    country: Optional[str] = None
    country_code: Optional[str] = None


class NamedAmount(BaseModel):
    """``{name, amount}`` pair used in breakdown arrays."""

    name: str = ""
    amount: MoneyValue = None


class DisplayQuoteFields(BaseModel):
    """Fields shared by providers returning a display-ready quote."""

    salary: MoneyValue = None
    currency: str = ""
    country: str = ""
    country_code: Optional[str] = None
    total_costs: MoneyValue = None
    employer_costs: MoneyValue = None
    costs: List[RawCost] = Field(default_factory=list)


class DeelPayload(DisplayQuoteFields):
    """Deel display quote; the severance field name is Deel's own spelling."""

    kind: Literal["deel"] = "deel"
    deel_fee: MoneyValue = None
    severance_accural: MoneyValue = None


class GenericPayload(DisplayQuoteFields):
    """Display quote shape shared by the remaining providers."""

    kind: Literal["rippling", "skuad", "velocity", "playroll", "omnipresent"]


class RemoteCurrency(BaseModel):
    code: str = ""


class RemoteCountry(BaseModel):
    name: str = ""
    code: Optional[str] = None


class RemoteCosts(BaseModel):
    currency: RemoteCurrency = Field(default_factory=RemoteCurrency)
    monthly_gross_salary: MoneyValue = None
    monthly_total: MoneyValue = None
    monthly_contributions_total: MoneyValue = None
    monthly_benefits_total: MoneyValue = None
    monthly_contributions_breakdown: List[NamedAmount] = Field(default_factory=list)
    extra_statutory_payments_breakdown: List[NamedAmount] = Field(default_factory=list)


class RemoteEmployment(BaseModel):
    country: Optional[RemoteCountry] = None
    employer_currency_costs: Optional[RemoteCosts] = None


class RemotePayload(BaseModel):
    """Remote cost calculator response."""

    kind: Literal["remote"] = "remote"
    employment: RemoteEmployment = Field(default_factory=RemoteEmployment)


class RivermatePayload(BaseModel):
    """Rivermate quote; ``total`` may be absent and is then derived."""

    kind: Literal["rivermate"] = "rivermate"
    salary: MoneyValue = None
    total: MoneyValue = None
    currency: str = ""
    country: str = ""
    country_code: Optional[str] = None
    tax_items: List[NamedAmount] = Field(default_factory=list, alias="taxItems")
    management_fee: MoneyValue = Field(default=None, alias="managementFee")
    accruals_provision: MoneyValue = Field(default=None, alias="accrualsProvision")

    class Config:
        populate_by_name = True


class OysterPayload(BaseModel):
    """Oyster quote with employer contributions."""

    kind: Literal["oyster"] = "oyster"
    salary: MoneyValue = None
    total: MoneyValue = None
    currency: str = ""
    country: str = ""
    country_code: Optional[str] = None
    contributions: List[NamedAmount] = Field(default_factory=list)


ProviderPayload = Annotated[
    Union[DeelPayload, RemotePayload, RivermatePayload, OysterPayload, GenericPayload],
    Field(discriminator="kind"),
]
