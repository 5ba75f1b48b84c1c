"""Mock provider quote fixtures for testing.

Raw partner payloads as returned by each provider, plus builders for
normalized and enhanced quotes.
"""

from typing import Any, Dict, List, Optional

from models.enhancement import (
    EnhancedQuote,
    EnhancementStatus,
    Enhancements,
    MonthlyCostBreakdown,
    QuoteType,
)
from models.quote import CostItem, Quote


# =============================================================================
# RAW PROVIDER PAYLOADS (Germany, EUR)
# =============================================================================

DEEL_PAYLOAD: Dict[str, Any] = {
    "salary": "5,000.00",
    "currency": "EUR",
    "country": "Germany",
    "country_code": "DE",
    "total_costs": "6,450.00",
    "employer_costs": "1,450.00",
    "deel_fee": "599",
    "severance_accural": "150",
    "costs": [
        {"name": "Pension Insurance", "amount": "465.00", "frequency": "monthly"},
        {"name": "Health Insurance", "amount": "4,860.00", "frequency": "yearly"},
        {"name": "Severance Accrual", "amount": "150.00", "frequency": "monthly"},
    ],
}

REMOTE_PAYLOAD: Dict[str, Any] = {
    "employment": {
        "country": {"name": "Germany", "code": "DEU"},
        "employer_currency_costs": {
            "currency": {"code": "EUR"},
            "monthly_gross_salary": 5000,
            "monthly_total": 6100,
            "monthly_contributions_total": 1050,
            "monthly_benefits_total": 50,
            "monthly_contributions_breakdown": [
                {"name": "Pension Insurance", "amount": 465},
                {"name": "Unemployment Insurance", "amount": 65},
            ],
            "extra_statutory_payments_breakdown": [
                {"name": "Christmas Bonus Accrual", "amount": 416.67},
            ],
        },
    },
}

RIVERMATE_PAYLOAD: Dict[str, Any] = {
    "salary": 5000,
    "currency": "EUR",
    "country": "Germany",
    "country_code": "DE",
    "taxItems": [
        {"name": "Pension Insurance", "amount": 465},
        {"name": "Health Insurance", "amount": 405},
    ],
    "managementFee": 450,
    "accrualsProvision": 200,
}

OYSTER_PAYLOAD: Dict[str, Any] = {
    "salary": "5000",
    "total": "6020",
    "currency": "EUR",
    "country": "Germany",
    "country_code": "DE",
    "contributions": [
        {"name": "Employer Pension", "amount": "465"},
        {"name": "Employer Health", "amount": "555"},
    ],
}

RIPPLING_PAYLOAD: Dict[str, Any] = {
    "salary": 5000,
    "currency": "EUR",
    "country": "Germany",
    "country_code": "DE",
    "total_costs": 6200,
    "costs": [
        {"name": "Employer Taxes", "amount": 1200, "frequency": "monthly"},
    ],
}


# =============================================================================
# ENHANCEMENT PAYLOADS
# =============================================================================

GERMANY_ENHANCEMENT_RESPONSE: Dict[str, Any] = {
    "enhancements": {
        "severanceProvision": {
            "monthlyAmount": 0,
            "totalAmount": 2400,
            "explanation": "Half a monthly salary per year of service",
            "confidence": 0.7,
        },
        "noticePeriodCost": {
            "monthlyAmount": 100,
            "explanation": "Four weeks notice",
            "confidence": 0.6,
        },
        "thirteenthSalary": {
            "monthlyAmount": 0,
            "yearlyAmount": 5000,
            "explanation": "Customary but not statutory",
            "confidence": 0.5,
        },
        "allowances": {
            "mealVouchers": {"monthlyAmount": 120, "isMandatory": False},
        },
    },
    "fullQuote": {
        "base_salary_monthly": 5000,
        "items": [
            {"key": "pension_insurance", "name": "Pension Insurance", "monthly_amount": 465},
        ],
        "total_monthly": 6650,
    },
    "overallConfidence": 0.65,
    "warnings": ["Collective agreement not checked"],
}


# =============================================================================
# BUILDERS
# =============================================================================


def make_quote(
    provider: str = "deel",
    total: float = 1000.0,
    currency: str = "EUR",
    salary: Optional[float] = None,
    costs: Optional[List[Dict[str, Any]]] = None,
    platform_fee: float = 0.0,
    severance_accrual: float = 0.0,
    country: str = "Germany",
) -> Quote:
    """Normalized quote with optional ``{name, amount}`` cost rows."""
    return Quote(
        provider=provider,
        currency=currency,
        country=country,
        country_code="DE",
        salary=salary if salary is not None else round(total * 0.8, 2),
        costs=[CostItem(name=c["name"], amount=c["amount"], country=country) for c in costs or []],
        total_costs=total,
        employer_costs=total,
        platform_fee=platform_fee,
        severance_accrual=severance_accrual,
    )


def make_enhanced_quote(
    provider: str = "deel",
    total: float = 1000.0,
    currency: str = "EUR",
    enhancements: Optional[Dict[str, Any]] = None,
    breakdown_total: Optional[float] = None,
    quote_type: QuoteType = QuoteType.ALL_INCLUSIVE,
    **quote_kwargs: Any,
) -> EnhancedQuote:
    """Active enhanced quote; ``breakdown_total`` sets the monthly breakdown."""
    quote = make_quote(provider=provider, total=total, currency=currency, **quote_kwargs)
    breakdown = None
    if breakdown_total is not None:
        breakdown = MonthlyCostBreakdown(
            base_cost=quote.comparable_total,
            enhancements=round(breakdown_total - quote.comparable_total, 2),
            total=breakdown_total,
        )
    return EnhancedQuote(
        provider=provider,
        base_quote=quote,
        quote_type=quote_type,
        enhancements=Enhancements.model_validate(enhancements or {}),
        monthly_cost_breakdown=breakdown,
        base_currency=currency,
        display_currency=currency,
        status=EnhancementStatus.ACTIVE,
    )
