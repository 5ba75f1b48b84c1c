"""Cost categorization for the Gracemark acid test.

Sorts a provider's flattened monthly cost items into the five acid-test
buckets. The LLM does the categorization; any failure there falls back
to a deterministic keyword classifier.
"""

import json
import math
from typing import Any, Dict, List, Optional, Sequence, Tuple

import structlog

from config.errors import ErrorCode, GracemarkError
from models.acid_test import AcidTestCostData, CostBucket, CostItemInput
from models.enhancement import EnhancedQuote
from services.enhancement_aggregator import compute_extra_rows
from services.llm_service import LLMService
from services.quote_normalizer import breakdown_key

logger = structlog.get_logger()

BASE_SALARY_KEY = "base_salary"

CATEGORIZATION_SYSTEM_PROMPT = """You are an expert EOR cost categorization specialist.

TASK: Categorize cost items into 5 business categories for assignment reconciliation.

CATEGORIES:
1. baseSalary: Base salary and gross salary components (NOT bonuses or statutory extras)
2. statutoryMandatory: Legally required employer contributions, taxes, social security, pension, mandatory insurance
3. allowancesBenefits: Optional allowances such as meal vouchers, transportation, remote work stipends, health benefits
4. terminationCosts: Notice period costs, severance payments, termination-related provisions
5. oneTimeFees: One-time setup costs, background checks, medical exams, onboarding fees

RULES:
- 13th and 14th salary are statutoryMandatory
- Vacation bonus is statutoryMandatory if legally required in the country, otherwise allowancesBenefits
- Each cost item goes into exactly ONE category
- Use the original item keys as keys inside each category object
- Values are the monthly amounts

Return {"baseSalary": {}, "statutoryMandatory": {}, "allowancesBenefits": {}, "terminationCosts": {}, "oneTimeFees": {}}"""

# Ordered; the first matching rule wins
FALLBACK_RULES: Tuple[Tuple[Tuple[str, ...], CostBucket], ...] = (
    ((BASE_SALARY_KEY,), CostBucket.BASE_SALARY),
    (("severance", "probation"), CostBucket.TERMINATION_COSTS),
    (("setup", "onboarding"), CostBucket.ONE_TIME_FEES),
    (("allowance", "meal", "transport"), CostBucket.ALLOWANCES_BENEFITS),
)


def empty_cost_data() -> AcidTestCostData:
    return AcidTestCostData()


def _add_item(items: Dict[str, CostItemInput], key: str, name: str, amount: Optional[float]) -> None:
    if not key or key in items:
        return
    if amount is None or not math.isfinite(amount) or amount <= 0:
        return
    items[key] = CostItemInput(key=key, name=name, monthly_amount=round(amount, 2))


def flatten_cost_items(
    enhanced: EnhancedQuote,
    contract_months: Optional[float] = None
) -> List[CostItemInput]:
    """Flatten base salary, quote rows, estimated items and extras.

    Items are de-duplicated by key and only positive amounts are kept.
    """
    quote = enhanced.base_quote
    items: Dict[str, CostItemInput] = {}

    base_salary = quote.salary
    if enhanced.full_quote is not None and enhanced.full_quote.base_salary_monthly > 0:
        base_salary = enhanced.full_quote.base_salary_monthly
    _add_item(items, BASE_SALARY_KEY, "Base Salary", base_salary)

    for cost in quote.costs:
        _add_item(items, breakdown_key(cost.name), cost.name, cost.amount)

    if enhanced.full_quote is not None:
        for item in enhanced.full_quote.items:
            _add_item(items, item.key, item.name, item.monthly_amount)

    for extra in compute_extra_rows(quote, enhanced.enhancements, contract_months):
        _add_item(items, breakdown_key(extra.name), extra.name, extra.amount)

    return list(items.values())


def categorize_by_keywords(items: Sequence[CostItemInput]) -> AcidTestCostData:
    """Deterministic fallback: substring match on item key or name."""
    buckets: Dict[CostBucket, Dict[str, float]] = {bucket: {} for bucket in CostBucket}
    for item in items:
        haystack = f"{item.key} {item.name}".lower()
        target = CostBucket.STATUTORY_MANDATORY
        for keywords, bucket in FALLBACK_RULES:
            if any(keyword in haystack for keyword in keywords):
                target = bucket
                break
        buckets[target][item.key] = item.monthly_amount
    return AcidTestCostData(**{bucket.value: values for bucket, values in buckets.items()})


def _coerce_bucket(raw: Any) -> Dict[str, float]:
    if not isinstance(raw, dict):
        return {}
    bucket = {}
    for key, value in raw.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            continue
        bucket[str(key)] = float(value)
    return bucket


def parse_categorization(payload: Dict[str, Any]) -> AcidTestCostData:
    """Validate the LLM reply; at least one bucket key must be present.

    Raises:
        ValueError: If no bucket key is present.
    """
    if not any(bucket.value in payload for bucket in CostBucket):
        raise ValueError("Invalid response structure")
    return AcidTestCostData(**{
        bucket.value: _coerce_bucket(payload.get(bucket.value)) for bucket in CostBucket
    })


class CostCategorizer:
    """LLM-backed categorization with a keyword fallback."""

    def __init__(self, llm: Optional[LLMService] = None):
        self._llm = llm

    @property
    def llm(self) -> LLMService:
        if self._llm is None:
            self._llm = LLMService()
        return self._llm

    async def categorize_with_llm(
        self,
        provider: str,
        country: str,
        currency: str,
        items: Sequence[CostItemInput]
    ) -> AcidTestCostData:
        """Categorize via the LLM only; raises on any failure.

        Raises:
            GracemarkError: If the call fails or the reply is malformed.
        """
        if not items:
            return empty_cost_data()

        user_message = "\n".join([
            "COST CATEGORIZATION REQUEST",
            f"Provider: {provider}",
            f"Country: {country}",
            f"Currency: {currency}",
            "",
            "COST ITEMS TO CATEGORIZE:",
            json.dumps([item.model_dump() for item in items], indent=2),
        ])
        payload = await self.llm.generate_json(
            CATEGORIZATION_SYSTEM_PROMPT,
            user_message,
            purpose="categorize_costs",
        )
        try:
            result = parse_categorization(payload)
        except ValueError as e:
            raise GracemarkError(
                code=ErrorCode.LLM_ERROR,
                message=f"Cost categorization failed: {e}",
                details={"provider": provider}
            ) from e

        logger.info(
            "costs_categorized",
            provider=provider,
            country=country,
            item_count=len(items),
            source="llm",
        )
        return result

    async def categorize(
        self,
        provider: str,
        country: str,
        currency: str,
        items: Sequence[CostItemInput]
    ) -> Tuple[AcidTestCostData, str]:
        """Categorize items, falling back to keywords on LLM failure.

        Returns:
            Tuple of (cost data, source) where source is "llm",
            "fallback" or "empty".
        """
        if not items:
            return empty_cost_data(), "empty"
        try:
            return await self.categorize_with_llm(provider, country, currency, items), "llm"
        except GracemarkError as e:
            logger.warning(
                "cost_categorization_fallback",
                provider=provider,
                error=e.message,
                item_count=len(items),
            )
            return categorize_by_keywords(items), "fallback"
