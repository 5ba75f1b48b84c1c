"""Enhancement service for Gracemark.

Asks the LLM for the benefit, termination and allowance costs a
provider's quote leaves out, and tracks each provider's enhancement
state so reconciliation only starts once every provider has settled.
"""

import json
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Iterable, Mapping, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from config.errors import ErrorCode, GracemarkError, ValidationError
from config.settings import settings
from models.enhancement import (
    EnhancedQuote,
    Enhancements,
    EnhancementStatus,
    FullQuote,
    MonthlyCostBreakdown,
    ProviderState,
    ProviderStatus,
    QuoteType,
)
from models.quote import Quote
from services.enhancement_aggregator import compute_enhancement_addons
from services.llm_service import LLMService

logger = structlog.get_logger()

ENHANCEMENT_SYSTEM_PROMPT = """You are an Employer-of-Record cost analyst.

Given a provider quote for one employee, estimate the employer costs the
quote does NOT already itemize, using the country's labour law.

Return an object with:
- "enhancements": {
    "severanceProvision", "probationProvision", "noticePeriodCost":
        {"monthlyAmount", "totalAmount", "explanation", "confidence", "isAlreadyIncluded"},
    "thirteenthSalary", "fourteenthSalary":
        {"monthlyAmount", "yearlyAmount", "explanation", "confidence", "isAlreadyIncluded"},
    "vacationBonus": {"amount", "frequency"},
    "allowances": {"transportation", "remoteWork", "mealVouchers":
        {"monthlyAmount", "isMandatory"}},
    "medicalExam": {"required", "estimatedCost"},
    "additionalContributions": {"<name>": <monthly amount>},
    "terminationCosts": {"totalTerminationCost", "noticePeriodCost", "severanceCost"}
  }
- "fullQuote": {"base_salary_monthly", "items": [{"key", "name", "monthly_amount"}], "total_monthly"}
- "overallConfidence": number between 0 and 1
- "warnings": list of strings

Amounts are in the quote currency. Set "isAlreadyIncluded" to true when
the quote already lists the item. Omit items that do not apply."""


# =============================================================================
# PROVIDER STATE REGISTRY
# =============================================================================


class ProviderStateRegistry:
    """Per-provider enhancement state, published as immutable snapshots."""

    def __init__(self, baseline_provider: Optional[str] = None):
        self.baseline_provider = baseline_provider or settings.baseline_provider
        self._states: Mapping[str, ProviderState] = MappingProxyType({})

    @property
    def states(self) -> Mapping[str, ProviderState]:
        return self._states

    def get(self, provider: str) -> ProviderState:
        return self._states.get(provider, ProviderState())

    def _set(self, provider: str, status: ProviderStatus, error: Optional[str] = None) -> Mapping[str, ProviderState]:
        previous = self.get(provider).status
        self._states = MappingProxyType({
            **self._states,
            provider: ProviderState(status=status, error=error),
        })
        logger.debug("provider_state_changed", provider=provider, previous=previous, status=status.value)
        return self._states

    def mark_loading(self, provider: str) -> Mapping[str, ProviderState]:
        return self._set(provider, ProviderStatus.LOADING_ENHANCED)

    def mark_active(self, provider: str) -> Mapping[str, ProviderState]:
        return self._set(provider, ProviderStatus.ACTIVE)

    def mark_enhancement_failed(self, provider: str, error: str) -> Mapping[str, ProviderState]:
        return self._set(provider, ProviderStatus.ENHANCEMENT_FAILED, error)

    def mark_failed(self, provider: str, error: str) -> Mapping[str, ProviderState]:
        return self._set(provider, ProviderStatus.FAILED, error)

    def reset(self, providers: Optional[Iterable[str]] = None) -> Mapping[str, ProviderState]:
        """Reset the given providers, or all of them, to inactive."""
        if providers is None:
            self._states = MappingProxyType({})
        else:
            remaining = {k: v for k, v in self._states.items() if k not in set(providers)}
            self._states = MappingProxyType(remaining)
        return self._states

    def ready_for_reconciliation(self) -> bool:
        """No provider still loading and the baseline provider active."""
        if any(s.status == ProviderStatus.LOADING_ENHANCED.value for s in self._states.values()):
            return False
        return self.get(self.baseline_provider).status == ProviderStatus.ACTIVE.value


# =============================================================================
# ENHANCEMENT SERVICE
# =============================================================================


def _quote_summary(quote: Quote, quote_type: QuoteType, contract_months: int) -> str:
    return json.dumps({
        "provider": quote.provider,
        "country": quote.country,
        "country_code": quote.country_code,
        "currency": quote.currency,
        "quote_type": quote_type.value,
        "contract_months": contract_months,
        "monthly_salary": quote.salary,
        "monthly_total": quote.total_costs,
        "costs": [{"name": c.name, "amount": c.amount, "frequency": c.frequency} for c in quote.costs],
    }, indent=2)


def _confidence(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.5
    return min(1.0, max(0.0, float(value)))


def build_enhanced_quote(
    quote: Quote,
    payload: Dict[str, Any],
    quote_type: QuoteType = QuoteType.ALL_INCLUSIVE,
    contract_months: Optional[int] = None
) -> EnhancedQuote:
    """Assemble an active EnhancedQuote from an enhancement payload.

    Raises:
        GracemarkError: If the payload does not match the enhancement shape.
    """
    try:
        enhancements = Enhancements.model_validate(payload.get("enhancements") or {})
        full_quote = None
        if payload.get("fullQuote"):
            full_quote = FullQuote.model_validate({
                "type": quote_type.value,
                "country": quote.country,
                "currency": quote.currency,
                **payload["fullQuote"],
            })
    except PydanticValidationError as e:
        raise GracemarkError(
            code=ErrorCode.ENHANCEMENT_FAILED,
            message="Enhancement payload did not match the expected shape",
            details={"provider": quote.provider, "errors": e.error_count()}
        ) from e

    enhanced = EnhancedQuote(
        provider=quote.provider,
        base_quote=quote,
        quote_type=quote_type,
        enhancements=enhancements,
        full_quote=full_quote,
        overall_confidence=_confidence(payload.get("overallConfidence")),
        warnings=[str(w) for w in payload.get("warnings") or []],
        base_currency=quote.currency,
        display_currency=quote.currency,
        status=EnhancementStatus.ACTIVE,
    )

    addons = compute_enhancement_addons(enhanced, contract_months)
    base = quote.comparable_total
    return enhanced.model_copy(update={
        "total_enhancement": addons,
        "monthly_cost_breakdown": MonthlyCostBreakdown(
            base_cost=base,
            enhancements=addons,
            total=round(base + addons, 2),
        ),
    })


class EnhancementService:
    """LLM-backed quote enhancement."""

    def __init__(self, llm: Optional[LLMService] = None):
        self._llm = llm

    @property
    def llm(self) -> LLMService:
        if self._llm is None:
            self._llm = LLMService()
        return self._llm

    async def enhance(
        self,
        quote: Quote,
        quote_type: QuoteType = QuoteType.ALL_INCLUSIVE,
        contract_months: Optional[int] = None
    ) -> EnhancedQuote:
        """Estimate add-ons for a quote.

        Args:
            quote: Normalized provider quote.
            quote_type: All-inclusive or statutory-only pricing.
            contract_months: Duration used to spread yearly amounts.

        Returns:
            Active EnhancedQuote with its monthly cost breakdown.

        Raises:
            GracemarkError: If the LLM call fails or returns an unusable payload.
        """
        months = contract_months or settings.default_contract_months
        payload = await self.llm.generate_json(
            ENHANCEMENT_SYSTEM_PROMPT,
            _quote_summary(quote, quote_type, months),
            purpose="enhance_quote",
        )
        enhanced = build_enhanced_quote(quote, payload, quote_type, months)
        logger.info(
            "quote_enhanced",
            provider=quote.provider,
            country=quote.country,
            total_enhancement=enhanced.total_enhancement,
            confidence=enhanced.overall_confidence,
        )
        return enhanced


async def enhance_provider(
    registry: ProviderStateRegistry,
    provider: str,
    fetch: Callable[[], Awaitable[EnhancedQuote]]
) -> Optional[EnhancedQuote]:
    """Run an enhancement fetch inside the provider's state transitions.

    ``loading-enhanced`` while running, then ``active``. A ``ValidationError``
    means the base quote itself is unusable and marks the provider
    ``failed``; any other ``GracemarkError`` marks it ``enhancement-failed``.
    Failures are recorded, not raised.
    """
    registry.mark_loading(provider)
    try:
        enhanced = await fetch()
    except ValidationError as e:
        registry.mark_failed(provider, e.message)
        logger.warning("provider_quote_failed", provider=provider, error=e.message)
        return None
    except GracemarkError as e:
        registry.mark_enhancement_failed(provider, e.message)
        logger.warning("provider_enhancement_failed", provider=provider, error=e.message)
        return None
    registry.mark_active(provider)
    return enhanced
