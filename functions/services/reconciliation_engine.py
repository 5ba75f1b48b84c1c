"""Provider reconciliation engine for Gracemark.

Runs the four strictly sequential phases over the enhanced provider
totals and recommends one provider:

    gathering  -> collect every provider with a positive, finite price
    analyzing  -> pick the Deel baseline and flag prices inside the band
    selecting  -> choose the winner according to the SelectionPolicy
    complete   -> record the FinalChoice with its EnhancedQuote

Every phase returns a new ``ReconciliationState``. Business failures (no
prices, no baseline, nothing in band) end the run with ``failure_reason``
set and no final choice; entering a phase out of order raises
``ReconciliationError``.
"""

import asyncio
import math
from typing import Dict, Mapping, Optional, Sequence, Tuple

import numpy as np
import structlog

from config.errors import GracemarkError, ReconciliationError, ValidationError
from config.settings import settings
from models.enhancement import EnhancedQuote
from models.reconciliation import (
    PHASE_ORDER,
    FinalChoice,
    PriceBand,
    ProviderPrice,
    ReconciliationPhase,
    ReconciliationState,
    ReconciliationSummary,
    SelectionPolicy,
    VarianceEntry,
)
from services.currency_service import CurrencyConverter, get_currency_converter
from services.enhancement_aggregator import enhanced_total
from utils.recon_logger import (
    log_final_choice,
    log_reconciliation_failed,
    log_reconciliation_phase,
    log_reconciliation_start,
)

logger = structlog.get_logger()

NO_PRICES = "No providers with a usable price"
NO_BASELINE = "Baseline provider '{provider}' has no usable price"
NO_CANDIDATES = "No providers priced within ±{percent:g}% of the baseline"


def _usable_price(value: Optional[float]) -> bool:
    return (
        value is not None
        and not isinstance(value, bool)
        and isinstance(value, (int, float))
        and math.isfinite(value)
        and value > 0
    )


def resolve_policy(policy: Optional[str]) -> SelectionPolicy:
    """Policy from a request value or settings, rejecting unknown names."""
    value = policy or settings.reconciliation_policy
    try:
        return SelectionPolicy(value)
    except ValueError as e:
        allowed = ", ".join(p.value for p in SelectionPolicy)
        raise ValidationError(
            f"Unknown selection policy '{value}'. Expected one of: {allowed}",
            field="policy"
        ) from e


class ReconciliationEngine:
    """Phase-gated provider selection."""

    def __init__(
        self,
        policy: Optional[SelectionPolicy] = None,
        tolerance: Optional[float] = None,
        baseline_provider: Optional[str] = None
    ):
        self.policy = policy or resolve_policy(None)
        self.tolerance = settings.reconciliation_tolerance if tolerance is None else tolerance
        self.baseline_provider = baseline_provider or settings.baseline_provider

    # -------------------------------------------------------------------------
    # Phase gating
    # -------------------------------------------------------------------------

    def start(self, currency: str = "USD") -> ReconciliationState:
        return ReconciliationState(
            phase=ReconciliationPhase.GATHERING,
            policy=self.policy,
            tolerance=self.tolerance,
            currency=currency,
        )

    @staticmethod
    def _enter(state: ReconciliationState, phase: ReconciliationPhase) -> None:
        if state.failed:
            raise ReconciliationError(
                f"Cannot enter {phase.value}: run already failed ({state.failure_reason})",
                phase=phase.value
            )
        if phase in state.completed_phases:
            raise ReconciliationError(f"Phase {phase.value} already complete", phase=phase.value)
        index = PHASE_ORDER.index(phase)
        if index > 0 and PHASE_ORDER[index - 1] not in state.completed_phases:
            raise ReconciliationError(
                f"Cannot enter {phase.value} before {PHASE_ORDER[index - 1].value} is complete",
                phase=phase.value
            )

    @staticmethod
    def _complete(state: ReconciliationState, phase: ReconciliationPhase, **updates) -> ReconciliationState:
        index = PHASE_ORDER.index(phase)
        next_phase = PHASE_ORDER[min(index + 1, len(PHASE_ORDER) - 1)]
        return state.model_copy(update={
            **updates,
            "completed_phases": state.completed_phases + (phase,),
            "phase": next_phase,
        })

    @staticmethod
    def _fail(state: ReconciliationState, phase: ReconciliationPhase, reason: str, **updates) -> ReconciliationState:
        log_reconciliation_failed(phase.value, reason)
        return state.model_copy(update={**updates, "phase": phase, "failure_reason": reason})

    # -------------------------------------------------------------------------
    # Phases
    # -------------------------------------------------------------------------

    def gather(
        self,
        state: ReconciliationState,
        totals: Mapping[str, Optional[float]]
    ) -> ReconciliationState:
        """Collect providers whose enhanced total is positive and finite."""
        self._enter(state, ReconciliationPhase.GATHERING)

        prices = tuple(
            ProviderPrice(provider=provider, price=float(price), currency=state.currency)
            for provider, price in totals.items()
            if _usable_price(price)
        )
        excluded = [provider for provider, price in totals.items() if not _usable_price(price)]
        if excluded:
            logger.info("reconciliation_providers_excluded", providers=excluded)

        if not prices:
            return self._fail(state, ReconciliationPhase.GATHERING, NO_PRICES)

        log_reconciliation_phase("gathering", f"{len(prices)} providers")
        return self._complete(state, ReconciliationPhase.GATHERING, prices=prices)

    def analyze(self, state: ReconciliationState) -> ReconciliationState:
        """Locate the baseline and flag each price against the band."""
        self._enter(state, ReconciliationPhase.ANALYZING)

        baseline = next((p for p in state.prices if p.provider == self.baseline_provider), None)
        if baseline is None:
            return self._fail(
                state,
                ReconciliationPhase.ANALYZING,
                NO_BASELINE.format(provider=self.baseline_provider),
            )

        band = PriceBand(
            baseline=baseline.price,
            lower=round(baseline.price * (1 - state.tolerance), 6),
            upper=round(baseline.price * (1 + state.tolerance), 6),
        )
        variance = tuple(
            VarianceEntry(
                provider=p.provider,
                price=p.price,
                in_range=band.contains(p.price),
                delta=round(p.price - baseline.price, 2),
                delta_percent=round((p.price - baseline.price) / baseline.price * 100, 4),
            )
            for p in state.prices
        )

        in_range = sum(1 for v in variance if v.in_range)
        log_reconciliation_phase("analyzing", f"{in_range}/{len(variance)} in band")
        return self._complete(
            state,
            ReconciliationPhase.ANALYZING,
            baseline=baseline,
            band=band,
            variance=variance,
        )

    def select(self, state: ReconciliationState) -> ReconciliationState:
        """Pick the winner according to the run's policy."""
        self._enter(state, ReconciliationPhase.SELECTING)

        prices = {p.provider: p for p in state.prices}
        candidates = [v for v in state.variance if v.in_range]

        winner: Optional[VarianceEntry] = None
        if state.policy == SelectionPolicy.HIGHEST_IN_BAND:
            if candidates:
                winner = max(candidates, key=lambda v: v.price)
        else:
            if candidates:
                winner = min(candidates, key=lambda v: v.price)
            elif state.variance:
                winner = min(state.variance, key=lambda v: abs(v.delta))

        if winner is None:
            return self._fail(
                state,
                ReconciliationPhase.SELECTING,
                NO_CANDIDATES.format(percent=state.tolerance * 100),
            )

        log_reconciliation_phase("selecting", f"{winner.provider} ({state.policy.value})")
        return self._complete(state, ReconciliationPhase.SELECTING, selected=prices[winner.provider])

    def finalize(
        self,
        state: ReconciliationState,
        enhanced_quotes: Optional[Mapping[str, EnhancedQuote]] = None
    ) -> ReconciliationState:
        """Record the final choice together with its enhanced quote."""
        self._enter(state, ReconciliationPhase.COMPLETE)

        selected = state.selected
        final_choice = FinalChoice(
            provider=selected.provider,
            price=selected.price,
            currency=selected.currency,
            enhanced_quote=(enhanced_quotes or {}).get(selected.provider),
        )
        log_final_choice(
            selected.provider,
            selected.price,
            selected.currency,
            state.baseline.price if state.baseline else None,
        )
        return self._complete(state, ReconciliationPhase.COMPLETE, final_choice=final_choice)

    def run(
        self,
        totals: Mapping[str, Optional[float]],
        enhanced_quotes: Optional[Mapping[str, EnhancedQuote]] = None,
        currency: str = "USD"
    ) -> ReconciliationState:
        """All four phases; stops at the first failed phase."""
        log_reconciliation_start(totals.keys(), self.policy.value, currency)
        state = self.gather(self.start(currency), totals)
        if not state.failed:
            state = self.analyze(state)
        if not state.failed:
            state = self.select(state)
        if not state.failed:
            state = self.finalize(state, enhanced_quotes)
        return state


def summarize(state: ReconciliationState, excluded: Sequence[str] = ()) -> ReconciliationSummary:
    """Descriptive statistics over the gathered prices."""
    if not state.prices:
        return ReconciliationSummary(excluded=list(excluded))

    values = np.array([p.price for p in state.prices], dtype=float)
    ordered = sorted(state.prices, key=lambda p: p.price)
    within = sum(1 for v in state.variance if v.in_range)

    return ReconciliationSummary(
        count=len(values),
        cheapest=ordered[0],
        most_expensive=ordered[-1],
        mean=round(float(np.mean(values)), 2),
        median=round(float(np.median(values)), 2),
        std_dev=round(float(np.std(values, ddof=1)), 2) if len(values) > 1 else 0.0,
        within_band_count=within,
        excluded=list(excluded),
    )


class ReconciliationService:
    """Prices enhanced quotes in one currency, then runs the engine."""

    def __init__(self, converter: Optional[CurrencyConverter] = None):
        self._converter = converter

    @property
    def converter(self) -> CurrencyConverter:
        if self._converter is None:
            self._converter = get_currency_converter()
        return self._converter

    async def _price_in(
        self,
        provider: str,
        enhanced: EnhancedQuote,
        target_currency: str,
        contract_months: Optional[float]
    ) -> Tuple[str, Optional[float], Optional[str]]:
        total = enhanced_total(enhanced, contract_months)
        if not _usable_price(total):
            return provider, None, "no usable enhanced total"
        if enhanced.currency == target_currency:
            return provider, total, None
        try:
            converted = await self.converter.convert_amount(total, enhanced.currency, target_currency)
        except GracemarkError as e:
            logger.warning(
                "reconciliation_price_conversion_failed",
                provider=provider,
                currency=enhanced.currency,
                error=e.message,
            )
            return provider, None, e.message
        return provider, converted, None

    async def reconcile(
        self,
        enhanced_quotes: Mapping[str, EnhancedQuote],
        target_currency: str = "USD",
        policy: Optional[str] = None,
        tolerance: Optional[float] = None,
        contract_months: Optional[float] = None
    ) -> Tuple[ReconciliationState, ReconciliationSummary, Dict[str, str]]:
        """Normalize every provider price to ``target_currency`` and reconcile.

        Returns:
            Tuple of (final state, summary, exclusion reasons by provider).
        """
        engine = ReconciliationEngine(policy=resolve_policy(policy), tolerance=tolerance)
        priced = await asyncio.gather(*(
            self._price_in(provider, enhanced, target_currency, contract_months)
            for provider, enhanced in enhanced_quotes.items()
        ))

        totals = {provider: price for provider, price, _ in priced}
        reasons = {provider: reason for provider, _, reason in priced if reason}

        state = engine.run(totals, enhanced_quotes, currency=target_currency)
        return state, summarize(state, list(reasons)), reasons
