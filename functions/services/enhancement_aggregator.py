"""Enhancement aggregator for Gracemark.

Turns an ``Enhancements`` estimate into monthly "extra" cost rows and
merges them into a provider's base quote. A row is only added when no
existing cost name matches one of its guard keywords, so items the
provider already itemizes are never counted twice.
"""

import math
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

import structlog

from config.settings import settings
from models.enhancement import EnhancedQuote, Enhancements, SalaryEnhancement, TerminationComponent
from models.quote import CostItem, CostFrequency, ProviderType, Quote

logger = structlog.get_logger()

TERMINATION_GUARDS = ("termination", "severance", "notice", "provision", "accrual")
THIRTEENTH_GUARDS = ("13th", "thirteenth", "aguinaldo")
FOURTEENTH_GUARDS = ("14th", "fourteenth")
MEAL_GUARDS = ("meal", "voucher", "ticket", "food")
TRANSPORT_GUARDS = ("transport", "commute", "bus", "metro")
EMPLOYER_CONTRIBUTION_GUARDS = (
    "employer contributions",
    "employer contribution",
    "statutory contributions",
    "statutory contribution",
)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class ExtraCost:
    """Monthly add-on row derived from an enhancement."""

    name: str
    amount: float
    guards: Tuple[str, ...] = field(default_factory=tuple)


def normalize_label(value: Optional[str]) -> str:
    """Lowercase, collapse every non-alphanumeric run to one space."""
    return _NON_ALNUM.sub(" ", str(value or "").lower()).strip()


def default_guards_for(name: str) -> Tuple[str, ...]:
    """Guard keywords for an extra row, chosen by its label."""
    label = name.lower()
    if "termination" in label:
        return TERMINATION_GUARDS
    if "13" in label:
        return THIRTEENTH_GUARDS
    if "14" in label:
        return FOURTEENTH_GUARDS
    if "meal" in label:
        return MEAL_GUARDS
    if "transport" in label:
        return TRANSPORT_GUARDS
    if "employer" in label and "contrib" in label:
        return EMPLOYER_CONTRIBUTION_GUARDS
    return (name,)


def has_item_like(cost_names: Iterable[str], needle: str) -> bool:
    """Whether any cost name contains the normalized needle.

    Employer-contribution needles only match names mentioning both
    "employer" and "contribution"; a bare "contribution" row is not enough.
    """
    needle_norm = normalize_label(needle)
    if not needle_norm:
        return False
    strict = "employer" in needle_norm and "contribution" in needle_norm
    for name in cost_names:
        cost_norm = normalize_label(name)
        if strict:
            if "employer" in cost_norm and "contribution" in cost_norm:
                return True
        elif needle_norm in cost_norm:
            return True
    return False


def contract_months(months: Optional[float] = None) -> int:
    """Months used to spread yearly amounts; defaults to 12, never below 1."""
    if months is None or isinstance(months, bool) or not math.isfinite(months):
        months = settings.default_contract_months
    return max(1, int(months))


def monthly_amount(monthly: Optional[float], total: Optional[float], months: int) -> float:
    """Prefer a positive monthly value, else spread ``total`` over ``months``."""
    if monthly is not None and math.isfinite(monthly) and monthly > 0:
        return monthly
    if total is not None and math.isfinite(total) and total > 0:
        return total / months
    return 0.0


def _usable(amount: float) -> bool:
    return math.isfinite(amount) and amount > 0


def _termination_monthly(
    components: Sequence[Optional[TerminationComponent]],
    months: int
) -> float:
    total = 0.0
    for component in components:
        if component is None or component.is_already_included:
            continue
        total += monthly_amount(component.monthly_amount, component.total_amount, months)
    return total


def _salary_monthly(component: Optional[SalaryEnhancement], months: int) -> float:
    if component is None or component.is_already_included:
        return 0.0
    return monthly_amount(component.monthly_amount, component.yearly_amount, months)


def _contribution_label(key: str) -> str:
    words = re.sub(r"([a-z])([A-Z])", r"\1 \2", key).replace("_", " ").split()
    return " ".join(w.capitalize() for w in words) or key


def candidate_extras(
    enhancements: Enhancements,
    provider: Optional[str] = None,
    months: Optional[float] = None
) -> List[ExtraCost]:
    """All positive monthly add-ons an enhancement proposes.

    Deel already accrues severance in its own quote, so its severance
    provision is left out.
    """
    n_months = contract_months(months)
    extras: List[ExtraCost] = []

    def add(name: str, amount: float, guards: Optional[Tuple[str, ...]] = None) -> None:
        if not _usable(amount):
            return
        extras.append(ExtraCost(
            name=name,
            amount=round(amount, 2),
            guards=guards or default_guards_for(name),
        ))

    severance = None if provider == ProviderType.DEEL.value else enhancements.severance_provision
    add(
        "Termination Provision",
        _termination_monthly(
            [severance, enhancements.probation_provision, enhancements.notice_period_cost],
            n_months,
        ),
    )
    add("13th Month Salary", _salary_monthly(enhancements.thirteenth_salary, n_months))
    add("14th Month Salary", _salary_monthly(enhancements.fourteenth_salary, n_months))

    bonus = enhancements.vacation_bonus
    if bonus is not None and not bonus.is_already_included:
        bonus_monthly = bonus.amount if bonus.frequency == "monthly" else bonus.amount / n_months
        add("Vacation Bonus", bonus_monthly, ("vacation bonus", "holiday bonus", "vacation pay"))

    allowances = enhancements.allowances
    if allowances is not None:
        for label, component in (
            ("Transportation Allowance", allowances.transportation),
            ("Remote Work Allowance", allowances.remote_work),
            ("Meal Vouchers", allowances.meal_vouchers),
        ):
            if component is not None and not component.is_already_included:
                add(label, component.monthly_amount)

    for key, amount in enhancements.additional_contributions.items():
        add(_contribution_label(key), amount)

    exam = enhancements.medical_exam
    if exam is not None and exam.required:
        add("Medical Exam", exam.estimated_cost, ("medical exam", "medical check"))

    return extras


def compute_extra_rows(
    quote: Quote,
    enhancements: Enhancements,
    months: Optional[float] = None
) -> List[ExtraCost]:
    """Extras the base quote does not already contain.

    Args:
        quote: Provider's base quote.
        enhancements: Estimated add-ons for the same provider.
        months: Contract duration used to spread yearly amounts.

    Returns:
        Rows whose guards match none of the quote's cost names.
    """
    names = [cost.name for cost in quote.costs]
    rows = []
    for extra in candidate_extras(enhancements, quote.provider, months):
        if any(has_item_like(names, guard) for guard in extra.guards):
            logger.debug("enhancement_extra_skipped", provider=quote.provider, name=extra.name)
            continue
        rows.append(extra)
        names.append(extra.name)
    return rows


def merge_extras(quote: Quote, extras: Sequence[ExtraCost]) -> Tuple[Quote, List[ExtraCost]]:
    """Append extras to a copy of the quote, re-checking guards as rows land.

    Returns:
        Tuple of (new quote with raised totals, rows actually added).
    """
    costs = list(quote.costs)
    added: List[ExtraCost] = []
    for extra in extras:
        if not _usable(extra.amount):
            continue
        guards = extra.guards or default_guards_for(extra.name)
        if any(has_item_like([c.name for c in costs], guard) for guard in guards):
            continue
        costs.append(CostItem(
            name=extra.name,
            amount=round(extra.amount, 2),
            frequency=CostFrequency.MONTHLY,
            country=quote.country,
            country_code=quote.country_code,
        ))
        added.append(extra)

    if not added:
        return quote, added

    new_total = round(quote.total_costs + sum(e.amount for e in added), 2)
    merged = quote.model_copy(update={
        "costs": costs,
        "total_costs": new_total,
        "employer_costs": new_total,
    })
    logger.info(
        "enhancement_extras_merged",
        provider=quote.provider,
        added=len(added),
        total_costs=new_total,
    )
    return merged, added


def compute_enhancement_addons(enhanced: EnhancedQuote, months: Optional[float] = None) -> float:
    """Monthly sum of extras not already present in the base quote."""
    rows = compute_extra_rows(enhanced.base_quote, enhanced.enhancements, months)
    return round(sum(row.amount for row in rows), 2)


def enhanced_total(enhanced: EnhancedQuote, months: Optional[float] = None) -> float:
    """Monthly provider price including enhancements.

    Uses the enhancement's own monthly breakdown when it carries one and
    falls back to base total plus computed add-ons.
    """
    breakdown = enhanced.monthly_cost_breakdown
    if breakdown is not None and _usable(breakdown.total):
        return breakdown.total

    base = enhanced.base_quote.comparable_total
    if breakdown is not None and _usable(breakdown.base_cost):
        base = breakdown.base_cost

    if breakdown is not None and _usable(breakdown.enhancements):
        addons = breakdown.enhancements
    elif enhanced.total_enhancement is not None and math.isfinite(enhanced.total_enhancement) and enhanced.total_enhancement >= 0:
        addons = enhanced.total_enhancement
    else:
        addons = compute_enhancement_addons(enhanced, months)
    return round(base + addons, 2)
