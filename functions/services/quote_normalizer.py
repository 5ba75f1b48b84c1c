"""Quote normalizer for Gracemark.

Validates each provider's raw quote payload into the ``ProviderPayload``
tagged union and transforms it into the common ``Quote`` shape.
"""

import math
import random
import re
import string
import time
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import structlog
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from models.quote import (
    CostItem,
    DeelPayload,
    GenericPayload,
    NamedAmount,
    OysterPayload,
    ProviderPayload,
    ProviderType,
    Quote,
    RemotePayload,
    RivermatePayload,
)

logger = structlog.get_logger()

_payload_adapter = TypeAdapter(ProviderPayload)

_CURRENCY_NOISE = re.compile(r"[\s$€£¥₱₹₩₦₭₮₰₲₳₴₵₺₽₡₢₣₤₥₧₨₫฿₠]+")
_NON_NUMERIC = re.compile(r"[^0-9eE+\-.]")
_LEADING_FLOAT = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")

QUOTE_ID_PATTERN = re.compile(r"^quote_\d+_[a-z0-9]+$")
BREAKDOWN_KEY_MAX_LENGTH = 30


# =============================================================================
# NUMERIC HELPERS
# =============================================================================


def parse_numeric_value(value: Any) -> Optional[float]:
    """Parse a number or a locale-formatted money string.

    When both ``,`` and ``.`` appear, whichever comes last is the decimal
    separator. A lone comma is treated as the decimal separator.

    Args:
        value: Raw value from a provider payload.

    Returns:
        Finite float, or None when the value cannot be parsed.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if not isinstance(value, str):
        return None

    cleaned = _CURRENCY_NOISE.sub("", value.strip())
    if not cleaned:
        return None

    has_comma = "," in cleaned
    has_dot = "." in cleaned
    if has_comma and has_dot:
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    elif has_comma:
        cleaned = cleaned.replace(",", ".")

    cleaned = _NON_NUMERIC.sub("", cleaned)
    match = _LEADING_FLOAT.match(cleaned)
    if not match:
        return None
    parsed = float(match.group(0))
    return parsed if math.isfinite(parsed) else None


def to_amount(value: Any) -> float:
    """Parse a money value, defaulting to 0 for anything unparseable."""
    parsed = parse_numeric_value(value)
    return parsed if parsed is not None else 0.0


def pick_positive(*values: Any) -> Optional[float]:
    """Return the first value that parses to a positive number."""
    for value in values:
        parsed = parse_numeric_value(value)
        if parsed is not None and parsed > 0:
            return parsed
    return None


def breakdown_key(name: str) -> str:
    """Stable snake_case key for a breakdown label."""
    key = re.sub(r"[^\w\s]", "", name.lower()).strip()
    key = re.sub(r"\s+", "_", key)
    return key[:BREAKDOWN_KEY_MAX_LENGTH]


# =============================================================================
# QUOTE IDS
# =============================================================================


def generate_quote_id() -> str:
    """Create a quote ID of the form ``quote_<epoch ms>_<9 base-36 chars>``."""
    alphabet = string.ascii_lowercase + string.digits
    suffix = "".join(random.choice(alphabet) for _ in range(9))
    return f"quote_{int(time.time() * 1000)}_{suffix}"


def validate_quote_id(quote_id: Any) -> Tuple[bool, Optional[str]]:
    """Check a quote ID against ``^quote_\\d+_[a-z0-9]+$``.

    Returns:
        Tuple of (is_valid, error message or None).
    """
    if quote_id is None or quote_id == "":
        return False, "Quote ID is required"
    if not isinstance(quote_id, str):
        return False, "Quote ID must be a string"
    if not QUOTE_ID_PATTERN.match(quote_id):
        return False, "Quote ID format is invalid"
    return True, None


# =============================================================================
# PROVIDER TRANSFORMS
# =============================================================================


def _breakdown_rows(
    entries: Iterable[NamedAmount],
    country: str,
    country_code: Optional[str]
) -> List[CostItem]:
    rows = []
    for entry in entries:
        if not entry.name:
            continue
        rows.append(CostItem(
            name=entry.name,
            amount=to_amount(entry.amount),
            country=country,
            country_code=country_code,
        ))
    return rows


def _display_rows(payload: Union[DeelPayload, GenericPayload]) -> List[CostItem]:
    return [
        CostItem(
            name=cost.name,
            amount=to_amount(cost.amount),
            frequency=cost.frequency if cost.frequency in ("monthly", "yearly", "one_time") else "monthly",
            country=cost.country or payload.country,
            country_code=cost.country_code or payload.country_code,
        )
        for cost in payload.costs
        if cost.name
    ]


def _from_deel(payload: DeelPayload) -> Quote:
    total = to_amount(payload.total_costs)
    return Quote(
        provider=ProviderType.DEEL,
        currency=payload.currency,
        country=payload.country,
        country_code=payload.country_code,
        salary=to_amount(payload.salary),
        costs=_display_rows(payload),
        total_costs=total,
        employer_costs=to_amount(payload.employer_costs) or total,
        platform_fee=to_amount(payload.deel_fee),
        severance_accrual=to_amount(payload.severance_accural),
    )


def _from_generic(payload: GenericPayload) -> Quote:
    total = to_amount(payload.total_costs)
    return Quote(
        provider=ProviderType(payload.kind),
        currency=payload.currency,
        country=payload.country,
        country_code=payload.country_code,
        salary=to_amount(payload.salary),
        costs=_display_rows(payload),
        total_costs=total,
        employer_costs=to_amount(payload.employer_costs) or total,
    )


def _from_remote(payload: RemotePayload) -> Optional[Quote]:
    costs = payload.employment.employer_currency_costs
    if costs is None:
        return None

    country = payload.employment.country
    country_name = country.name if country else ""
    country_code = country.code if country else None

    rows = _breakdown_rows(costs.monthly_contributions_breakdown, country_name, country_code)
    rows.extend(_breakdown_rows(costs.extra_statutory_payments_breakdown, country_name, country_code))

    salary = to_amount(costs.monthly_gross_salary)
    total = to_amount(costs.monthly_total)
    if total <= 0:
        total = salary + to_amount(costs.monthly_contributions_total) + to_amount(costs.monthly_benefits_total)

    return Quote(
        provider=ProviderType.REMOTE,
        currency=costs.currency.code,
        country=country_name,
        country_code=country_code,
        salary=salary,
        costs=rows,
        total_costs=total,
        employer_costs=total,
    )


def _from_rivermate(payload: RivermatePayload) -> Quote:
    salary = to_amount(payload.salary)
    rows = _breakdown_rows(payload.tax_items, payload.country, payload.country_code)
    management_fee = to_amount(payload.management_fee)
    accruals = to_amount(payload.accruals_provision)

    total = pick_positive(payload.total)
    if total is None:
        total = salary + sum(row.amount for row in rows) + accruals

    if management_fee > 0:
        rows.append(CostItem(name="Management Fee", amount=management_fee, country=payload.country))
    if accruals > 0:
        rows.append(CostItem(name="Accruals Provision", amount=accruals, country=payload.country))

    return Quote(
        provider=ProviderType.RIVERMATE,
        currency=payload.currency,
        country=payload.country,
        country_code=payload.country_code,
        salary=salary,
        costs=rows,
        total_costs=total,
        employer_costs=total,
    )


def _from_oyster(payload: OysterPayload) -> Quote:
    salary = to_amount(payload.salary)
    rows = _breakdown_rows(payload.contributions, payload.country, payload.country_code)
    total = pick_positive(payload.total)
    if total is None:
        total = salary + sum(row.amount for row in rows)
    return Quote(
        provider=ProviderType.OYSTER,
        currency=payload.currency,
        country=payload.country,
        country_code=payload.country_code,
        salary=salary,
        costs=rows,
        total_costs=total,
        employer_costs=total,
    )


def _transform(payload: Any) -> Optional[Quote]:
    match payload:
        case DeelPayload():
            return _from_deel(payload)
        case RemotePayload():
            return _from_remote(payload)
        case RivermatePayload():
            return _from_rivermate(payload)
        case OysterPayload():
            return _from_oyster(payload)
        case GenericPayload():
            return _from_generic(payload)
    raise TypeError(f"Unhandled provider payload: {type(payload).__name__}")


def normalize_quote(
    provider: Union[ProviderType, str],
    payload: Optional[Dict[str, Any]]
) -> Optional[Quote]:
    """Normalize a raw provider response into a ``Quote``.

    Args:
        provider: Provider that produced the payload.
        payload: Raw JSON payload; ``kind`` is set from ``provider``.

    Returns:
        Normalized quote, or None when the payload is empty or invalid.
    """
    provider_name = provider.value if isinstance(provider, ProviderType) else str(provider).lower()

    if not payload:
        logger.warning("quote_payload_empty", provider=provider_name)
        return None
    if not isinstance(payload, dict):
        logger.warning("quote_payload_invalid", provider=provider_name, payload_type=type(payload).__name__)
        return None

    try:
        parsed = _payload_adapter.validate_python({**payload, "kind": provider_name})
    except PydanticValidationError as e:
        logger.warning(
            "quote_payload_invalid",
            provider=provider_name,
            errors=e.error_count(),
            detail=str(e)[:500]
        )
        return None

    quote = _transform(parsed)
    if quote is None:
        logger.warning("quote_payload_incomplete", provider=provider_name)
        return None

    logger.debug(
        "quote_normalized",
        provider=provider_name,
        currency=quote.currency,
        total_costs=quote.total_costs,
        cost_rows=len(quote.costs)
    )
    return quote
