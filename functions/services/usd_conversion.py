"""USD conversion manager for Gracemark.

Converts a quote's monetary fields to USD, one role at a time ("deel",
"compare", "remote", ...). Starting a conversion for a role cancels the
role's previous run; a per-role generation counter makes sure only the
latest run commits results.

Results are published as immutable snapshots: every committed field
replaces the ``conversions`` mapping instead of mutating it.
"""

import asyncio
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Callable, Dict, Mapping, Optional, Set, Tuple

import structlog

from config.errors import ConversionError, GracemarkError
from models.quote import Quote
from services.currency_service import CurrencyConverter, get_currency_converter

logger = structlog.get_logger()

USD = "USD"


@dataclass(frozen=True)
class USDConversion:
    """USD mirror of one quote, filled in field by field."""

    salary: Optional[float] = None
    platform_fee: Optional[float] = None
    total_costs: Optional[float] = None
    costs: Tuple[Optional[float], ...] = field(default_factory=tuple)

    @property
    def is_complete(self) -> bool:
        return (
            self.salary is not None
            and self.platform_fee is not None
            and self.total_costs is not None
            and all(c is not None for c in self.costs)
        )


UpdateCallback = Callable[[str, USDConversion], None]


def conversion_key(quote: Quote, role: str) -> str:
    """De-duplication key for automatic conversions."""
    return f"{role}-{quote.country}-{quote.currency}-{quote.total_costs}"


class USDConversionManager:
    """Cancellable, per-role USD conversion of quotes."""

    def __init__(
        self,
        converter: Optional[CurrencyConverter] = None,
        on_update: Optional[UpdateCallback] = None,
    ):
        self.converter = converter or get_currency_converter()
        self.on_update = on_update
        self.usd_conversion_error: Optional[str] = None

        self._conversions: Mapping[str, USDConversion] = MappingProxyType({})
        self._tasks: Dict[str, "asyncio.Task[Optional[USDConversion]]"] = {}
        self._generations: Dict[str, int] = {}
        self._converting: Dict[str, bool] = {}
        self._converted_keys: Set[str] = set()

    # -------------------------------------------------------------------------
    # State accessors
    # -------------------------------------------------------------------------

    @property
    def conversions(self) -> Mapping[str, USDConversion]:
        """Current read-only snapshot keyed by role."""
        return self._conversions

    def is_converting(self, role: str) -> bool:
        return self._converting.get(role, False)

    def _is_current(self, role: str, generation: int) -> bool:
        return self._generations.get(role) == generation

    def _commit(self, role: str, generation: int, value: USDConversion) -> bool:
        if not self._is_current(role, generation):
            return False
        self._conversions = MappingProxyType({**self._conversions, role: value})
        if self.on_update is not None:
            self.on_update(role, value)
        return True

    # -------------------------------------------------------------------------
    # Conversion runs
    # -------------------------------------------------------------------------

    async def _to_usd(self, amount: float, currency: str, label: str) -> float:
        try:
            return await self.converter.convert_amount(amount, currency, USD)
        except GracemarkError as e:
            logger.warning("usd_field_conversion_failed", field=label, currency=currency, error=e.message)
            raise ConversionError(
                message=f"Failed to convert {label}",
                source_currency=currency,
                target_currency=USD,
                details={"reason": e.message},
            ) from e

    async def _run(self, quote: Quote, role: str, generation: int) -> Optional[USDConversion]:
        self._converting[role] = True
        current = USDConversion(costs=tuple(None for _ in quote.costs))
        self._commit(role, generation, current)

        try:
            salary = await self._to_usd(quote.salary, quote.currency, "salary")
            current = replace(current, salary=salary)
            if not self._commit(role, generation, current):
                return None

            fee = await self._to_usd(quote.platform_fee, quote.currency, "platform fee")
            current = replace(current, platform_fee=fee)
            if not self._commit(role, generation, current):
                return None

            total = await self._to_usd(quote.total_costs, quote.currency, "total costs")
            current = replace(current, total_costs=total)
            if not self._commit(role, generation, current):
                return None

            for idx, cost in enumerate(quote.costs):
                amount = await self._to_usd(cost.amount, quote.currency, cost.name)
                costs = list(current.costs)
                costs[idx] = amount
                current = replace(current, costs=tuple(costs))
                if not self._commit(role, generation, current):
                    return None

            logger.info("usd_conversion_complete", role=role, currency=quote.currency, total_usd=total)
            return current

        except asyncio.CancelledError:
            if self._is_current(role, generation):
                raise
            logger.debug("usd_conversion_aborted", role=role)
            return None

        except GracemarkError as e:
            if self._is_current(role, generation):
                self.usd_conversion_error = f"Failed to convert to USD - {e.message}"
                logger.error("usd_conversion_failed", role=role, currency=quote.currency, error=e.message)
            return None

        finally:
            if self._is_current(role, generation):
                self._converting[role] = False

    def start_conversion(self, quote: Quote, role: str) -> "asyncio.Task[Optional[USDConversion]]":
        """Schedule a conversion run for ``role``, cancelling the previous one.

        Must be called with a running event loop.
        """
        previous = self._tasks.get(role)
        generation = self._generations.get(role, 0) + 1
        self._generations[role] = generation
        if previous is not None and not previous.done():
            previous.cancel()

        self.usd_conversion_error = None
        task = asyncio.ensure_future(self._run(quote, role, generation))
        self._tasks[role] = task
        return task

    async def convert_quote_to_usd(self, quote: Quote, role: str) -> Optional[USDConversion]:
        """Convert a quote to USD unless it already is.

        Args:
            quote: Quote to convert.
            role: Conversion slot; a newer call for the same role wins.

        Returns:
            Completed conversion, or None when the quote is already USD,
            the run failed (see ``usd_conversion_error``) or it was superseded.
        """
        if quote.currency == USD:
            return None
        task = self.start_conversion(quote, role)
        generation = self._generations[role]
        try:
            return await task
        except asyncio.CancelledError:
            # Cancelled before its first step; superseded runs are not errors
            if self._is_current(role, generation):
                raise
            return None

    def auto_convert_quote(
        self,
        quote: Optional[Quote],
        role: str
    ) -> Optional["asyncio.Task[Optional[USDConversion]]"]:
        """Convert each distinct quote at most once.

        Returns:
            The scheduled task, or None when nothing needed converting.
        """
        if quote is None or quote.currency == USD:
            return None

        key = conversion_key(quote, role)
        if key in self._converted_keys:
            return None
        self._converted_keys.add(key)
        return self.start_conversion(quote, role)

    def clear(self) -> None:
        """Cancel every run and drop all converted values."""
        for role, task in self._tasks.items():
            self._generations[role] = self._generations.get(role, 0) + 1
            if not task.done():
                task.cancel()
        self._tasks.clear()
        self._converting.clear()
        self._converted_keys.clear()
        self._conversions = MappingProxyType({})
        self.usd_conversion_error = None
