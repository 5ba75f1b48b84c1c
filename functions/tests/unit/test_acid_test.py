"""Unit tests for the acid-test calculator."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from config.errors import ConversionError, ValidationError
from models.acid_test import AcidTestCostData, ProfitStatus
from models.enhancement import QuoteType
from services.acid_test import (
    USD_MIRROR_FIELDS,
    AcidTestCalculator,
    compute_profitability,
    profit_status,
)
from tests.fixtures.mock_quote_data import make_enhanced_quote


def _cost_data(base=5000.0, statutory=2000.0, allowances=500.0, termination=500.0, one_time=0.0):
    return AcidTestCostData(
        base_salary={"base_salary": base},
        statutory_mandatory={"pension": statutory},
        allowances_benefits={"meal_vouchers": allowances},
        termination_costs={"severance": termination},
        one_time_fees={"setup": one_time} if one_time else {},
    )


class TestComputeProfitability:
    """Tests for the profitability arithmetic."""

    def test_reference_case_passes(self):
        # recurring 8000 at a 45% fee, bill rate 11600 over 6 months
        result = compute_profitability(_cost_data(), bill_rate=11600, months=6, is_all_inclusive=True)

        assert result.recurring_monthly == 8000
        assert result.target_fee_monthly == pytest.approx(3600)
        assert result.expected_bill_rate == pytest.approx(11600)
        assert result.actual_fee_monthly == 3600
        assert result.fee_percentage == pytest.approx(0.45)
        assert result.total_costs == 48000
        assert result.revenue == 69600
        assert result.profit == 21600

    def test_expected_bill_rate_is_recurring_times_one_forty_five(self):
        result = compute_profitability(_cost_data(base=1000, statutory=0, allowances=0, termination=0), 0, 1, True)
        assert result.expected_bill_rate == pytest.approx(1450)

    def test_statutory_only_excludes_termination(self):
        result = compute_profitability(_cost_data(), bill_rate=10000, months=12, is_all_inclusive=False)
        assert result.recurring_monthly == 7500

    def test_one_time_fees_added_once(self):
        result = compute_profitability(_cost_data(one_time=1200), bill_rate=11600, months=6, is_all_inclusive=True)
        assert result.one_time_total == 1200
        assert result.total_costs == 49200
        assert result.profit == 20400

    def test_zero_recurring_has_zero_fee_percentage(self):
        result = compute_profitability(AcidTestCostData(), bill_rate=500, months=3, is_all_inclusive=True)
        assert result.fee_percentage == 0.0
        assert result.profit == 1500

    def test_custom_fee_percentage(self):
        result = compute_profitability(_cost_data(), 0, 1, True, fee_percentage=0.2)
        assert result.target_fee_monthly == pytest.approx(1600)


class TestProfitStatus:

    @pytest.mark.parametrize("profit_usd,expected", [
        (1000.0, ProfitStatus.PASS),
        (25000.0, ProfitStatus.PASS),
        (999.99, ProfitStatus.WARNING),
        (0.01, ProfitStatus.WARNING),
        (0.0, ProfitStatus.FAIL),
        (-50.0, ProfitStatus.FAIL),
    ])
    def test_threshold(self, profit_usd, expected):
        assert profit_status(profit_usd, profit_local=profit_usd) == expected

    def test_without_usd_positive_local_is_warning(self):
        assert profit_status(None, 50000) == ProfitStatus.WARNING

    def test_without_usd_non_positive_local_fails(self):
        assert profit_status(None, 0) == ProfitStatus.FAIL

    def test_custom_threshold(self):
        assert profit_status(1500, 1500, min_profit_usd=2000) == ProfitStatus.WARNING


class TestAcidTestCalculator:
    """Tests for AcidTestCalculator.run."""

    @pytest.mark.asyncio
    async def test_usd_quote_mirrors_without_conversion(self):
        converter = MagicMock()
        converter.convert_amount = AsyncMock()
        calculator = AcidTestCalculator(categorizer=MagicMock(), converter=converter)
        enhanced = make_enhanced_quote("remote", 8000, currency="USD")

        result = await calculator.run(enhanced, bill_rate=11600, months=6, cost_data=_cost_data())

        assert result.status == ProfitStatus.PASS
        assert result.passed
        assert result.profit_usd == 21600
        assert set(result.usd) == set(USD_MIRROR_FIELDS)
        assert result.categorization_source == "provided"
        converter.convert_amount.assert_not_called()

    @pytest.mark.asyncio
    async def test_converts_profit_to_usd(self, stub_converter):
        calculator = AcidTestCalculator(categorizer=MagicMock(), converter=stub_converter)
        enhanced = make_enhanced_quote("deel", 8000, currency="EUR")

        result = await calculator.run(enhanced, bill_rate=8500, months=2, cost_data=_cost_data())

        # profit 1000 EUR -> 1100 USD
        assert result.profitability.profit == 1000
        assert result.profit_usd == 1100.0
        assert result.usd["revenue"] == 18700.0
        assert result.status == ProfitStatus.PASS
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_conversion_failure_is_recorded_per_field(self):
        converter = MagicMock()
        converter.convert_amount = AsyncMock(side_effect=ConversionError(
            message="rates unavailable",
            source_currency="BRL",
            target_currency="USD",
        ))
        calculator = AcidTestCalculator(categorizer=MagicMock(), converter=converter)
        enhanced = make_enhanced_quote("deel", 8000, currency="BRL")

        result = await calculator.run(enhanced, bill_rate=11600, months=6, cost_data=_cost_data())

        assert result.profit_usd is None
        assert result.usd == {}
        assert len(result.errors) == len(USD_MIRROR_FIELDS)
        assert result.errors[0] == "Failed to convert profit to USD: rates unavailable"
        assert result.status == ProfitStatus.WARNING

    @pytest.mark.asyncio
    async def test_categorizes_when_no_cost_data(self, stub_converter):
        categorizer = MagicMock()
        categorizer.categorize = AsyncMock(return_value=(_cost_data(), "fallback"))
        calculator = AcidTestCalculator(categorizer=categorizer, converter=stub_converter)
        enhanced = make_enhanced_quote("remote", 8000, currency="USD", salary=5000)

        result = await calculator.run(enhanced, bill_rate=11600, months=6)

        assert result.categorization_source == "fallback"
        provider, country, currency, items = categorizer.categorize.call_args.args
        assert (provider, country, currency) == ("remote", "Germany", "USD")
        assert items[0].key == "base_salary"

    @pytest.mark.asyncio
    async def test_quote_type_sets_inclusion(self, stub_converter):
        calculator = AcidTestCalculator(categorizer=MagicMock(), converter=stub_converter)
        enhanced = make_enhanced_quote("remote", 8000, currency="USD", quote_type=QuoteType.STATUTORY_ONLY)

        result = await calculator.run(enhanced, bill_rate=11600, months=6, cost_data=_cost_data())

        assert result.is_all_inclusive is False
        assert result.profitability.recurring_monthly == 7500

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bill_rate,months,field", [
        (-1, 6, "billRate"),
        (float("nan"), 6, "billRate"),
        (1000, 0, "months"),
        (1000, 2.5, "months"),
    ])
    async def test_invalid_inputs(self, stub_converter, bill_rate, months, field):
        calculator = AcidTestCalculator(categorizer=MagicMock(), converter=stub_converter)

        with pytest.raises(ValidationError) as exc_info:
            await calculator.run(make_enhanced_quote(), bill_rate=bill_rate, months=months, cost_data=_cost_data())

        assert exc_info.value.field == field
