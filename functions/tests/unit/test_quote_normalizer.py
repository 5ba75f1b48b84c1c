"""Unit tests for the quote normalizer."""

import pytest

from services.quote_normalizer import (
    breakdown_key,
    generate_quote_id,
    normalize_quote,
    parse_numeric_value,
    pick_positive,
    to_amount,
    validate_quote_id,
)
from tests.fixtures.mock_quote_data import (
    DEEL_PAYLOAD,
    OYSTER_PAYLOAD,
    REMOTE_PAYLOAD,
    RIPPLING_PAYLOAD,
    RIVERMATE_PAYLOAD,
)


class TestParseNumericValue:
    """Tests for locale-aware money parsing."""

    @pytest.mark.parametrize("raw,expected", [
        (1234.5, 1234.5),
        (42, 42.0),
        ("1,234.50", 1234.5),
        ("1.234,50", 1234.5),
        ("€ 1.234,50", 1234.5),
        ("$2,000", 2.0),
        ("12,5", 12.5),
        ("  900 ", 900.0),
        ("-15.25", -15.25),
    ])
    def test_parses_numbers_and_strings(self, raw, expected):
        assert parse_numeric_value(raw) == pytest.approx(expected)

    @pytest.mark.parametrize("raw", [None, "", "abc", True, float("nan"), float("inf"), {"a": 1}])
    def test_unparseable_returns_none(self, raw):
        assert parse_numeric_value(raw) is None

    def test_to_amount_defaults_to_zero(self):
        assert to_amount("n/a") == 0.0
        assert to_amount("10") == 10.0

    def test_pick_positive_skips_zero_and_garbage(self):
        assert pick_positive(None, "0", "abc", "15") == 15.0
        assert pick_positive(0, -1) is None


class TestBreakdownKey:

    def test_snake_case(self):
        assert breakdown_key("Pension Insurance (Employer)") == "pension_insurance_employer"

    def test_truncated(self):
        assert len(breakdown_key("a very long label " * 5)) == 30


class TestQuoteIds:
    """Tests for quote ID generation and validation."""

    def test_generated_ids_are_valid(self):
        quote_id = generate_quote_id()
        assert validate_quote_id(quote_id) == (True, None)
        assert quote_id.startswith("quote_")
        assert len(quote_id.rsplit("_", 1)[1]) == 9

    def test_generated_ids_differ(self):
        assert generate_quote_id() != generate_quote_id()

    @pytest.mark.parametrize("quote_id,message", [
        (None, "Quote ID is required"),
        ("", "Quote ID is required"),
        (123, "Quote ID must be a string"),
        ("quote_abc_def", "Quote ID format is invalid"),
        ("quote_123_ABC", "Quote ID format is invalid"),
        ("est_123_abc", "Quote ID format is invalid"),
    ])
    def test_invalid_ids(self, quote_id, message):
        assert validate_quote_id(quote_id) == (False, message)


class TestNormalizeQuote:
    """Tests for provider payload normalization."""

    def test_deel(self):
        quote = normalize_quote("deel", DEEL_PAYLOAD)

        assert quote.provider == "deel"
        assert quote.currency == "EUR"
        assert quote.salary == 5000.0
        assert quote.total_costs == 6450.0
        assert quote.platform_fee == 599.0
        assert quote.severance_accrual == 150.0
        assert quote.comparable_total == pytest.approx(5701.0)
        assert [c.name for c in quote.costs] == [
            "Pension Insurance", "Health Insurance", "Severance Accrual"
        ]
        assert quote.costs[1].frequency == "yearly"
        assert quote.costs[0].country == "Germany"

    def test_remote(self):
        quote = normalize_quote("remote", REMOTE_PAYLOAD)

        assert quote.provider == "remote"
        assert quote.currency == "EUR"
        assert quote.country == "Germany"
        assert quote.country_code == "DEU"
        assert quote.total_costs == 6100.0
        assert quote.platform_fee == 0.0
        assert len(quote.costs) == 3

    def test_remote_total_derived_when_missing(self):
        payload = {
            "employment": {
                "country": {"name": "Germany"},
                "employer_currency_costs": {
                    "currency": {"code": "EUR"},
                    "monthly_gross_salary": 5000,
                    "monthly_contributions_total": 1000,
                    "monthly_benefits_total": 100,
                },
            },
        }
        assert normalize_quote("remote", payload).total_costs == 6100.0

    def test_remote_without_costs_returns_none(self):
        assert normalize_quote("remote", {"employment": {"country": {"name": "Germany"}}}) is None

    def test_rivermate_derives_total_and_adds_fee_rows(self):
        quote = normalize_quote("rivermate", RIVERMATE_PAYLOAD)

        # salary + tax items + accruals; the management fee is a row only
        assert quote.total_costs == 5000 + 465 + 405 + 200
        names = [c.name for c in quote.costs]
        assert "Management Fee" in names
        assert "Accruals Provision" in names
        assert quote.platform_fee == 0.0

    def test_oyster_uses_reported_total(self):
        quote = normalize_quote("oyster", OYSTER_PAYLOAD)
        assert quote.total_costs == 6020.0
        assert [c.amount for c in quote.costs] == [465.0, 555.0]

    def test_generic_provider(self):
        quote = normalize_quote("Rippling", RIPPLING_PAYLOAD)
        assert quote.provider == "rippling"
        assert quote.total_costs == 6200.0
        assert quote.employer_costs == 6200.0

    def test_empty_payload_returns_none(self):
        assert normalize_quote("deel", None) is None
        assert normalize_quote("deel", {}) is None

    @pytest.mark.parametrize("payload", [[1, 2], "deel", 42])
    def test_non_object_payload_returns_none(self, payload):
        assert normalize_quote("deel", payload) is None

    def test_unknown_provider_returns_none(self):
        assert normalize_quote("acme", DEEL_PAYLOAD) is None

    def test_invalid_shape_returns_none(self):
        assert normalize_quote("oyster", {"contributions": "not-a-list"}) is None
