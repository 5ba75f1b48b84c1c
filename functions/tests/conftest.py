"""Pytest configuration and shared fixtures for Gracemark tests."""

import os
import sys
import pytest
from unittest.mock import AsyncMock, MagicMock, patch


# ============================================================================
# Ensure local imports work (config/, models/, services/, utils/)
# ============================================================================
#
# The codebase uses absolute imports like `from models...` / `from services...`,
# so `functions/` has to be importable as the top-level module root.
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)


# ============================================================================
# Firebase Mocks
# ============================================================================

@pytest.fixture
def mock_firestore_client():
    """Mock Firestore client."""
    client = MagicMock()

    # Set up chain: client.collection().document()
    collection_mock = MagicMock()
    document_mock = MagicMock()
    client.collection.return_value = collection_mock
    collection_mock.document.return_value = document_mock

    document_mock.get = AsyncMock(return_value=MagicMock(
        exists=True,
        id="quote_1700000000000_abc123def",
        to_dict=lambda: {"status": "completed", "calculatorType": "eor"}
    ))
    document_mock.set = AsyncMock()
    document_mock.delete = AsyncMock()

    return client


@pytest.fixture
def mock_quote_store(mock_firestore_client):
    """QuoteStore with mocked client."""
    from services.quote_store import QuoteStore

    return QuoteStore(db=mock_firestore_client)


# ============================================================================
# LLM Mocks
# ============================================================================

@pytest.fixture
def mock_chat_openai():
    """Mock ChatOpenAI client."""
    mock = AsyncMock()
    mock.ainvoke.return_value = MagicMock(
        content='{"result": "ok"}',
        response_metadata={"token_usage": {"total_tokens": 100}}
    )
    return mock


@pytest.fixture
def mock_llm_service(mock_chat_openai):
    """LLMService whose client is the mocked ChatOpenAI."""
    from services.llm_service import LLMService

    with patch('services.llm_service.ChatOpenAI', return_value=mock_chat_openai):
        service = LLMService(api_key="test-api-key")
        service._client = mock_chat_openai
        return service


@pytest.fixture
def mock_json_llm():
    """LLMService stand-in whose generate_json is an AsyncMock."""
    llm = MagicMock()
    llm.generate_json = AsyncMock(return_value={})
    return llm


# ============================================================================
# Currency Mocks
# ============================================================================

@pytest.fixture
def fixed_rates():
    """Rates used by the stub converter, keyed ``SRC_DST``."""
    return {"EUR_USD": 1.1, "GBP_USD": 1.25, "USD_EUR": 0.9, "BRL_USD": 0.2}


@pytest.fixture
def stub_converter(fixed_rates):
    """CurrencyConverter backed by a fixed-rate provider."""
    from services.currency_service import CurrencyConverter, RateProvider

    class FixedRateProvider(RateProvider):
        name = "fixed"

        def __init__(self):
            super().__init__()
            self.calls = []

        async def fetch_rate(self, source, target):
            self.calls.append((source, target))
            key = f"{source}_{target}"
            if key not in fixed_rates:
                raise ValueError(f"no rate for {key}")
            return fixed_rates[key]

    provider = FixedRateProvider()
    converter = CurrencyConverter(providers=[provider], cache_ttl_seconds=600)
    converter.provider = provider
    return converter


# ============================================================================
# Environment Setup
# ============================================================================

@pytest.fixture(autouse=True)
def mock_settings():
    """Pin settings for all tests.

    Modules hold a reference to the shared ``settings`` instance, so the
    attributes are patched in place rather than the module attribute.
    """
    from config.settings import settings

    with patch.multiple(
        settings,
        _openai_api_key="test-api-key",
        llm_model="gpt-4o-mini",
        llm_temperature=0.1,
        use_firebase_emulators=True,
        baseline_provider="deel",
        reconciliation_tolerance=0.04,
        reconciliation_policy="highest_in_band",
        gracemark_fee_percentage=0.45,
        min_profit_usd=1000.0,
        default_contract_months=12,
        currency_cache_ttl_seconds=600,
        http_timeout_seconds=5.0,
        log_level="INFO",
    ):
        yield settings
