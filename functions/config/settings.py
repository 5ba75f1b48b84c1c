"""Gracemark configuration settings.

Loads configuration from environment variables with sensible defaults.
Secrets are loaded via Firebase Secrets Manager (production) or environment variables (emulator).
"""

import os
from typing import Optional
from dataclasses import dataclass, field
from dotenv import load_dotenv

# Non-secret configuration only; secrets come from config.secrets
load_dotenv()


@dataclass
class Settings:
    """Application settings loaded from environment variables.

    Note: Secrets (OPENAI_API_KEY, DEEL_ORGANIZATION_TOKEN, ...) should be
    accessed via the config.secrets module. The openai_api_key property
    delegates to it.
    """

    # LLM Configuration (non-secrets)
    llm_model: str = field(default_factory=lambda: os.getenv("LLM_MODEL", "gpt-4o-mini"))
    llm_temperature: float = field(default_factory=lambda: float(os.getenv("LLM_TEMPERATURE", "0.1")))

    # Firebase Configuration
    firebase_project_id: Optional[str] = field(default_factory=lambda: os.getenv("FIREBASE_PROJECT_ID"))
    use_firebase_emulators: bool = field(default_factory=lambda: os.getenv("USE_FIREBASE_EMULATORS", "false").lower() == "true")

    # Partner APIs
    deel_api_base_url: str = field(default_factory=lambda: os.getenv("DEEL_API_BASE_URL", "https://api.letsdeel.com/rest/v2"))
    http_timeout_seconds: float = field(default_factory=lambda: float(os.getenv("HTTP_TIMEOUT_SECONDS", "5")))

    # Currency Conversion
    exchangerate_api_url: str = field(default_factory=lambda: os.getenv("EXCHANGERATE_API_URL", "https://v6.exchangerate-api.com/v6"))
    exchangerate_api_fallback_url: str = field(default_factory=lambda: os.getenv("EXCHANGERATE_API_FALLBACK_URL", "https://api.exchangerate-api.com/v4/latest"))
    exchangerate_host_url: str = field(default_factory=lambda: os.getenv("EXCHANGERATE_HOST_URL", "https://api.exchangerate.host/convert"))
    currency_cache_ttl_seconds: int = field(default_factory=lambda: int(os.getenv("CURRENCY_CACHE_TTL_SECONDS", "600")))

    # Reconciliation
    baseline_provider: str = field(default_factory=lambda: os.getenv("BASELINE_PROVIDER", "deel"))
    reconciliation_tolerance: float = field(default_factory=lambda: float(os.getenv("RECONCILIATION_TOLERANCE", "0.04")))
    reconciliation_policy: str = field(default_factory=lambda: os.getenv("RECONCILIATION_POLICY", "highest_in_band"))

    # Acid Test
    gracemark_fee_percentage: float = field(default_factory=lambda: float(os.getenv("GRACEMARK_FEE_PERCENTAGE", "0.45")))
    min_profit_usd: float = field(default_factory=lambda: float(os.getenv("MIN_PROFIT_USD", "1000")))
    default_contract_months: int = field(default_factory=lambda: int(os.getenv("DEFAULT_CONTRACT_MONTHS", "12")))

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    # Internal: cached secret value (use openai_api_key property instead)
    _openai_api_key: Optional[str] = field(default=None, repr=False)

    @property
    def openai_api_key(self) -> Optional[str]:
        """Get OpenAI API key from Firebase Secrets Manager or environment."""
        if self._openai_api_key is None:
            from config.secrets import get_openai_api_key
            self._openai_api_key = get_openai_api_key()
        return self._openai_api_key

    def validate(self) -> None:
        """Validate required settings are present.

        Raises:
            ValueError: If required settings are missing or out of range.
        """
        if not self.openai_api_key and not self.use_firebase_emulators:
            raise ValueError("OPENAI_API_KEY is required in production")
        if not 0 <= self.reconciliation_tolerance < 1:
            raise ValueError("RECONCILIATION_TOLERANCE must be in [0, 1)")

    @property
    def is_emulator_mode(self) -> bool:
        """Check if running in emulator mode."""
        return self.use_firebase_emulators


# Singleton settings instance
settings = Settings()
