"""Deel partner API client for Gracemark.

Outbound calls to the Deel REST API authenticated with the organization
bearer token.
"""

from typing import Any, Dict, Optional

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from config.errors import ErrorCode, GracemarkError, UpstreamError, ValidationError
from config.secrets import get_deel_organization_token
from config.settings import settings

logger = structlog.get_logger()


class DeelPartnerClient:
    """Client for Deel EOR endpoints."""

    SERVICE = "deel"

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self._token = token
        self.base_url = (base_url or settings.deel_api_base_url).rstrip("/")
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport

    @property
    def token(self) -> Optional[str]:
        if self._token is None:
            self._token = get_deel_organization_token()
        return self._token

    def _headers(self) -> Dict[str, str]:
        return {
            "accept": "application/json",
            "authorization": f"Bearer {self.token}",
        }

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((httpx.TransportError, httpx.TimeoutException)),
    )
    async def _get(self, path: str) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            return await client.get(f"{self.base_url}{path}", headers=self._headers())

    async def get_validations(self, country_code: str) -> Dict[str, Any]:
        """Fetch EOR hiring validations (salary ranges, holidays, ...) for a country.

        Args:
            country_code: ISO country code.

        Returns:
            The upstream JSON body.

        Raises:
            ValidationError: If the country code is empty.
            UpstreamError: If Deel answers with a non-2xx status.
            GracemarkError: If Deel cannot be reached.
        """
        if not country_code or not country_code.strip():
            raise ValidationError("Missing required parameter: country_code", field="country_code")
        if not self.token:
            logger.warning("deel_token_missing")

        code = country_code.strip().upper()
        try:
            response = await self._get(f"/eor/validations/{code}")
        except (httpx.TransportError, httpx.TimeoutException) as e:
            logger.error("deel_validations_unreachable", country_code=code, error=str(e))
            raise GracemarkError(
                code=ErrorCode.UPSTREAM_TIMEOUT,
                message="Deel API unreachable",
                details={"country_code": code, "original_error": str(e)}
            ) from e

        if not response.is_success:
            logger.error(
                "deel_validations_failed",
                country_code=code,
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise UpstreamError(
                message="Failed to get validations from Deel API",
                status_code=response.status_code,
                service=self.SERVICE,
                body=response.text,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise GracemarkError(
                code=ErrorCode.UPSTREAM_INVALID_RESPONSE,
                message="Deel API returned invalid JSON",
                details={"country_code": code}
            ) from e

        logger.info("deel_validations_fetched", country_code=code)
        return data
