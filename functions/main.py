"""Cloud Function entry points for Gracemark quote reconciliation.

Provides HTTP endpoints for:
- Proxying Deel EOR validations
- Normalizing and enhancing provider quotes
- Categorizing cost items for the acid test
- Reconciling providers against the Deel baseline
- Running the acid test on the final choice
- Storing and reading quote results
"""

import asyncio
import json
import time
from dataclasses import asdict
from typing import Any, Dict, Optional
from datetime import datetime, date

import structlog
from firebase_functions import https_fn, options
from firebase_admin import initialize_app
from pydantic import ValidationError as PydanticValidationError

from config.errors import GracemarkError, ErrorCode, UpstreamError, ValidationError
from models.acid_test import AcidTestCostData, CostItemInput
from models.enhancement import EnhancedQuote, QuoteType
from models.quote_record import QuoteRecord, QuoteRecordStatus
from models.reconciliation import FinalChoice
from services.partner_client import DeelPartnerClient

# Initialize Firebase Admin SDK
try:
    initialize_app()
except ValueError:
    # Already initialized
    pass

logger = structlog.get_logger()

VALIDATIONS_ERROR = "Failed to get validations from Deel API"

# ============================================================================
# Helper Functions
# ============================================================================


def success_response(data: Dict[str, Any]) -> Dict[str, Any]:
    """Build success response."""
    return {"success": True, "data": data}


def error_response(code: str, message: str, details: Dict[str, Any] = None) -> Dict[str, Any]:
    """Build error response."""
    return {
        "success": False,
        "error": {
            "code": code,
            "message": message,
            "details": details or {}
        }
    }


def get_request_json(req: https_fn.Request) -> Dict[str, Any]:
    """Extract JSON from request body.

    Args:
        req: HTTP request object.

    Returns:
        Parsed JSON data.

    Raises:
        ValidationError: If JSON is invalid or not an object.
    """
    try:
        data = req.get_json(force=True) or {}
    except Exception as e:
        raise ValidationError(
            message=f"Invalid JSON in request body: {str(e)}"
        )
    if not isinstance(data, dict):
        raise ValidationError(message="Request body must be a JSON object")
    return data


def require_fields(data: Dict[str, Any], *names: str) -> None:
    """Raise ValidationError for the first missing or empty field."""
    for name in names:
        value = data.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(
                message=f"Missing {name} in request",
                field=name,
                code=ErrorCode.MISSING_FIELD
            )


def parse_model(model, data: Any, field: str):
    """Validate request data into a pydantic model.

    Raises:
        ValidationError: With the first pydantic error messages in details.
    """
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(
            message=f"Invalid {field}",
            field=field,
            details={"errors": [err["msg"] for err in e.errors()[:10]]},
            code=ErrorCode.INVALID_FIELD
        ) from e


def parse_enum(enum_cls, value: Any, field: str):
    """Enum member for a request value, listing the allowed values on error."""
    try:
        return enum_cls(value)
    except ValueError as e:
        allowed = ", ".join(v.value for v in enum_cls)
        raise ValidationError(
            message=f"Invalid {field} '{value}'. Expected one of: {allowed}",
            field=field,
            code=ErrorCode.INVALID_FIELD
        ) from e


def _positive_int(value: Any, field: str, default: Optional[int] = None) -> Optional[int]:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 1 or value != int(value):
        raise ValidationError(message=f"{field} must be a positive integer", field=field)
    return int(value)


def _number(value: Any, field: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(message=f"{field} must be a number", field=field)
    return float(value)


def _dump(model) -> Dict[str, Any]:
    return model.model_dump(by_alias=True, mode="json")


# ============================================================================
# Deel Validations Proxy
# ============================================================================


def _country_code_from_request(req: https_fn.Request) -> Optional[str]:
    """Country code from ``?country_code=`` or the last path segment."""
    args = getattr(req, "args", None) or {}
    code = args.get("country_code")
    if code:
        return code
    segments = [s for s in (getattr(req, "path", "") or "").split("/") if s]
    if segments and segments[-1] not in ("eor_validations", "eor-validations"):
        return segments[-1]
    return None


async def _eor_validations_async(
    country_code: Optional[str],
    client: Optional[DeelPartnerClient] = None
) -> Dict[str, Any]:
    client = client or DeelPartnerClient()
    return await client.get_validations(country_code or "")


@https_fn.on_request(
    timeout_sec=30,
    memory=options.MemoryOption.MB_256,
    region="us-central1"
)
def eor_validations(req: https_fn.Request) -> https_fn.Response:
    """Proxy Deel EOR validations for a country.

    GET /eor_validations/{country_code}

    The upstream body is passed through unchanged; errors use a flat
    ``{"error": ...}`` body instead of the success/error envelope.
    """
    if req.method == "OPTIONS":
        return _cors_response()

    country_code = _country_code_from_request(req)
    try:
        data = asyncio.run(_eor_validations_async(country_code))
        return _json_response(data)

    except ValidationError as e:
        return _json_response({"error": e.message}, status=400)
    except UpstreamError as e:
        logger.error("eor_validations_upstream_error", country_code=country_code, status_code=e.status_code)
        return _json_response({"error": VALIDATIONS_ERROR}, status=e.status_code)
    except Exception as e:
        logger.exception("eor_validations_exception", country_code=country_code, error=str(e))
        return _json_response({"error": "Internal server error"}, status=500)


# ============================================================================
# Quote Enhancement
# ============================================================================


async def _enhance_quote_async(
    data: Dict[str, Any],
    enhancement_service=None,
    usd_manager=None
) -> Dict[str, Any]:
    """Normalize a raw provider payload, enhance it and mirror it in USD.

    Args:
        data: Request body with ``provider``, ``quote`` and optional
            ``quoteType`` and ``contractMonths``.
        enhancement_service: Injected EnhancementService.
        usd_manager: Injected USDConversionManager.

    Raises:
        ValidationError: On missing fields or an unusable provider payload.
        GracemarkError: If the enhancement itself fails.
    """
    from services.enhancement_service import EnhancementService
    from services.quote_normalizer import normalize_quote
    from services.usd_conversion import USDConversionManager

    require_fields(data, "provider", "quote")
    provider = str(data["provider"]).lower()
    quote_type = parse_enum(QuoteType, data.get("quoteType", QuoteType.ALL_INCLUSIVE.value), "quoteType")
    months = _positive_int(data.get("contractMonths"), "contractMonths")

    quote = normalize_quote(provider, data["quote"])
    if quote is None:
        raise ValidationError(
            message=f"Could not normalize {provider} quote",
            field="quote",
            code=ErrorCode.INVALID_FIELD
        )

    service = enhancement_service or EnhancementService()
    enhanced = await service.enhance(quote, quote_type, months)

    manager = usd_manager or USDConversionManager()
    usd = await manager.convert_quote_to_usd(quote, role=provider)

    return {
        "quote": _dump(quote),
        "enhancedQuote": _dump(enhanced),
        "usdConversion": asdict(usd) if usd else None,
        "usdConversionError": manager.usd_conversion_error,
    }


@https_fn.on_request(
    timeout_sec=120,
    memory=options.MemoryOption.MB_512,
    region="us-central1"
)
def enhance_quote(req: https_fn.Request) -> https_fn.Response:
    """Normalize and enhance one provider quote.

    Request body:
    {
        "provider": "remote",
        "quote": {...},               // raw provider payload
        "quoteType": "all-inclusive", // Optional
        "contractMonths": 12          // Optional
    }
    """
    if req.method == "OPTIONS":
        return _cors_response()

    try:
        data = get_request_json(req)
        result = asyncio.run(_enhance_quote_async(data))
        return _json_response(success_response(result))

    except ValidationError as e:
        return _json_response(error_response(e.code, e.message, e.details), status=400)
    except GracemarkError as e:
        logger.error("enhance_quote_error", error=e.message, code=e.code)
        return _json_response(error_response(e.code, e.message, e.details), status=500)
    except Exception as e:
        logger.exception("enhance_quote_exception", error=str(e))
        return _json_response(
            error_response(ErrorCode.ENHANCEMENT_FAILED, f"Failed to enhance quote: {str(e)}"),
            status=500
        )


# ============================================================================
# Cost Categorization
# ============================================================================


async def _categorize_costs_async(data: Dict[str, Any], categorizer=None) -> Dict[str, Any]:
    """Categorize cost items with the LLM only.

    Raises:
        ValidationError: On missing fields or malformed cost items.
        GracemarkError: If the LLM call fails.
    """
    from services.cost_categorizer import CostCategorizer, empty_cost_data

    require_fields(data, "provider", "country", "currency")
    raw_items = data.get("costItems")
    if not isinstance(raw_items, list):
        raise ValidationError(message="costItems must be a list", field="costItems")

    items = [parse_model(CostItemInput, item, "costItems") for item in raw_items]
    if not items:
        return _dump(empty_cost_data())

    categorizer = categorizer or CostCategorizer()
    result = await categorizer.categorize_with_llm(
        data["provider"], data["country"], data["currency"], items
    )
    return _dump(result)


@https_fn.on_request(
    timeout_sec=60,
    memory=options.MemoryOption.MB_256,
    region="us-central1"
)
def categorize_costs(req: https_fn.Request) -> https_fn.Response:
    """Sort cost items into the five acid-test buckets.

    Request body:
    {
        "provider": "deel",
        "country": "Germany",
        "currency": "EUR",
        "costItems": [{"key": "base_salary", "name": "Base Salary", "monthly_amount": 5000}]
    }
    """
    if req.method == "OPTIONS":
        return _cors_response()

    try:
        data = get_request_json(req)
        result = asyncio.run(_categorize_costs_async(data))
        return _json_response(success_response(result))

    except ValidationError as e:
        return _json_response(error_response(e.code, e.message, e.details), status=400)
    except GracemarkError as e:
        logger.error("categorize_costs_error", error=e.message, code=e.code)
        return _json_response(
            error_response(e.code, "Failed to categorize costs", {"message": e.message, **e.details}),
            status=500
        )
    except Exception as e:
        logger.exception("categorize_costs_exception", error=str(e))
        return _json_response(
            error_response(ErrorCode.LLM_ERROR, "Failed to categorize costs", {"message": str(e)}),
            status=500
        )


# ============================================================================
# Reconciliation
# ============================================================================


async def _reconcile_async(data: Dict[str, Any], service=None) -> Dict[str, Any]:
    """Reconcile enhanced quotes and return the state and summary.

    Raises:
        ValidationError: On a malformed request or unknown policy.
    """
    from services.reconciliation_engine import ReconciliationService

    raw = data.get("enhancements")
    if not isinstance(raw, dict) or not raw:
        raise ValidationError(message="enhancements must be a non-empty object", field="enhancements")

    enhanced_quotes = {
        str(provider).lower(): parse_model(EnhancedQuote, quote, f"enhancements.{provider}")
        for provider, quote in raw.items()
    }

    tolerance = data.get("threshold")
    if tolerance is not None:
        tolerance = _number(tolerance, "threshold")
        if not 0 <= tolerance < 1:
            raise ValidationError(message="threshold must be in [0, 1)", field="threshold")

    service = service or ReconciliationService()
    state, summary, reasons = await service.reconcile(
        enhanced_quotes,
        target_currency=str(data.get("targetCurrency") or "USD").upper(),
        policy=data.get("policy"),
        tolerance=tolerance,
        contract_months=_positive_int(data.get("contractMonths"), "contractMonths"),
    )
    return {
        "state": _dump(state),
        "summary": _dump(summary),
        "exclusions": reasons,
    }


@https_fn.on_request(
    timeout_sec=60,
    memory=options.MemoryOption.MB_256,
    region="us-central1"
)
def reconcile_providers(req: https_fn.Request) -> https_fn.Response:
    """Pick one provider among the enhanced quotes.

    Request body:
    {
        "enhancements": {"deel": {...EnhancedQuote}, "remote": {...}},
        "targetCurrency": "USD",        // Optional
        "policy": "highest_in_band",    // Optional
        "threshold": 0.04               // Optional
    }

    A run that ends without a final choice is still a 200; the state
    carries ``failureReason``.
    """
    if req.method == "OPTIONS":
        return _cors_response()

    try:
        data = get_request_json(req)
        result = asyncio.run(_reconcile_async(data))
        return _json_response(success_response(result))

    except ValidationError as e:
        return _json_response(error_response(e.code, e.message, e.details), status=400)
    except GracemarkError as e:
        logger.error("reconcile_providers_error", error=e.message, code=e.code)
        return _json_response(error_response(e.code, e.message, e.details), status=500)
    except Exception as e:
        logger.exception("reconcile_providers_exception", error=str(e))
        return _json_response(
            error_response(ErrorCode.RECONCILIATION_INVALID_PHASE, f"Failed to reconcile providers: {str(e)}"),
            status=500
        )


# ============================================================================
# Acid Test
# ============================================================================


async def _acid_test_async(data: Dict[str, Any], calculator=None) -> Dict[str, Any]:
    """Run the acid test on the final choice's enhanced quote.

    Raises:
        ValidationError: On a missing quote, bill rate or months.
    """
    from services.acid_test import AcidTestCalculator
    from utils.recon_logger import log_acid_test_result

    if data.get("finalChoice"):
        choice = parse_model(FinalChoice, data["finalChoice"], "finalChoice")
        enhanced = choice.enhanced_quote
    elif data.get("enhancedQuote"):
        enhanced = parse_model(EnhancedQuote, data["enhancedQuote"], "enhancedQuote")
    else:
        enhanced = None
    if enhanced is None:
        raise ValidationError(
            message="Missing finalChoice.enhancedQuote or enhancedQuote in request",
            field="enhancedQuote",
            code=ErrorCode.MISSING_FIELD
        )

    require_fields(data, "billRate", "months")
    cost_data = None
    if data.get("costData"):
        cost_data = parse_model(AcidTestCostData, data["costData"], "costData")

    is_all_inclusive = data.get("isAllInclusive")
    calculator = calculator or AcidTestCalculator()
    result = await calculator.run(
        enhanced,
        bill_rate=_number(data["billRate"], "billRate"),
        months=_positive_int(data["months"], "months"),
        cost_data=cost_data,
        is_all_inclusive=bool(is_all_inclusive) if is_all_inclusive is not None else None,
    )
    log_acid_test_result(
        result.provider,
        result.status,
        result.profitability.profit,
        result.currency,
        result.profit_usd,
        result.errors,
    )
    return _dump(result)


@https_fn.on_request(
    timeout_sec=60,
    memory=options.MemoryOption.MB_256,
    region="us-central1"
)
def acid_test(req: https_fn.Request) -> https_fn.Response:
    """Check a client bill rate against the selected provider's costs.

    Request body:
    {
        "finalChoice": {...FinalChoice},   // or "enhancedQuote": {...}
        "billRate": 11600,
        "months": 6,
        "costData": {...},                 // Optional pre-categorized buckets
        "isAllInclusive": true             // Optional
    }
    """
    if req.method == "OPTIONS":
        return _cors_response()

    try:
        data = get_request_json(req)
        result = asyncio.run(_acid_test_async(data))
        return _json_response(success_response(result))

    except ValidationError as e:
        return _json_response(error_response(e.code, e.message, e.details), status=400)
    except GracemarkError as e:
        logger.error("acid_test_error", error=e.message, code=e.code)
        return _json_response(error_response(e.code, e.message, e.details), status=500)
    except Exception as e:
        logger.exception("acid_test_exception", error=str(e))
        return _json_response(
            error_response(ErrorCode.VALIDATION_ERROR, f"Failed to run acid test: {str(e)}"),
            status=500
        )


# ============================================================================
# Quote Storage
# ============================================================================


async def _save_quote_async(data: Dict[str, Any], store=None) -> Dict[str, Any]:
    """Validate a quote result and store it.

    Raises:
        ValidationError: On a malformed ID or record fields.
        GracemarkError: If the Firestore write fails.
    """
    from services.quote_normalizer import validate_quote_id
    from services.quote_store import QuoteStore

    require_fields(data, "currency")
    quote_id = data.get("quoteId")
    if quote_id is not None:
        is_valid, error = validate_quote_id(quote_id)
        if not is_valid:
            raise ValidationError(message=error, field="quoteId", code=ErrorCode.INVALID_QUOTE_ID)

    record = parse_model(QuoteRecord, {
        "quoteId": quote_id,
        "calculatorType": data.get("calculatorType") or "eor",
        "formData": data.get("formData") or {},
        "quotes": data.get("quotes") or {},
        "metadata": {
            "timestamp": int(time.time() * 1000),
            "currency": data["currency"],
            "usdConversions": data.get("usdConversions"),
        },
        "status": QuoteRecordStatus.COMPLETED if data.get("quotes") else QuoteRecordStatus.CALCULATING,
    }, "quote")
    store = store or QuoteStore()
    quote_id = await store.save_quote(record)
    return {"quoteId": quote_id, "status": record.status}


async def _get_quote_async(quote_id: Any, store=None) -> Dict[str, Any]:
    from services.quote_store import QuoteStore

    store = store or QuoteStore()
    quote = await store.get_quote(quote_id)
    if quote is None:
        raise GracemarkError(
            code=ErrorCode.QUOTE_NOT_FOUND,
            message=f"Quote not found: {quote_id}",
            details={"quoteId": quote_id}
        )
    return quote


@https_fn.on_request(
    timeout_sec=30,
    memory=options.MemoryOption.MB_256,
    region="us-central1"
)
def save_quote(req: https_fn.Request) -> https_fn.Response:
    """Store a quote result under /quotes/{quoteId}.

    Request body:
    {
        "quoteId": "quote_1700000000000_ab12cd34e",  // Optional
        "currency": "EUR",
        "formData": {...},
        "quotes": {"deel": {...}, "remote": {...}}
    }
    """
    if req.method == "OPTIONS":
        return _cors_response()

    try:
        data = get_request_json(req)
        result = asyncio.run(_save_quote_async(data))
        return _json_response(success_response(result))

    except ValidationError as e:
        return _json_response(error_response(e.code, e.message, e.details), status=400)
    except GracemarkError as e:
        logger.error("save_quote_error", error=e.message, code=e.code)
        return _json_response(error_response(e.code, e.message, e.details), status=500)
    except Exception as e:
        logger.exception("save_quote_exception", error=str(e))
        return _json_response(
            error_response(ErrorCode.FIRESTORE_WRITE_FAILED, f"Failed to save quote: {str(e)}"),
            status=500
        )


@https_fn.on_request(
    timeout_sec=30,
    memory=options.MemoryOption.MB_256,
    region="us-central1"
)
def get_quote(req: https_fn.Request) -> https_fn.Response:
    """Read a stored quote result.

    Request body:
    {
        "quoteId": "quote_1700000000000_ab12cd34e"
    }
    """
    if req.method == "OPTIONS":
        return _cors_response()

    try:
        data = get_request_json(req)
        quote_id = data.get("quoteId")
        result = asyncio.run(_get_quote_async(quote_id))
        return _json_response(success_response(result))

    except ValidationError as e:
        return _json_response(error_response(e.code, e.message, e.details), status=400)
    except GracemarkError as e:
        status = 404 if e.code == ErrorCode.QUOTE_NOT_FOUND else 500
        if status == 500:
            logger.error("get_quote_error", error=e.message, code=e.code)
        return _json_response(error_response(e.code, e.message, e.details), status=status)
    except Exception as e:
        logger.exception("get_quote_exception", error=str(e))
        return _json_response(
            error_response(ErrorCode.FIRESTORE_ERROR, f"Failed to get quote: {str(e)}"),
            status=500
        )


CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
    "Access-Control-Max-Age": "3600"
}


def _cors_response() -> https_fn.Response:
    """Return CORS preflight response."""
    return https_fn.Response(
        "",
        status=204,
        headers=CORS_HEADERS
    )


def _json_default(o: Any):
    """JSON serializer for Firestore timestamps and other stray types."""
    if isinstance(o, (datetime, date)):
        return o.isoformat()
    if hasattr(o, "isoformat"):
        return o.isoformat()
    return str(o)


def _json_response(data: dict, status: int = 200) -> https_fn.Response:
    """Return JSON response with CORS headers."""
    return https_fn.Response(
        json.dumps(data, default=_json_default),
        status=status,
        mimetype="application/json",
        headers=CORS_HEADERS
    )
