"""Quote store for Gracemark.

Persists quote results in Firestore under /quotes/{quoteId}.
"""

import inspect
from typing import Any, Dict, Optional

import structlog
from firebase_admin import firestore

from config.errors import ErrorCode, GracemarkError, ValidationError
from models.quote_record import QuoteRecord
from services.quote_normalizer import generate_quote_id, validate_quote_id

logger = structlog.get_logger()


def _require_valid_id(quote_id: Any) -> str:
    is_valid, error = validate_quote_id(quote_id)
    if not is_valid:
        raise ValidationError(error, field="quoteId", code=ErrorCode.INVALID_QUOTE_ID)
    return quote_id


class QuoteStore:
    """CRUD for stored quote results.

    Note: Firebase Admin SDK for Python is synchronous. Methods are async
    for interface compatibility with the rest of the service layer.
    """

    COLLECTION_QUOTES = "quotes"

    def __init__(self, db=None):
        self._db = db

    @property
    def db(self):
        """Get Firestore client (lazy initialization)."""
        if self._db is None:
            self._db = firestore.client()
        return self._db

    async def _maybe_await(self, result: Any) -> Any:
        """Await result if it is awaitable (supports AsyncMock in unit tests)."""
        if inspect.isawaitable(result):
            return await result
        return result

    def _doc(self, quote_id: str):
        return self.db.collection(self.COLLECTION_QUOTES).document(quote_id)

    async def save_quote(self, record: QuoteRecord) -> str:
        """Create or overwrite a quote document.

        Args:
            record: Quote result; an ID is generated when it has none.

        Returns:
            The quote ID the record was stored under.

        Raises:
            ValidationError: If the record carries a malformed ID.
            GracemarkError: If the Firestore write fails.
        """
        quote_id = _require_valid_id(record.quote_id) if record.quote_id else generate_quote_id()
        data = record.to_firestore_dict()
        data["updatedAt"] = firestore.SERVER_TIMESTAMP

        try:
            await self._maybe_await(self._doc(quote_id).set(data))
        except Exception as e:
            logger.error("quote_save_failed", quote_id=quote_id, error=str(e))
            raise GracemarkError(
                code=ErrorCode.FIRESTORE_WRITE_FAILED,
                message=f"Failed to save quote: {str(e)}",
                details={"quote_id": quote_id}
            ) from e

        logger.info("quote_saved", quote_id=quote_id, status=record.status)
        return quote_id

    async def get_quote(self, quote_id: str) -> Optional[Dict[str, Any]]:
        """Fetch a quote document.

        Returns:
            Document data with ``quoteId``, or None if it does not exist.

        Raises:
            ValidationError: If the ID is malformed.
            GracemarkError: If the Firestore read fails.
        """
        quote_id = _require_valid_id(quote_id)
        try:
            doc = await self._maybe_await(self._doc(quote_id).get())
        except Exception as e:
            logger.error("quote_get_failed", quote_id=quote_id, error=str(e))
            raise GracemarkError(
                code=ErrorCode.FIRESTORE_ERROR,
                message=f"Failed to get quote: {str(e)}",
                details={"quote_id": quote_id}
            ) from e

        if not doc.exists:
            return None
        return {"quoteId": doc.id, **doc.to_dict()}

    async def delete_quote(self, quote_id: str) -> None:
        """Delete a quote document."""
        quote_id = _require_valid_id(quote_id)
        try:
            await self._maybe_await(self._doc(quote_id).delete())
        except Exception as e:
            logger.error("quote_delete_failed", quote_id=quote_id, error=str(e))
            raise GracemarkError(
                code=ErrorCode.FIRESTORE_WRITE_FAILED,
                message=f"Failed to delete quote: {str(e)}",
                details={"quote_id": quote_id}
            ) from e
        logger.info("quote_deleted", quote_id=quote_id)
