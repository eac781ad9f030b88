"""
Reconciliation error taxonomy.

Every failure the engine surfaces to a caller is one of these. The HTTP
layer maps them to status codes via ``status_code`` and never shows the
underlying storage error text.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import OperationalError, InterfaceError, DisconnectionError, TimeoutError as PoolTimeoutError

logger = logging.getLogger(__name__)


class ReconciliationError(Exception):
    """Base class for reconciliation failures."""
    status_code = 500
    code = "reconciliation_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DuplicateDeposit(ReconciliationError):
    """The deposit was already ingested. Idempotent no-op, not a failure."""
    status_code = 200
    code = "duplicate"

    def __init__(self, provider: str, external_id: str, deposit_id: str = None):
        super().__init__(f"Deposit {provider}:{external_id} already ingested")
        self.provider = provider
        self.external_id = external_id
        self.deposit_id = deposit_id


class NotFoundError(ReconciliationError):
    status_code = 404
    code = "not_found"


class ConflictError(ReconciliationError):
    status_code = 400
    code = "conflict"


class ValidationError(ReconciliationError):
    status_code = 400
    code = "validation_error"


class AuthenticationError(ReconciliationError):
    status_code = 401
    code = "authentication_error"


class StorageUnavailable(ReconciliationError):
    """Transient storage failure. Safe for the caller to retry."""
    status_code = 503
    code = "storage_unavailable"

    def __init__(self, message: str = "Storage temporarily unavailable"):
        super().__init__(message)


ORDER_ALREADY_MATCHED = "Order is already matched to another deposit"
DEPOSIT_ALREADY_MATCHED = "Deposit is already matched to an order"

_TRANSIENT_ERRORS = (
    OperationalError,
    InterfaceError,
    DisconnectionError,
    PoolTimeoutError,
    asyncio.TimeoutError,
    ConnectionError,
)


@asynccontextmanager
async def storage_guard(operation: str) -> AsyncIterator[None]:
    """Translate transient storage failures into StorageUnavailable."""
    try:
        yield
    except _TRANSIENT_ERRORS as e:
        logger.error(f"Storage failure during {operation}: {type(e).__name__}: {e}")
        raise StorageUnavailable() from e
