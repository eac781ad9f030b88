from .connection import get_db, engine, AsyncSessionLocal, init_db, Base

# Import payment models to ensure they are registered with Base
from .payment_models import (
    DepositDB, OrderDB, MatchRecordDB, MatchAuditLogDB,
    DepositStatus, MatchType, PaymentStatus, AuditAction, MATCHED_STATUSES
)

__all__ = [
    'get_db', 'engine', 'AsyncSessionLocal', 'init_db', 'Base',
    # Reconciliation models
    'DepositDB', 'OrderDB', 'MatchRecordDB', 'MatchAuditLogDB',
    'DepositStatus', 'MatchType', 'PaymentStatus', 'AuditAction', 'MATCHED_STATUSES',
]
