"""
Deposit Reconciliation - Database Models

Tables:
- deposits: Incoming bank deposit notifications (one row per provider transaction)
- orders: Orders awaiting payment (owned by the order service; this engine only
  reads them and flips payment_status)
- match_records: Deposit-to-order matches, history kept via is_active
- reconciliation_audit_log: Append-only trail of every match attempt
"""

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import (
    Column, String, Text, Float, Boolean, DateTime, BigInteger,
    ForeignKey, Index, UniqueConstraint, Enum as SQLEnum, JSON, text
)

from database.connection import Base


def generate_uuid() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ==================== ENUMS ====================

class DepositStatus(str, PyEnum):
    """Reconciliation state of a persisted deposit"""
    RECEIVED = "RECEIVED"
    UNMATCHED = "UNMATCHED"
    AUTO_MATCHED = "AUTO_MATCHED"
    MANUAL_MATCHED = "MANUAL_MATCHED"


class MatchType(str, PyEnum):
    """How a match was established"""
    AUTO = "AUTO"
    MANUAL = "MANUAL"


class PaymentStatus(str, PyEnum):
    """Order payment status written by the engine"""
    PENDING = "PENDING"
    PAID = "PAID"


class AuditAction(str, PyEnum):
    """Audit log actions"""
    MATCH_CREATED = "match.created"
    MATCH_REJECTED = "match.rejected"
    MATCH_RELEASED = "match.released"


MATCHED_STATUSES = (DepositStatus.AUTO_MATCHED, DepositStatus.MANUAL_MATCHED)


# ==================== DATABASE MODELS ====================

class DepositDB(Base):
    """
    One bank deposit notification.

    Immutable after ingestion except for the denormalized match fields,
    which mirror the active MatchRecordDB row for dashboard listing.
    """
    __tablename__ = "deposits"
    __table_args__ = (
        UniqueConstraint("provider", "external_id", name="uq_deposits_provider_external_id"),
        Index("ix_deposits_status_transaction_date", "status", "transaction_date"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    provider = Column(String(32), nullable=False)
    external_id = Column(String(128), nullable=False)

    bank_code = Column(String(16), nullable=True, index=True)
    bank_name = Column(String(64), nullable=True)
    account_number = Column(String(64), nullable=True)
    depositor_name = Column(Text, nullable=False, default="")
    depositor_account = Column(String(64), nullable=True)
    amount = Column(BigInteger, nullable=False)
    balance_after = Column(BigInteger, nullable=True)
    transaction_date = Column(DateTime(timezone=True), nullable=False)
    memo = Column(Text, nullable=True)
    raw_payload = Column(JSON, nullable=True)

    status = Column(
        SQLEnum(DepositStatus, name="deposit_status_enum", native_enum=False),
        nullable=False,
        default=DepositStatus.RECEIVED
    )
    matched_order_id = Column(String(36), nullable=True)
    match_type = Column(SQLEnum(MatchType, name="match_type_enum", native_enum=False), nullable=True)
    match_score = Column(Float, nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)


class OrderDB(Base):
    """
    Order as seen by the reconciliation engine.

    Only payment_status and paid_at are written here.
    """
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    order_number = Column(String(64), nullable=True, index=True)
    customer_name = Column(Text, nullable=False, default="")
    total_amount = Column(BigInteger, nullable=False)
    payment_status = Column(
        SQLEnum(PaymentStatus, name="payment_status_enum", native_enum=False),
        nullable=False,
        default=PaymentStatus.PENDING,
        index=True
    )
    paid_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, index=True)


class MatchRecordDB(Base):
    """
    Association between one deposit and one order.

    Rows are never edited in place except to deactivate them on unmatch.
    The partial unique indexes allow any number of released matches but
    only one active match per order and per deposit.
    """
    __tablename__ = "match_records"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    deposit_id = Column(String(36), ForeignKey("deposits.id", ondelete="RESTRICT"), nullable=False)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="RESTRICT"), nullable=False)
    match_type = Column(SQLEnum(MatchType, name="match_type_enum", native_enum=False), nullable=False)
    match_score = Column(Float, nullable=False)
    scoring_breakdown = Column(JSON, nullable=True)
    actor_id = Column(String(128), nullable=False, default="system")
    is_active = Column(Boolean, nullable=False, default=True)
    matched_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    unmatched_at = Column(DateTime(timezone=True), nullable=True)
    unmatched_by = Column(String(128), nullable=True)

    __table_args__ = (
        Index(
            "uq_match_records_active_order", "order_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
        Index(
            "uq_match_records_active_deposit", "deposit_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
    )


class MatchAuditLogDB(Base):
    """
    Append-only record of every match attempt, successful or not.
    """
    __tablename__ = "reconciliation_audit_log"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    action = Column(String(32), nullable=False)
    deposit_id = Column(String(36), nullable=True, index=True)
    order_id = Column(String(36), nullable=True)
    match_id = Column(String(36), nullable=True)
    match_type = Column(String(16), nullable=True)
    match_score = Column(Float, nullable=True)
    actor_id = Column(String(128), nullable=False, default="system")
    success = Column(Boolean, nullable=False, default=True)
    detail = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=utc_now)
