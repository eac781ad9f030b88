"""
Reconciliation Service

Core business logic for the deposit reconciliation engine:
- Idempotent deposit ingestion
- Candidate search and ranking
- Auto-matching of the top candidate
- Operator (manual) matching and unmatching
- Audit logging

Deposit lifecycle:
    RECEIVED -> DUPLICATE (terminal, nothing persisted)
             -> UNMATCHED -> MANUAL_MATCHED
             -> AUTO_MATCHED
    AUTO_MATCHED / MANUAL_MATCHED -> UNMATCHED (explicit unmatch)

Every state change that touches a deposit and an order happens in one
transaction. The audit log is written afterwards and its failure never
undoes a committed match.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, List, Optional

from sqlalchemy import select, func, or_, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config import get_settings
from database.payment_models import (
    DepositDB,
    OrderDB,
    MatchRecordDB,
    MatchAuditLogDB,
    DepositStatus,
    MatchType,
    PaymentStatus,
    AuditAction,
    MATCHED_STATUSES,
)
from reconciliation.deposit_event import DepositEvent
from reconciliation.errors import (
    ReconciliationError,
    DuplicateDeposit,
    NotFoundError,
    ConflictError,
    ValidationError,
    storage_guard,
    ORDER_ALREADY_MATCHED,
    DEPOSIT_ALREADY_MATCHED,
)
from reconciliation.matching_rules.evaluator import MatchEvaluator, MatchSuggestion
from reconciliation.matching_rules.similarity import score_breakdown, confidence_level, to_utc
from reconciliation.services.candidate_finder import CandidateFinder

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


class IngestStatus(str, Enum):
    """Outcome of one ingest call."""
    DUPLICATE = "DUPLICATE"
    UNMATCHED = "UNMATCHED"
    AUTO_MATCHED = "AUTO_MATCHED"


class ReconciliationEvent:
    """Structured log event names."""
    DEPOSIT_RECEIVED = "deposit.received"
    DEPOSIT_DUPLICATE = "deposit.duplicate"
    DEPOSIT_RESUMED = "deposit.resumed"
    CANDIDATES_EVALUATED = "candidates.evaluated"
    MATCH_CREATED = "match.created"
    MATCH_REJECTED = "match.rejected"
    MATCH_RELEASED = "match.released"
    AUDIT_WRITE_FAILED = "audit.write_failed"


@dataclass
class MatchOutcome:
    """A committed (or released) deposit/order match."""
    match_id: str
    deposit_id: str
    order_id: str
    match_type: MatchType
    match_score: float
    actor_id: str
    matched_at: datetime
    deposit_status: DepositStatus
    scoring_breakdown: Dict[str, float] = field(default_factory=dict)
    order_number: Optional[str] = None
    is_active: bool = True
    unmatched_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "matchId": self.match_id,
            "depositId": self.deposit_id,
            "orderId": self.order_id,
            "orderNumber": self.order_number,
            "matchType": self.match_type.value,
            "matchScore": self.match_score,
            "confidenceLevel": confidence_level(self.match_score),
            "scoringBreakdown": self.scoring_breakdown,
            "actorId": self.actor_id,
            "matchedAt": _iso(self.matched_at),
            "depositStatus": self.deposit_status.value,
            "isActive": self.is_active,
            "unmatchedAt": _iso(self.unmatched_at),
        }


@dataclass
class IngestResult:
    """Result of ingesting one deposit event."""
    status: IngestStatus
    deposit_id: Optional[str]
    match: Optional[MatchOutcome] = None
    candidates: List[MatchSuggestion] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "depositId": self.deposit_id,
            "match": self.match.to_dict() if self.match else None,
            "candidatesCount": len(self.candidates),
        }


def log_reconciliation_event(
    event_type: str,
    details: Dict[str, Any],
    deposit_id: Optional[str] = None,
    actor: str = SYSTEM_ACTOR
):
    """Log reconciliation event for the structured log stream."""
    log_entry = {
        "event": event_type,
        "deposit_id": deposit_id,
        "details": details,
        "actor": actor,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }
    logger.info(f"Reconciliation event: {event_type}", extra=log_entry)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return to_utc(value).isoformat() if value else None


def deposit_to_dict(deposit: DepositDB) -> Dict[str, Any]:
    """Dashboard representation of a deposit row."""
    return {
        "id": deposit.id,
        "provider": deposit.provider,
        "externalId": deposit.external_id,
        "bankCode": deposit.bank_code,
        "bankName": deposit.bank_name,
        "accountNumber": deposit.account_number,
        "depositorName": deposit.depositor_name,
        "depositorAccount": deposit.depositor_account,
        "amount": deposit.amount,
        "balanceAfter": deposit.balance_after,
        "transactionDate": _iso(deposit.transaction_date),
        "memo": deposit.memo,
        "status": deposit.status.value if deposit.status else None,
        "matchedOrderId": deposit.matched_order_id,
        "matchType": deposit.match_type.value if deposit.match_type else None,
        "matchScore": deposit.match_score,
        "confidenceLevel": (
            confidence_level(deposit.match_score) if deposit.match_score is not None else None
        ),
        "processedAt": _iso(deposit.processed_at),
        "createdAt": _iso(deposit.created_at),
    }


def _order_summary(order: Optional[OrderDB]) -> Optional[Dict[str, Any]]:
    if order is None:
        return None
    return {
        "id": order.id,
        "orderNumber": order.order_number,
        "customerName": order.customer_name,
        "totalAmount": order.total_amount,
        "paymentStatus": order.payment_status.value,
        "paidAt": _iso(order.paid_at),
        "createdAt": _iso(order.created_at),
    }


def _record_to_outcome(record: MatchRecordDB, deposit_status: DepositStatus,
                       order_number: Optional[str] = None) -> MatchOutcome:
    return MatchOutcome(
        match_id=record.id,
        deposit_id=record.deposit_id,
        order_id=record.order_id,
        match_type=record.match_type,
        match_score=record.match_score,
        actor_id=record.actor_id,
        matched_at=record.matched_at,
        deposit_status=deposit_status,
        scoring_breakdown=record.scoring_breakdown or {},
        order_number=order_number,
        is_active=record.is_active,
        unmatched_at=record.unmatched_at,
    )


# Constraint names (PostgreSQL) and column paths (SQLite) of the deposit-side index
_DEPOSIT_INDEX_MARKERS = ("uq_match_records_active_deposit", "match_records.deposit_id")


def _integrity_conflict(error: IntegrityError) -> str:
    """Conflict message for whichever active-match index rejected the insert."""
    detail = str(getattr(error, "orig", None) or error)
    if any(marker in detail for marker in _DEPOSIT_INDEX_MARKERS):
        return DEPOSIT_ALREADY_MATCHED
    return ORDER_ALREADY_MATCHED


class ReconciliationService:
    """
    Orchestrates ingestion and matching for one database session.

    commit_match() and unmatch() open and finish their own transaction on
    the session; callers must not hold an open transaction across them.
    """

    def __init__(
        self,
        db: AsyncSession,
        finder: Optional[CandidateFinder] = None,
        evaluator: Optional[MatchEvaluator] = None
    ):
        self.db = db
        self.settings = get_settings()
        self.timeout = self.settings.STORAGE_TIMEOUT_SECONDS
        self.finder = finder or CandidateFinder(db)
        self.evaluator = evaluator or MatchEvaluator(
            min_score=self.settings.MATCH_MIN_SCORE,
            top_n=self.settings.EVALUATOR_TOP_N
        )

    # ==================== Storage helpers ====================

    async def _execute(self, statement):
        return await asyncio.wait_for(self.db.execute(statement), timeout=self.timeout)

    async def _commit(self):
        await asyncio.wait_for(self.db.commit(), timeout=self.timeout)

    async def _find_deposit(self, provider: str, external_id: str) -> Optional[DepositDB]:
        result = await self._execute(
            select(DepositDB).where(
                DepositDB.provider == provider,
                DepositDB.external_id == external_id
            )
        )
        return result.scalar_one_or_none()

    async def _get_deposit(self, deposit_id: str, for_update: bool = False) -> Optional[DepositDB]:
        query = select(DepositDB).where(DepositDB.id == deposit_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self._execute(query)
        return result.scalar_one_or_none()

    async def _get_order(self, order_id: str, for_update: bool = False) -> Optional[OrderDB]:
        query = select(OrderDB).where(OrderDB.id == order_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self._execute(query)
        return result.scalar_one_or_none()

    async def _active_match(self, deposit_id: Optional[str] = None,
                            order_id: Optional[str] = None) -> Optional[MatchRecordDB]:
        conditions = [MatchRecordDB.is_active.is_(True)]
        if deposit_id:
            conditions.append(MatchRecordDB.deposit_id == deposit_id)
        if order_id:
            conditions.append(MatchRecordDB.order_id == order_id)
        result = await self._execute(select(MatchRecordDB).where(and_(*conditions)))
        return result.scalars().first()

    # ==================== Ingestion ====================

    async def _persist_deposit(self, event: DepositEvent) -> DepositDB:
        """
        Insert the deposit row.

        Raises:
            DuplicateDeposit: (provider, external_id) already stored
        """
        existing = await self._find_deposit(event.provider, event.external_id)
        if existing:
            raise DuplicateDeposit(event.provider, event.external_id, existing.id)

        deposit = DepositDB(
            provider=event.provider,
            external_id=event.external_id,
            bank_code=event.bank_code,
            bank_name=event.bank_name,
            account_number=event.account_number,
            depositor_name=event.depositor_name,
            depositor_account=event.depositor_account,
            amount=event.amount,
            balance_after=event.balance_after,
            transaction_date=event.transaction_date,
            memo=event.memo,
            raw_payload=event.raw_payload,
            status=DepositStatus.RECEIVED,
        )
        self.db.add(deposit)

        try:
            await self._commit()
        except IntegrityError as e:
            # Lost a race with a concurrent delivery of the same transaction
            await self.db.rollback()
            winner = await self._find_deposit(event.provider, event.external_id)
            raise DuplicateDeposit(
                event.provider, event.external_id, winner.id if winner else None
            ) from e
        except Exception:
            await self.db.rollback()
            raise

        return deposit

    async def ingest(self, event: DepositEvent) -> IngestResult:
        """
        Persist a deposit exactly once and try to auto-match it.

        A redelivery of a deposit that is still RECEIVED (an earlier attempt
        failed after the row was stored) resumes matching instead of being
        reported as a duplicate.

        Returns:
            IngestResult with DUPLICATE, AUTO_MATCHED or UNMATCHED

        Raises:
            StorageUnavailable: transient storage failure, safe to retry
        """
        async with storage_guard("deposit ingest"):
            try:
                deposit = await self._persist_deposit(event)
                resumed = False
            except DuplicateDeposit as dup:
                deposit = await self._get_deposit(dup.deposit_id) if dup.deposit_id else None
                if deposit is None or deposit.status != DepositStatus.RECEIVED:
                    log_reconciliation_event(
                        ReconciliationEvent.DEPOSIT_DUPLICATE,
                        {"provider": dup.provider, "external_id": dup.external_id},
                        deposit_id=dup.deposit_id
                    )
                    return IngestResult(status=IngestStatus.DUPLICATE, deposit_id=dup.deposit_id)
                resumed = True

        deposit_id = deposit.id
        log_reconciliation_event(
            ReconciliationEvent.DEPOSIT_RESUMED if resumed else ReconciliationEvent.DEPOSIT_RECEIVED,
            {
                "provider": event.provider,
                "external_id": event.external_id,
                "amount": event.amount,
            },
            deposit_id=deposit_id
        )

        candidates = await self.finder.find_candidates(deposit)
        ranked = self.evaluator.evaluate(deposit, candidates)

        log_reconciliation_event(
            ReconciliationEvent.CANDIDATES_EVALUATED,
            {
                "candidates_found": len(candidates),
                "candidates_ranked": len(ranked),
                "top_score": ranked[0].score if ranked else None,
            },
            deposit_id=deposit_id
        )

        top = ranked[0] if ranked else None
        if top and top.score >= self.settings.AUTO_MATCH_THRESHOLD:
            try:
                outcome = await self.commit_match(
                    deposit_id, top.order_id, MatchType.AUTO, top.score, SYSTEM_ACTOR
                )
                return IngestResult(
                    status=IngestStatus.AUTO_MATCHED,
                    deposit_id=deposit_id,
                    match=outcome,
                    candidates=ranked
                )
            except ConflictError as e:
                # Order claimed by another deposit between search and commit
                logger.warning(f"Auto-match of deposit {deposit_id} lost to a concurrent match: {e.message}")

        final_status = await self._mark_unmatched(deposit_id)
        if final_status != DepositStatus.UNMATCHED:
            # A concurrent redelivery or an operator settled the deposit first
            return IngestResult(status=IngestStatus.DUPLICATE, deposit_id=deposit_id, candidates=ranked)
        return IngestResult(status=IngestStatus.UNMATCHED, deposit_id=deposit_id, candidates=ranked)

    async def _mark_unmatched(self, deposit_id: str) -> Optional[DepositStatus]:
        """Move a RECEIVED deposit to UNMATCHED; returns the status it ends in."""
        async with storage_guard("mark unmatched"):
            try:
                deposit = await self._get_deposit(deposit_id, for_update=True)
                if deposit is not None and deposit.status == DepositStatus.RECEIVED:
                    deposit.status = DepositStatus.UNMATCHED
                    deposit.processed_at = datetime.now(timezone.utc)
                await self._commit()
            except Exception:
                await self.db.rollback()
                raise
        return deposit.status if deposit is not None else None

    # ==================== Matching ====================

    async def commit_match(
        self,
        deposit_id: str,
        order_id: str,
        match_type: MatchType,
        score: Optional[float] = None,
        actor_id: str = SYSTEM_ACTOR
    ) -> MatchOutcome:
        """
        Match a deposit to an order in one transaction.

        AUTO matches record ``score`` (or the computed total when omitted).
        MANUAL matches record the fixed manual confidence; the computed
        breakdown is still stored for reporting.

        Raises:
            NotFoundError: deposit or order missing
            ConflictError: deposit already matched, or order already claimed
            StorageUnavailable: transient storage failure
        """
        match_type = MatchType(match_type)
        attempted_score = self.settings.MANUAL_MATCH_SCORE if match_type == MatchType.MANUAL else score

        async with storage_guard("commit match"):
            try:
                deposit = await self._get_deposit(deposit_id, for_update=True)
                if deposit is None:
                    raise NotFoundError(f"Deposit {deposit_id} not found")
                if deposit.status in MATCHED_STATUSES:
                    raise ConflictError(DEPOSIT_ALREADY_MATCHED)

                # Row lock serialises concurrent matches against the same order
                order = await self._get_order(order_id, for_update=True)
                if order is None:
                    raise NotFoundError(f"Order {order_id} not found")

                if await self._active_match(order_id=order_id):
                    raise ConflictError(ORDER_ALREADY_MATCHED)
                if order.payment_status != PaymentStatus.PENDING:
                    raise ConflictError("Order is not awaiting payment")

                breakdown = score_breakdown(deposit, order)
                if match_type == MatchType.MANUAL:
                    recorded = self.settings.MANUAL_MATCH_SCORE
                    new_status = DepositStatus.MANUAL_MATCHED
                else:
                    recorded = breakdown["total"] if score is None else score
                    new_status = DepositStatus.AUTO_MATCHED
                recorded = min(1.0, max(0.0, float(recorded)))
                attempted_score = recorded

                now = datetime.now(timezone.utc)
                record = MatchRecordDB(
                    deposit_id=deposit.id,
                    order_id=order.id,
                    match_type=match_type,
                    match_score=recorded,
                    scoring_breakdown=breakdown,
                    actor_id=actor_id,
                    is_active=True,
                    matched_at=now,
                )
                self.db.add(record)

                order.payment_status = PaymentStatus.PAID
                order.paid_at = now

                deposit.status = new_status
                deposit.matched_order_id = order.id
                deposit.match_type = match_type
                deposit.match_score = recorded
                deposit.processed_at = now

                await self._commit()

            except ReconciliationError as e:
                await self.db.rollback()
                await self._record_rejection(deposit_id, order_id, match_type, attempted_score, actor_id, e.message)
                raise
            except IntegrityError as e:
                # Partial unique index caught a concurrent match
                await self.db.rollback()
                reason = _integrity_conflict(e)
                await self._record_rejection(
                    deposit_id, order_id, match_type, attempted_score, actor_id, reason
                )
                raise ConflictError(reason) from e
            except Exception:
                await self.db.rollback()
                raise

        outcome = MatchOutcome(
            match_id=record.id,
            deposit_id=deposit_id,
            order_id=order_id,
            match_type=match_type,
            match_score=recorded,
            actor_id=actor_id,
            matched_at=now,
            deposit_status=new_status,
            scoring_breakdown=breakdown,
            order_number=order.order_number,
        )

        log_reconciliation_event(
            ReconciliationEvent.MATCH_CREATED,
            {
                "order_id": order_id,
                "match_id": outcome.match_id,
                "match_type": match_type.value,
                "match_score": recorded,
            },
            deposit_id=deposit_id,
            actor=actor_id
        )

        await self._store_audit_log(
            AuditAction.MATCH_CREATED,
            deposit_id=deposit_id,
            order_id=order_id,
            match_id=outcome.match_id,
            match_type=match_type,
            match_score=recorded,
            actor_id=actor_id,
        )

        return outcome

    async def unmatch(self, deposit_id: str, actor_id: str = SYSTEM_ACTOR) -> MatchOutcome:
        """
        Release a deposit's active match.

        The match record is kept as history (is_active false), the order
        returns to PENDING and the deposit to UNMATCHED.

        Raises:
            NotFoundError: deposit missing
            ConflictError: deposit has no active match
        """
        async with storage_guard("unmatch"):
            try:
                deposit = await self._get_deposit(deposit_id, for_update=True)
                if deposit is None:
                    raise NotFoundError(f"Deposit {deposit_id} not found")

                record = await self._active_match(deposit_id=deposit_id)
                if record is None:
                    raise ConflictError("Deposit has no active match")

                order = await self._get_order(record.order_id, for_update=True)

                now = datetime.now(timezone.utc)
                record.is_active = False
                record.unmatched_at = now
                record.unmatched_by = actor_id

                if order is not None:
                    order.payment_status = PaymentStatus.PENDING
                    order.paid_at = None

                deposit.status = DepositStatus.UNMATCHED
                deposit.matched_order_id = None
                deposit.match_type = None
                deposit.match_score = None
                deposit.processed_at = now

                await self._commit()
            except Exception:
                await self.db.rollback()
                raise

        outcome = _record_to_outcome(
            record, DepositStatus.UNMATCHED, order.order_number if order else None
        )

        log_reconciliation_event(
            ReconciliationEvent.MATCH_RELEASED,
            {"order_id": record.order_id, "match_id": record.id},
            deposit_id=deposit_id,
            actor=actor_id
        )

        await self._store_audit_log(
            AuditAction.MATCH_RELEASED,
            deposit_id=deposit_id,
            order_id=record.order_id,
            match_id=record.id,
            match_type=record.match_type,
            match_score=record.match_score,
            actor_id=actor_id,
        )

        return outcome

    async def _record_rejection(
        self,
        deposit_id: str,
        order_id: str,
        match_type: MatchType,
        score: Optional[float],
        actor_id: str,
        reason: str
    ):
        log_reconciliation_event(
            ReconciliationEvent.MATCH_REJECTED,
            {"order_id": order_id, "match_type": match_type.value, "reason": reason},
            deposit_id=deposit_id,
            actor=actor_id
        )
        await self._store_audit_log(
            AuditAction.MATCH_REJECTED,
            deposit_id=deposit_id,
            order_id=order_id,
            match_type=match_type,
            match_score=score,
            actor_id=actor_id,
            success=False,
            detail=reason,
        )

    # ==================== Queries ====================

    async def get_candidates(self, deposit_id: str) -> List[MatchSuggestion]:
        """Ranked candidate orders for operator review."""
        async with storage_guard("load deposit"):
            deposit = await self._get_deposit(deposit_id)
        if deposit is None:
            raise NotFoundError(f"Deposit {deposit_id} not found")

        candidates = await self.finder.find_candidates(deposit)
        return self.evaluator.evaluate(deposit, candidates)

    async def get_deposit(self, deposit_id: str) -> Dict[str, Any]:
        """Deposit with its active match, matched order and match history."""
        async with storage_guard("load deposit"):
            deposit = await self._get_deposit(deposit_id)
            if deposit is None:
                raise NotFoundError(f"Deposit {deposit_id} not found")

            history_result = await self._execute(
                select(MatchRecordDB)
                .where(MatchRecordDB.deposit_id == deposit_id)
                .order_by(MatchRecordDB.matched_at.desc())
            )
            history = list(history_result.scalars().all())

            active = next((r for r in history if r.is_active), None)
            order = await self._get_order(active.order_id) if active else None

        data = deposit_to_dict(deposit)
        data["activeMatch"] = (
            _record_to_outcome(active, deposit.status, order.order_number if order else None).to_dict()
            if active else None
        )
        data["matchedOrder"] = _order_summary(order)
        data["matchHistory"] = [
            _record_to_outcome(r, deposit.status).to_dict() for r in history
        ]
        return data

    async def list_deposits(
        self,
        status: Optional[str] = None,
        bank_code: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20
    ) -> Dict[str, Any]:
        """Paginated deposit listing for the reconciliation dashboard."""
        conditions = []

        if status:
            try:
                conditions.append(DepositDB.status == DepositStatus(status.upper()))
            except ValueError:
                raise ValidationError(f"Unknown deposit status: {status}")

        if bank_code:
            conditions.append(DepositDB.bank_code == bank_code)

        if search:
            # LIKE wildcards in the search term match literally
            term = search.strip().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
            pattern = f"%{term}%"
            conditions.append(or_(
                DepositDB.depositor_name.ilike(pattern, escape="\\"),
                DepositDB.memo.ilike(pattern, escape="\\"),
                DepositDB.external_id.ilike(pattern, escape="\\"),
            ))

        page = max(1, page)
        limit = max(1, min(limit, 100))

        count_query = select(func.count()).select_from(DepositDB)
        rows_query = select(DepositDB)
        if conditions:
            count_query = count_query.where(*conditions)
            rows_query = rows_query.where(*conditions)

        async with storage_guard("list deposits"):
            count_result = await self._execute(count_query)
            total = count_result.scalar_one()

            rows_result = await self._execute(
                rows_query
                .order_by(DepositDB.transaction_date.desc(), DepositDB.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            deposits = list(rows_result.scalars().all())

        return {
            "items": [deposit_to_dict(d) for d in deposits],
            "total": total,
            "page": page,
            "limit": limit,
            "totalPages": (total + limit - 1) // limit,
        }

    async def get_stats(self) -> Dict[str, Any]:
        """Dashboard counters: deposits by status, total amount, match rate."""
        async with storage_guard("deposit stats"):
            result = await self._execute(
                select(DepositDB.status, func.count(), func.coalesce(func.sum(DepositDB.amount), 0))
                .group_by(DepositDB.status)
            )
            rows = result.all()

        by_status = {s.value: 0 for s in DepositStatus}
        total_amount = 0
        for status, count, amount in rows:
            key = status.value if isinstance(status, DepositStatus) else str(status)
            by_status[key] = count
            total_amount += int(amount or 0)

        total = sum(by_status.values())
        matched = sum(by_status[s.value] for s in MATCHED_STATUSES)

        return {
            "total": total,
            "byStatus": by_status,
            "totalAmount": total_amount,
            "matched": matched,
            "matchRate": round(matched / total * 100, 1) if total else 0.0,
        }

    # ==================== Audit ====================

    async def _store_audit_log(
        self,
        action: AuditAction,
        deposit_id: Optional[str],
        order_id: Optional[str],
        match_type: Optional[MatchType],
        match_score: Optional[float],
        actor_id: str,
        match_id: Optional[str] = None,
        success: bool = True,
        detail: Optional[str] = None
    ):
        """Store an entry in the reconciliation audit log. Best-effort."""
        try:
            self.db.add(MatchAuditLogDB(
                action=action.value,
                deposit_id=deposit_id,
                order_id=order_id,
                match_id=match_id,
                match_type=match_type.value if match_type else None,
                match_score=match_score,
                actor_id=actor_id,
                success=success,
                detail=detail,
            ))
            await self._commit()
        except Exception as e:
            logger.warning(f"Failed to store audit log: {e}")
            log_reconciliation_event(
                ReconciliationEvent.AUDIT_WRITE_FAILED,
                {"action": action.value, "order_id": order_id, "error": type(e).__name__},
                deposit_id=deposit_id,
                actor=actor_id
            )
            try:
                await self.db.rollback()
            except Exception as rollback_error:
                logger.warning(f"Rollback after audit failure also failed: {rollback_error}")
