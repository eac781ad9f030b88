"""
Candidate Finder

Bounded search of the order store for orders a deposit may be paying:

- payment_status PENDING and no active match record
- created within CANDIDATE_WINDOW_DAYS before the deposit (plus one day of
  grace after it, since some banks only report the value date)
- exact amount, or within CANDIDATE_AMOUNT_TOLERANCE of the order amount

Two passes run (exact amount, then near amount) and are merged newest
first up to CANDIDATE_LIMIT. The evaluator collapses any duplicates.

Read-only. Storage failures surface as StorageUnavailable, never as an
empty list.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Any, List, Optional

from sqlalchemy import select, and_, exists
from sqlalchemy.ext.asyncio import AsyncSession

from config import get_settings
from database.payment_models import OrderDB, MatchRecordDB, PaymentStatus
from reconciliation.errors import storage_guard
from reconciliation.matching_rules.similarity import to_utc

logger = logging.getLogger(__name__)

FORWARD_GRACE = timedelta(days=1)
BASIS_POINTS = 10000


class CandidateFinder:
    """
    Query side of matching. One instance per session.
    """

    def __init__(
        self,
        db: AsyncSession,
        limit: Optional[int] = None,
        window_days: Optional[int] = None,
        amount_tolerance: Optional[float] = None,
        timeout: Optional[float] = None
    ):
        settings = get_settings()
        self.db = db
        self.limit = limit or settings.CANDIDATE_LIMIT
        self.window_days = window_days or settings.CANDIDATE_WINDOW_DAYS
        self.amount_tolerance = (
            settings.CANDIDATE_AMOUNT_TOLERANCE if amount_tolerance is None else amount_tolerance
        )
        self.timeout = timeout or settings.STORAGE_TIMEOUT_SECONDS

    def _base_conditions(self, deposit: Any) -> list:
        tx_at = to_utc(deposit.transaction_date)
        has_active_match = exists().where(
            and_(
                MatchRecordDB.order_id == OrderDB.id,
                MatchRecordDB.is_active.is_(True)
            )
        )
        return [
            OrderDB.payment_status == PaymentStatus.PENDING,
            ~has_active_match,
            OrderDB.created_at >= tx_at - timedelta(days=self.window_days),
            OrderDB.created_at <= tx_at + FORWARD_GRACE,
        ]

    def _near_amount_conditions(self, amount: int) -> list:
        # |amount - total| <= tolerance * total, in integer basis points
        bp = int(round(self.amount_tolerance * BASIS_POINTS))
        return [
            OrderDB.total_amount != amount,
            OrderDB.total_amount * (BASIS_POINTS - bp) <= amount * BASIS_POINTS,
            OrderDB.total_amount * (BASIS_POINTS + bp) >= amount * BASIS_POINTS,
        ]

    async def _run(self, conditions: list) -> List[OrderDB]:
        query = (
            select(OrderDB)
            .where(and_(*conditions))
            .order_by(OrderDB.created_at.desc(), OrderDB.id)
            .limit(self.limit)
        )
        result = await asyncio.wait_for(self.db.execute(query), timeout=self.timeout)
        return list(result.scalars().all())

    async def find_candidates(self, deposit: Any) -> List[OrderDB]:
        """
        Return at most ``limit`` eligible orders, newest first.

        Raises:
            StorageUnavailable: store unreachable or the query timed out
        """
        amount = deposit.amount
        base = self._base_conditions(deposit)

        async with storage_guard("candidate search"):
            exact = await self._run(base + [OrderDB.total_amount == amount])
            near = await self._run(base + self._near_amount_conditions(amount))

        merged = exact + near
        merged.sort(key=lambda o: o.id)
        merged.sort(key=lambda o: to_utc(o.created_at), reverse=True)
        candidates = merged[:self.limit]

        logger.debug(
            f"Candidate search for deposit {getattr(deposit, 'id', None)}: "
            f"{len(exact)} exact, {len(near)} near, {len(candidates)} kept"
        )
        return candidates
