"""
QR Payment Repository

Row-level access to the qr_payments table. Status transitions go through
update_by_transaction_id with a status precondition so that concurrent
confirm, cancel and expiry writers cannot both succeed.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import QRPaymentModel

logger = logging.getLogger(__name__)


class QRPaymentRepository:
    """Persistence collaborator for the QR payment lifecycle."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def insert(self, values: Dict[str, Any]) -> QRPaymentModel:
        """Insert a new record and return it refreshed from the database."""
        record = QRPaymentModel(**values)
        self.db.add(record)
        await self.db.commit()
        await self.db.refresh(record)
        return record

    async def find_by_transaction_id(self, transaction_id: str) -> Optional[QRPaymentModel]:
        """Return the record or None. Always reloads from the database."""
        result = await self.db.execute(
            select(QRPaymentModel)
            .where(QRPaymentModel.transaction_id == transaction_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def update_by_transaction_id(
        self,
        transaction_id: str,
        patch: Dict[str, Any],
        expected_status: Optional[str] = "pending",
        not_expired_at: Optional[datetime] = None
    ) -> Optional[QRPaymentModel]:
        """
        Apply a patch in one conditional UPDATE.

        Args:
            transaction_id: Record to update
            patch: Column values to set
            expected_status: Only update if the stored status equals this
            not_expired_at: Only update if expires_at >= this instant

        Returns:
            The updated record, or None when no row matched (missing record
            or failed precondition)
        """
        stmt = update(QRPaymentModel).where(QRPaymentModel.transaction_id == transaction_id)
        if expected_status is not None:
            stmt = stmt.where(QRPaymentModel.status == expected_status)
        if not_expired_at is not None:
            stmt = stmt.where(QRPaymentModel.expires_at >= not_expired_at)
        stmt = stmt.values(**patch).execution_options(synchronize_session=False)

        result = await self.db.execute(stmt)
        await self.db.commit()

        if result.rowcount == 0:
            logger.debug(f"Conditional update matched no rows: {transaction_id}, expected_status={expected_status}")
            return None

        return await self.find_by_transaction_id(transaction_id)

    async def expire_overdue(self, now: datetime) -> int:
        """Mark every pending record past its deadline as expired. Returns the count."""
        result = await self.db.execute(
            update(QRPaymentModel)
            .where(QRPaymentModel.status == "pending")
            .where(QRPaymentModel.expires_at < now)
            .values(status="expired")
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount

    async def query(
        self,
        status: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
        now: Optional[datetime] = None
    ) -> List[QRPaymentModel]:
        """
        Filtered, paginated read ordered by created_at descending.

        When `now` is given, the status filter matches the effective status:
        an overdue pending record counts as expired, not pending.
        """
        stmt = select(QRPaymentModel)

        if status is not None:
            if now is not None and status == "pending":
                stmt = stmt.where(
                    and_(QRPaymentModel.status == "pending", QRPaymentModel.expires_at >= now)
                )
            elif now is not None and status == "expired":
                stmt = stmt.where(
                    or_(
                        QRPaymentModel.status == "expired",
                        and_(QRPaymentModel.status == "pending", QRPaymentModel.expires_at < now),
                    )
                )
            else:
                stmt = stmt.where(QRPaymentModel.status == status)

        if date_from is not None:
            stmt = stmt.where(QRPaymentModel.created_at >= date_from)
        if date_to is not None:
            stmt = stmt.where(QRPaymentModel.created_at <= date_to)

        stmt = stmt.order_by(QRPaymentModel.created_at.desc()).limit(limit).offset(offset)

        result = await self.db.execute(stmt)
        return list(result.scalars().all())
