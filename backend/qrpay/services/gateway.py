"""
Payment Gateway Notifier Interface

A gateway tells us a QR payment was paid, either by calling the confirm
webhook or by being polled. Either way the signal ends up in
apply_gateway_notification, which drives the normal confirm transition.
"""
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..models.qr_payments import GatewayNotification, QRPaymentCompleted
from .qr_payment_service import confirm_qr_payment

logger = logging.getLogger(__name__)


class PaymentGatewayNotifier(ABC):
    """Source of payment success signals for QR transactions."""

    name: str = "gateway"

    @abstractmethod
    async def poll(self, transaction_id: str) -> Optional[GatewayNotification]:
        """Return a notification if the gateway has seen payment, else None."""


async def apply_gateway_notification(
    db: AsyncSession,
    notification: GatewayNotification
) -> QRPaymentCompleted:
    """
    Confirm the transaction a notification refers to.

    Raises whatever confirm raises (not found, expired, state conflict).
    """
    logger.info(
        f"Applying {notification.payment_gateway} notification for {notification.transaction_id}"
    )
    return await confirm_qr_payment(
        db,
        notification.transaction_id,
        gateway_transaction_id=notification.gateway_transaction_id,
        gateway_reference=notification.gateway_reference,
        payment_gateway=notification.payment_gateway,
        gateway_response=notification.gateway_response
    )


async def poll_and_confirm(
    db: AsyncSession,
    notifier: PaymentGatewayNotifier,
    transaction_ids: List[str]
) -> List[QRPaymentCompleted]:
    """
    Poll a gateway for each transaction and confirm those it reports paid.

    Transactions the gateway has not seen are skipped; errors from confirm
    propagate to the caller.
    """
    completed = []
    for transaction_id in transaction_ids:
        notification = await notifier.poll(transaction_id)
        if notification is None:
            continue
        completed.append(await apply_gateway_notification(db, notification))
    return completed
