"""
Mock QR Payment Gateway

Stands in for a QRPH acquirer during demos. A payment is "seen" only after
mark_paid is called for it (via the demo simulate endpoint); there is no
random approval. Gateway IDs are derived deterministically from the
transaction ID.
"""
import hashlib
from datetime import datetime
from typing import Dict, Optional

from ..models.qr_payments import GatewayNotification
from ..services.gateway import PaymentGatewayNotifier


class MockQRGateway(PaymentGatewayNotifier):
    """In-process gateway holding explicit paid marks."""

    name = "mock_qrph"

    def __init__(self):
        self._paid: Dict[str, GatewayNotification] = {}

    def mark_paid(self, transaction_id: str) -> GatewayNotification:
        """Record that the customer paid; the next poll reports it."""
        digest = hashlib.sha256(transaction_id.encode()).hexdigest()
        notification = GatewayNotification(
            transaction_id=transaction_id,
            gateway_transaction_id=f"mock_{digest[:12]}",
            gateway_reference=f"REF{digest[12:20].upper()}",
            payment_gateway=self.name,
            gateway_response={
                "status": "paid",
                "processed_at": datetime.utcnow().isoformat(),
            },
        )
        self._paid[transaction_id] = notification
        return notification

    async def poll(self, transaction_id: str) -> Optional[GatewayNotification]:
        return self._paid.pop(transaction_id, None)

    def reset(self) -> None:
        self._paid.clear()

    def get_status(self) -> Dict[str, object]:
        """Gateway availability, for health checks."""
        return {
            "status": "operational",
            "gateway": self.name,
            "supported_currencies": ["PHP"],
            "pending_notifications": len(self._paid),
        }


# Singleton used by the demo endpoint
mock_gateway = MockQRGateway()
