"""
Pydantic QR Payment Models

Request bodies, the full transaction record, and the trimmed views
returned by each lifecycle operation.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Literal
from pydantic import BaseModel, Field


QRPaymentStatus = Literal["pending", "completed", "expired", "cancelled"]


class CustomerInfo(BaseModel):
    """Optional descriptive customer fields, carried through unvalidated."""
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class CreateQRPaymentRequest(BaseModel):
    """Body of POST /create."""
    order_id: str
    amount: Decimal
    currency: Optional[str] = None
    merchant_id: Optional[str] = None
    customer_info: Optional[CustomerInfo] = None
    payment_method: str = "qr_payment"

    model_config = {
        "json_schema_extra": {
            "example": {
                "order_id": "ORD1",
                "amount": "150.00",
                "currency": "PHP",
                "merchant_id": "MERCHANT001",
                "customer_info": {"name": "Juan dela Cruz", "email": None, "phone": None},
                "payment_method": "qr_payment"
            }
        }
    }


class ConfirmQRPaymentRequest(BaseModel):
    """Body of POST /confirm/{transaction_id}, sent by a gateway or operator."""
    gateway_transaction_id: Optional[str] = None
    gateway_reference: Optional[str] = None
    payment_gateway: str = "manual"
    gateway_response: Optional[Any] = None


class CancelQRPaymentRequest(BaseModel):
    """Body of POST /cancel/{transaction_id}."""
    reason: Optional[str] = None


class QRPayment(BaseModel):
    """
    Full QR payment record.

    Invariants:
    - expires_at is created_at + 5 minutes
    - completed_at is set iff status == "completed"
    - cancelled_at and cancelled_reason are set iff status == "cancelled"
    - gateway fields are populated only on confirmation
    """
    transaction_id: str = Field(pattern="^QR[0-9]+[0-9A-Z]{8}$")
    order_id: Optional[str] = None
    amount: Decimal = Field(gt=0)
    currency: str
    merchant_id: str
    description: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    payment_method: str = "qr_payment"
    status: QRPaymentStatus
    created_at: datetime
    expires_at: datetime
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_reason: Optional[str] = None
    gateway_transaction_id: Optional[str] = None
    gateway_reference: Optional[str] = None
    payment_gateway: Optional[str] = None
    gateway_response: Optional[str] = None

    model_config = {"from_attributes": True}

    def is_overdue(self, now: datetime) -> bool:
        """Pending and past its deadline."""
        return self.status == "pending" and now > self.expires_at


class QRPaymentCreated(BaseModel):
    """Result of create."""
    transaction_id: str
    qr_data: str
    expires_at: datetime


class QRPaymentStatusView(BaseModel):
    """Result of a status check."""
    transaction_id: str
    status: QRPaymentStatus
    amount: Decimal
    currency: str
    created_at: datetime
    expires_at: datetime
    completed_at: Optional[datetime] = None


class QRPaymentCompleted(BaseModel):
    """Result of confirm."""
    transaction_id: str
    status: QRPaymentStatus
    completed_at: datetime


class QRPaymentCancelled(BaseModel):
    """Result of cancel."""
    transaction_id: str
    status: QRPaymentStatus
    cancelled_at: datetime


class GatewayNotification(BaseModel):
    """A payment success signal from a gateway (webhook or poll)."""
    transaction_id: str
    gateway_transaction_id: str
    gateway_reference: Optional[str] = None
    payment_gateway: str
    gateway_response: Optional[Any] = None
