"""
SQLAlchemy ORM Models for QR Payments

Defines the qr_payments table matching the schema in init_db.py.
Records are never deleted; the table doubles as the audit trail.
"""
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Numeric, Text, CheckConstraint
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class QRPaymentModel(Base):
    """
    ORM model for qr_payments table.

    Only the lifecycle service writes status and the terminal timestamp
    fields; everything else is written once at creation.
    """
    __tablename__ = "qr_payments"

    transaction_id = Column(String, primary_key=True)
    order_id = Column(String, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String, nullable=False, default="PHP")
    merchant_id = Column(String, nullable=False)
    description = Column(String)
    customer_name = Column(String)
    customer_email = Column(String)
    customer_phone = Column(String)
    payment_method = Column(String, nullable=False, default="qr_payment")
    status = Column(String, nullable=False, default="pending", index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    expires_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime)
    cancelled_at = Column(DateTime)
    cancelled_reason = Column(String)
    gateway_transaction_id = Column(String)
    gateway_reference = Column(String)
    payment_gateway = Column(String)
    gateway_response = Column(Text)  # JSON blob

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'completed', 'expired', 'cancelled')",
            name="qr_payment_status_check"
        ),
        CheckConstraint("amount > 0", name="qr_payment_amount_check"),
    )
