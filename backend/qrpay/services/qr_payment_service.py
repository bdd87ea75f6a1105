"""
QR Payment Service

Owns the QR payment transaction lifecycle:

    create  -> pending
    pending -> expired    (status read or confirm after expires_at)
    pending -> completed  (gateway confirmation before expires_at)
    pending -> cancelled  (explicit cancel)

completed, expired and cancelled are terminal. Expiry is lazy: nothing
runs in the background unless the optional sweep job is enabled, so an
unread overdue record stays "pending" in storage. History reads report
the effective status without writing.

Every transition is one conditional UPDATE guarded by status = 'pending',
so exactly one of confirm / cancel / expire wins a race.
"""
import json
import logging
import secrets
import string
import time
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, List, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..db.models import QRPaymentModel
from ..db.repository import QRPaymentRepository
from ..exceptions import (
    PaymentValidationError,
    StateConflictError,
    TransactionExpiredError,
    TransactionNotFoundError,
)
from ..models.qr_payments import (
    CustomerInfo,
    QRPayment,
    QRPaymentCancelled,
    QRPaymentCompleted,
    QRPaymentCreated,
    QRPaymentStatusView,
)
from .emv_payload import CURRENCY_NUMERIC_CODES, PaymentDescriptor, generate_qr_data

logger = logging.getLogger(__name__)


EXPIRY_WINDOW = timedelta(minutes=5)
DEFAULT_CANCEL_REASON = "User cancelled"
QR_PAYMENT_STATUSES = ("pending", "completed", "expired", "cancelled")

_ID_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def utcnow() -> datetime:
    """Current naive UTC time. Patched in tests."""
    return datetime.utcnow()


def generate_transaction_id() -> str:
    """QR + epoch milliseconds + 8 uppercase alphanumerics."""
    suffix = "".join(secrets.choice(_ID_SUFFIX_ALPHABET) for _ in range(8))
    return f"QR{int(time.time() * 1000)}{suffix}"


def build_descriptor(record: Union[QRPaymentModel, QRPayment]) -> PaymentDescriptor:
    """Payload descriptor for a stored record, with merchant identity from settings."""
    return PaymentDescriptor(
        transaction_id=record.transaction_id,
        amount=record.amount,
        currency=record.currency,
        merchant_id=record.merchant_id,
        description=record.description or f"Order {record.order_id}",
        merchant_name=settings.merchant_name,
        merchant_city=settings.merchant_city,
        country_code=settings.country_code,
        merchant_category_code=settings.merchant_category_code,
    )


def _normalize_amount(amount: Any) -> Decimal:
    try:
        value = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        raise PaymentValidationError(f"Invalid amount: {amount}", {"amount": str(amount)}) from None
    if not value.is_finite() or value <= 0:
        raise PaymentValidationError("Amount must be greater than zero", {"amount": str(amount)})
    return value


def _to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Stored timestamps are naive UTC; aware bounds are converted, naive ones taken as UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _serialize_gateway_response(gateway_response: Any) -> Optional[str]:
    if gateway_response is None or isinstance(gateway_response, str):
        return gateway_response
    return json.dumps(gateway_response, sort_keys=True, default=str)


# ============================================================================
# Creation
# ============================================================================

async def create_qr_payment(
    db: AsyncSession,
    order_id: str,
    amount: Any,
    currency: Optional[str] = None,
    merchant_id: Optional[str] = None,
    customer_info: Optional[CustomerInfo] = None,
    payment_method: str = "qr_payment",
    now: Optional[datetime] = None
) -> QRPaymentCreated:
    """
    Create a pending QR payment and its scannable payload.

    Args:
        db: Database session
        order_id: External order reference (not validated)
        amount: Amount to collect, must be > 0
        currency: Alphabetic currency code, defaults to settings.default_currency
        merchant_id: Receiving merchant, defaults to settings.default_merchant_id
        customer_info: Optional name/email/phone
        payment_method: Stored as-is
        now: Creation instant (defaults to current UTC time)

    Returns:
        transaction_id, qr_data and expires_at

    Raises:
        PaymentValidationError: Non-positive amount, unsupported currency, or
            a merchant_id too long to fit the merchant account template
    """
    if amount is None:
        raise PaymentValidationError("Amount is required")
    amount_value = _normalize_amount(amount)

    currency_code = (currency or settings.default_currency).upper()
    if currency_code not in CURRENCY_NUMERIC_CODES:
        raise PaymentValidationError(
            f"Unsupported currency: {currency_code}",
            {"supported": sorted(CURRENCY_NUMERIC_CODES)}
        )

    created_at = now or utcnow()
    customer_info = customer_info or CustomerInfo()

    values = {
        "transaction_id": generate_transaction_id(),
        "order_id": order_id,
        "amount": amount_value,
        "currency": currency_code,
        "merchant_id": merchant_id or settings.default_merchant_id,
        "description": f"Order {order_id}",
        "customer_name": customer_info.name,
        "customer_email": customer_info.email,
        "customer_phone": customer_info.phone,
        "payment_method": payment_method,
        "status": "pending",
        "created_at": created_at,
        "expires_at": created_at + EXPIRY_WINDOW,
    }

    # Encode before inserting: a payload that cannot be built must not leave a row.
    try:
        qr_data = generate_qr_data(build_descriptor(QRPaymentModel(**values)))
    except ValueError as e:
        raise PaymentValidationError(
            f"Cannot encode QR payload: {e}",
            {"merchant_id": values["merchant_id"], "order_id": order_id}
        ) from e

    record = await QRPaymentRepository(db).insert(values)

    logger.info(
        f"Created QR payment: {record.transaction_id}, order={order_id}, "
        f"amount={amount_value} {currency_code}, expires_at={record.expires_at.isoformat()}"
    )

    return QRPaymentCreated(
        transaction_id=record.transaction_id,
        qr_data=qr_data,
        expires_at=record.expires_at
    )


# ============================================================================
# Reads
# ============================================================================

async def get_qr_payment(db: AsyncSession, transaction_id: str) -> QRPayment:
    """
    Full stored record, without lazy expiry.

    Raises:
        TransactionNotFoundError: No record with this ID
    """
    record = await QRPaymentRepository(db).find_by_transaction_id(transaction_id)
    if record is None:
        raise TransactionNotFoundError("Transaction not found", {"transaction_id": transaction_id})
    return QRPayment.model_validate(record)


async def get_qr_payment_status(
    db: AsyncSession,
    transaction_id: str,
    now: Optional[datetime] = None
) -> QRPaymentStatusView:
    """
    Current status, persisting pending -> expired first if overdue.

    Raises:
        TransactionNotFoundError: No record with this ID
    """
    now = now or utcnow()
    repository = QRPaymentRepository(db)

    record = await repository.find_by_transaction_id(transaction_id)
    if record is None:
        raise TransactionNotFoundError("Transaction not found", {"transaction_id": transaction_id})

    if record.status == "pending" and now > record.expires_at:
        expired = await repository.update_by_transaction_id(transaction_id, {"status": "expired"})
        if expired is not None:
            logger.info(f"QR payment expired on read: {transaction_id}")
            record = expired
        else:
            # Lost the race to another transition; report what won
            record = await repository.find_by_transaction_id(transaction_id)

    return QRPaymentStatusView(
        transaction_id=record.transaction_id,
        status=record.status,
        amount=record.amount,
        currency=record.currency,
        created_at=record.created_at,
        expires_at=record.expires_at,
        completed_at=record.completed_at
    )


async def list_qr_payment_history(
    db: AsyncSession,
    status: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    limit: int = 50,
    offset: int = 0,
    now: Optional[datetime] = None
) -> List[QRPayment]:
    """
    Filtered, paginated history, most recent first.

    Never writes. Overdue pending records are reported (and filtered) as
    expired so that history agrees with status checks.

    Raises:
        PaymentValidationError: Unknown status filter or bad pagination
    """
    if status is not None and status not in QR_PAYMENT_STATUSES:
        raise PaymentValidationError(f"Unknown status filter: {status}", {"allowed": list(QR_PAYMENT_STATUSES)})
    if limit < 1 or offset < 0:
        raise PaymentValidationError("limit must be >= 1 and offset >= 0", {"limit": limit, "offset": offset})

    now = now or utcnow()
    records = await QRPaymentRepository(db).query(
        status=status,
        date_from=_to_naive_utc(date_from),
        date_to=_to_naive_utc(date_to),
        limit=limit,
        offset=offset,
        now=now
    )

    payments = []
    for record in records:
        payment = QRPayment.model_validate(record)
        if payment.is_overdue(now):
            payment = payment.model_copy(update={"status": "expired"})
        payments.append(payment)

    logger.debug(f"History query: status={status}, limit={limit}, offset={offset}, returned={len(payments)}")
    return payments


# ============================================================================
# Transitions
# ============================================================================

async def confirm_qr_payment(
    db: AsyncSession,
    transaction_id: str,
    gateway_transaction_id: Optional[str] = None,
    gateway_reference: Optional[str] = None,
    payment_gateway: str = "manual",
    gateway_response: Any = None,
    now: Optional[datetime] = None
) -> QRPaymentCompleted:
    """
    Complete a pending payment on gateway confirmation.

    Args:
        db: Database session
        transaction_id: QR payment to complete
        gateway_transaction_id: Gateway's own transaction ID
        gateway_reference: Gateway reference number
        payment_gateway: Gateway name ("manual" for operator overrides)
        gateway_response: Raw gateway payload; dicts and lists are stored as JSON
        now: Confirmation instant (defaults to current UTC time)

    Raises:
        TransactionNotFoundError: No record with this ID
        TransactionExpiredError: Past expires_at (the record is flipped to expired)
        StateConflictError: Record already completed or cancelled
    """
    now = now or utcnow()
    repository = QRPaymentRepository(db)

    updated = await repository.update_by_transaction_id(
        transaction_id,
        {
            "status": "completed",
            "completed_at": now,
            "gateway_transaction_id": gateway_transaction_id,
            "gateway_reference": gateway_reference,
            "payment_gateway": payment_gateway,
            "gateway_response": _serialize_gateway_response(gateway_response),
        },
        expected_status="pending",
        not_expired_at=now
    )

    if updated is not None:
        logger.info(
            f"QR payment completed: {transaction_id}, gateway={payment_gateway}, "
            f"gateway_transaction_id={gateway_transaction_id}"
        )
        return QRPaymentCompleted(
            transaction_id=updated.transaction_id,
            status=updated.status,
            completed_at=updated.completed_at
        )

    record = await repository.find_by_transaction_id(transaction_id)
    if record is None:
        raise TransactionNotFoundError(
            "Transaction not found or not pending", {"transaction_id": transaction_id}
        )

    details = {"transaction_id": transaction_id, "status": record.status}

    if record.status == "pending" and now > record.expires_at:
        if await repository.update_by_transaction_id(transaction_id, {"status": "expired"}) is not None:
            logger.info(f"QR payment expired on confirm: {transaction_id}")
        raise TransactionExpiredError("Transaction has expired", {**details, "status": "expired"})

    if record.status == "expired":
        raise TransactionExpiredError("Transaction has expired", details)

    raise StateConflictError("Transaction not found or not pending", details)


async def cancel_qr_payment(
    db: AsyncSession,
    transaction_id: str,
    reason: Optional[str] = None,
    now: Optional[datetime] = None
) -> QRPaymentCancelled:
    """
    Cancel a pending payment. No expiry check: an overdue pending record
    can still be cancelled.

    Raises:
        TransactionNotFoundError: No record with this ID
        StateConflictError: Record is not pending
    """
    now = now or utcnow()
    repository = QRPaymentRepository(db)

    updated = await repository.update_by_transaction_id(
        transaction_id,
        {
            "status": "cancelled",
            "cancelled_at": now,
            "cancelled_reason": reason or DEFAULT_CANCEL_REASON,
        },
        expected_status="pending"
    )

    if updated is None:
        record = await repository.find_by_transaction_id(transaction_id)
        if record is None:
            raise TransactionNotFoundError(
                "Transaction not found or cannot be cancelled", {"transaction_id": transaction_id}
            )
        raise StateConflictError(
            "Transaction not found or cannot be cancelled",
            {"transaction_id": transaction_id, "status": record.status}
        )

    logger.info(f"QR payment cancelled: {transaction_id}, reason={updated.cancelled_reason}")

    return QRPaymentCancelled(
        transaction_id=updated.transaction_id,
        status=updated.status,
        cancelled_at=updated.cancelled_at
    )


async def expire_overdue_payments(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """Bulk pending -> expired for every overdue record. Returns the count."""
    count = await QRPaymentRepository(db).expire_overdue(now or utcnow())
    if count:
        logger.info(f"Expired {count} overdue QR payments")
    return count
