"""
QR Payments API Endpoints

HTTP surface for the QR payment lifecycle consumed by the POS frontend:
create, status polling, gateway confirmation, cancellation, history and
the rendered QR image.

All successful responses use the {"success": true, "data": ...} envelope.
Errors are raised as QRPaymentError subclasses and rendered by the
application's exception handlers.
"""
from datetime import datetime
from typing import Any, Dict, Literal, Optional
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..db.init_db import get_db
from ..mocks.payment_gateway import mock_gateway
from ..models.qr_payments import (
    CancelQRPaymentRequest,
    ConfirmQRPaymentRequest,
    CreateQRPaymentRequest,
)
from ..services.emv_payload import generate_qr_data
from ..services.gateway import poll_and_confirm
from ..services.qr_image import render_qr_png
from ..services.qr_payment_service import (
    build_descriptor,
    cancel_qr_payment,
    confirm_qr_payment,
    create_qr_payment,
    get_qr_payment,
    get_qr_payment_status,
    list_qr_payment_history,
)
from ..services.webhook_signature import require_gateway_signature

logger = logging.getLogger(__name__)

router = APIRouter()


def _ok(data: Any) -> Dict[str, Any]:
    return {"success": True, "data": data}


@router.post("/create", status_code=201)
async def create_qr_payment_endpoint(
    request: CreateQRPaymentRequest,
    db: AsyncSession = Depends(get_db)
) -> Dict[str, Any]:
    """
    Create a pending QR payment.

    Request Body:
        {
            "order_id": str,
            "amount": decimal,
            "currency": str | null,  # defaults to PHP
            "merchant_id": str | null,
            "customer_info": {"name", "email", "phone"} | null,
            "payment_method": str  # defaults to "qr_payment"
        }

    Returns:
        201 {"transaction_id", "qr_data", "expires_at"}
    """
    created = await create_qr_payment(
        db,
        order_id=request.order_id,
        amount=request.amount,
        currency=request.currency,
        merchant_id=request.merchant_id,
        customer_info=request.customer_info,
        payment_method=request.payment_method
    )
    return _ok(created.model_dump(mode="json"))


@router.get("/status/{transaction_id}")
async def get_qr_payment_status_endpoint(
    transaction_id: str,
    db: AsyncSession = Depends(get_db)
) -> Dict[str, Any]:
    """
    Check payment status. An overdue pending payment is marked expired
    before it is returned.

    Example:
        GET /api/qr-payments/status/QR1718000000000ABCD1234
    """
    logger.debug(f"Status check: {transaction_id}")
    status = await get_qr_payment_status(db, transaction_id)
    return _ok(status.model_dump(mode="json"))


@router.post("/confirm/{transaction_id}")
async def confirm_qr_payment_endpoint(
    transaction_id: str,
    raw_request: Request,
    request: Optional[ConfirmQRPaymentRequest] = None,
    x_gateway_signature: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db)
) -> Dict[str, Any]:
    """
    Confirm payment (webhook endpoint for payment gateways).

    Headers:
        X-Gateway-Signature: hex HMAC-SHA256 of the canonical JSON body,
            required only when GATEWAY_WEBHOOK_SECRET is set

    Returns:
        200 {"transaction_id", "status", "completed_at"}
        404 when the transaction is unknown or not pending
        400 when the transaction has expired
    """
    body = await raw_request.body()
    require_gateway_signature(await raw_request.json() if body else {}, x_gateway_signature)

    request = request or ConfirmQRPaymentRequest()
    completed = await confirm_qr_payment(
        db,
        transaction_id,
        gateway_transaction_id=request.gateway_transaction_id,
        gateway_reference=request.gateway_reference,
        payment_gateway=request.payment_gateway,
        gateway_response=request.gateway_response
    )
    return _ok(completed.model_dump(mode="json"))


@router.post("/cancel/{transaction_id}")
async def cancel_qr_payment_endpoint(
    transaction_id: str,
    request: Optional[CancelQRPaymentRequest] = None,
    db: AsyncSession = Depends(get_db)
) -> Dict[str, Any]:
    """
    Cancel a pending payment.

    Request Body (optional):
        {"reason": str}  # defaults to "User cancelled"
    """
    reason = request.reason if request else None
    cancelled = await cancel_qr_payment(db, transaction_id, reason=reason)
    return _ok(cancelled.model_dump(mode="json"))


@router.get("/history")
async def get_qr_payment_history_endpoint(
    status: Optional[Literal["pending", "completed", "expired", "cancelled"]] = Query(None),
    date_from: Optional[datetime] = Query(None, description="Inclusive lower bound on created_at"),
    date_to: Optional[datetime] = Query(None, description="Inclusive upper bound on created_at"),
    limit: int = Query(50, ge=1, description="Max results"),
    offset: int = Query(0, ge=0, description="Pagination offset"),
    db: AsyncSession = Depends(get_db)
) -> Dict[str, Any]:
    """
    Payment history, most recent first.

    Overdue pending payments are reported as expired but not rewritten.

    Example:
        GET /api/qr-payments/history?status=completed&limit=20&offset=0
    """
    payments = await list_qr_payment_history(
        db,
        status=status,
        date_from=date_from,
        date_to=date_to,
        limit=min(limit, settings.history_max_limit),
        offset=offset
    )
    return _ok([payment.model_dump(mode="json") for payment in payments])


@router.get("/image/{transaction_id}")
async def get_qr_payment_image_endpoint(
    transaction_id: str,
    db: AsyncSession = Depends(get_db)
) -> Response:
    """
    Scannable PNG for a payment, re-derived from the stored record.
    """
    payment = await get_qr_payment(db, transaction_id)
    png = render_qr_png(generate_qr_data(build_descriptor(payment)))
    return Response(content=png, media_type="image/png")


@router.post("/simulate/{transaction_id}")
async def simulate_qr_payment_endpoint(
    transaction_id: str,
    db: AsyncSession = Depends(get_db)
) -> Dict[str, Any]:
    """
    Demo only: mark the payment paid at the mock gateway and apply the
    resulting notification.
    """
    if not settings.demo_mode:
        raise HTTPException(status_code=404, detail="Not Found")

    await get_qr_payment(db, transaction_id)
    mock_gateway.mark_paid(transaction_id)
    completed = await poll_and_confirm(db, mock_gateway, [transaction_id])
    return _ok(completed[0].model_dump(mode="json"))
