"""
Errand Payment API Routes
"""
from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from errands.api.dependencies.auth import get_current_user, require_admin
from errands.api.routes.schemas import (
    CompletionCheckResponse,
    ErrandPaymentResponse,
    LegacyNormalizeResponse,
    PaymentActionResponse,
    PaymentSubmitRequest,
    PaymentVerifyRequest,
)
from errands.core.exceptions import ErrorCode, InvalidState
from errands.db.database import get_db
from errands.db.models.user import User
from errands.domain.services.errand_payment_service import ErrandPaymentService

router = APIRouter()


@router.post(
    "/submit",
    response_model=PaymentActionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit an errand payment",
    description="The assigned runner reports the amount spent; the customer is asked to verify it.",
)
async def submit_payment(
    data: PaymentSubmitRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Submit errand payment"""
    service = ErrandPaymentService(db)
    payment = await service.submit(
        runner_id=user.id,
        errand_id=data.errand_id,
        original_amount=data.original_amount,
        proof_of_purchase=data.proof_of_purchase,
        payment_method=data.payment_method,
        customer_id=data.customer_id,
    )
    return PaymentActionResponse(
        message="Payment submitted. Waiting for customer verification.",
        status_display=payment.status_display,
        payment=ErrandPaymentResponse.from_model(payment),
    )


@router.patch(
    "/verify",
    response_model=PaymentActionResponse,
    summary="Verify an errand payment",
    description="The errand's customer approves or rejects the pending payment.",
)
async def verify_payment(
    data: PaymentVerifyRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Customer verification"""
    service = ErrandPaymentService(db)
    payment = await service.verify(
        customer_id=user.id,
        errand_id=data.errand_id,
        verified=data.verified,
        payment_method=data.payment_method,
        notes=data.notes,
    )
    if data.verified:
        message = "Payment approved. The runner can now complete the errand."
    else:
        message = "Payment rejected. The runner can resubmit."
    return PaymentActionResponse(
        message=message,
        status_display=payment.status_display,
        payment=ErrandPaymentResponse.from_model(payment),
    )


@router.get(
    "/errand/{errand_id}",
    response_model=List[ErrandPaymentResponse],
    summary="Payments of an errand",
    description="Every payment attempt for the errand, newest first. Customer or runner only.",
)
async def get_errand_payments(
    errand_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    service = ErrandPaymentService(db)
    payments = await service.list_for_errand(user.id, errand_id)
    return [ErrandPaymentResponse.from_model(p) for p in payments]


@router.get(
    "/errand/{errand_id}/completion-check",
    response_model=CompletionCheckResponse,
    summary="Can the runner complete the errand",
    description="True once the customer has approved a payment for the errand.",
)
async def completion_check(
    errand_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    service = ErrandPaymentService(db)
    try:
        payment = await service.require_approved_payment(user.id, errand_id)
    except InvalidState as e:
        if e.error_code != ErrorCode.PAYMENT_REQUIRED:
            raise
        return CompletionCheckResponse(
            errand_id=errand_id,
            can_complete=False,
            status_display="Payment Not Approved",
            message=e.message,
        )
    return CompletionCheckResponse(
        errand_id=errand_id,
        can_complete=True,
        status_display=payment.status_display,
        message="Payment approved. The errand can be completed.",
    )


@router.get(
    "/history",
    response_model=List[ErrandPaymentResponse],
    summary="Runner payment history",
)
async def payment_history(
    limit: int = Query(50, ge=1, le=200),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    service = ErrandPaymentService(db)
    payments = await service.list_for_runner(user.id, limit)
    return [ErrandPaymentResponse.from_model(p) for p in payments]


@router.get(
    "/legacy",
    response_model=List[ErrandPaymentResponse],
    summary="Legacy customer-verified payments",
    description="Admin only. Rows still carrying the historical customer_verified status.",
)
async def list_legacy_payments(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    service = ErrandPaymentService(db)
    payments = await service.list_legacy_verified()
    return [ErrandPaymentResponse.from_model(p) for p in payments]


@router.post(
    "/legacy/normalize",
    response_model=LegacyNormalizeResponse,
    summary="Normalize legacy payment statuses",
    description="Admin only. Rewrites customer_verified rows as approved without posting to the ledger.",
)
async def normalize_legacy_payments(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    service = ErrandPaymentService(db)
    count = await service.normalize_legacy_statuses()
    return LegacyNormalizeResponse(normalized=count, status_display="Approved")
