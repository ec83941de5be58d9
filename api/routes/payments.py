"""
Payments API routes.

Exposes initiation, status check, manual confirmation and the provider
webhooks via the application services. Keep this thin: no SDK details here.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.dependencies import (
    CurrentUser,
    get_current_admin,
    get_current_user,
    get_payment_service,
    get_webhook_reconciler,
)
from application.dtos.payments import (
    ConfirmPaymentRequest,
    InitiatePaymentRequest,
    StatusCheckRequest,
)
from application.services.payment_service import PaymentApplicationService
from application.services.webhook_service import WebhookReconciler
from core.logging_config import get_logger
from core.response import success_response


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


@router.post("/webhooks/{provider}", summary="Provider webhook")
async def payments_webhook(
    provider: str,
    request: Request,
    reconciler: WebhookReconciler = Depends(get_webhook_reconciler),
):
    raw_body = await request.body()
    headers = {k: v for k, v in request.headers.items()}
    status_code, body = await reconciler.handle(provider, headers, raw_body)
    return JSONResponse(status_code=status_code, content=body)


@router.post("/initiate", summary="Initiate payment")
async def initiate_payment(
    payload: InitiatePaymentRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: PaymentApplicationService = Depends(get_payment_service),
):
    result = await service.initiate_payment(
        payload,
        caller_id=current_user.id,
        caller_is_admin=current_user.is_admin,
    )
    return success_response(data=result.model_dump(mode="json", by_alias=True), message=result.message)


@router.post("/status", summary="Check payment status")
async def check_payment_status(
    payload: StatusCheckRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: PaymentApplicationService = Depends(get_payment_service),
):
    result = await service.check_status(
        payload,
        caller_id=current_user.id,
        caller_is_admin=current_user.is_admin,
    )
    return success_response(data=result.model_dump(mode="json", by_alias=True))


@router.post("/confirm", summary="Confirm payment manually")
async def confirm_payment(
    payload: ConfirmPaymentRequest,
    admin: CurrentUser = Depends(get_current_admin),
    service: PaymentApplicationService = Depends(get_payment_service),
):
    logger.info("payment_manual_confirm", payment_id=payload.payment_id, status=payload.status, admin_id=admin.id)
    result = await service.confirm_payment(payload)
    return success_response(data=result.model_dump(mode="json", by_alias=True), message=result.message)


@router.get("/pending", summary="List pending payments to resume")
async def list_pending_payments(
    current_user: CurrentUser = Depends(get_current_user),
    service: PaymentApplicationService = Depends(get_payment_service),
):
    crumbs = await service.list_pending(current_user.id)
    return success_response(data=[c.model_dump(mode="json", by_alias=True) for c in crumbs])
