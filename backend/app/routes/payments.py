"""API routes for plan purchase, payment confirmation and subscription lookup."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, FastAPI, HTTPException, Query, Request, status
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from ..schemas.payments import (
    OrderRequest,
    OrderResponse,
    PaymentConfigResponse,
    PlanListResponse,
    PlanResponse,
    SubscriptionResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
    WebhookAck,
)
from ..services.payments import get_payment_config, get_payment_service
from ..subscriptions import ConfigurationError, PaymentError, ValidationError, list_plans

logger = logging.getLogger(__name__)

WEBHOOK_SIGNATURE_HEADER = "X-Razorpay-Signature"

router = APIRouter(prefix="/api/payments", tags=["payments"])


async def payment_request_validation_handler(request: Request, exc: RequestValidationError):
    """Answer malformed payment bodies with 400 instead of FastAPI's 422."""

    if not request.url.path.startswith(router.prefix):
        return await request_validation_exception_handler(request, exc)
    logger.info(
        "Rejected malformed payment request",
        extra={"http_path": request.url.path, "validation_errors": len(exc.errors())},
    )
    error = ValidationError(message="Invalid request body")
    return JSONResponse(status_code=error.status_code, content={"detail": dict(error.payload)})


def register_payment_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, payment_request_validation_handler)


@router.get("/config", response_model=PaymentConfigResponse)
def get_checkout_config() -> PaymentConfigResponse:
    return PaymentConfigResponse(key_id=get_payment_config().key_id)


@router.get("/plans", response_model=PlanListResponse)
def list_subscription_plans() -> PlanListResponse:
    currency = get_payment_config().currency
    return PlanListResponse(plans=[PlanResponse.from_plan(plan, currency=currency) for plan in list_plans()])


@router.post("/order", response_model=OrderResponse, response_model_exclude_none=True)
def create_order(payload: OrderRequest) -> OrderResponse:
    service = get_payment_service()
    try:
        result = service.create_order(email=payload.email, plan=payload.plan)
    except PaymentError as exc:
        raise exc.to_http_exception() from exc
    except Exception as exc:
        logger.exception("Order creation failed", extra={"payment_plan": payload.plan})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to create order"},
        ) from exc
    return OrderResponse.from_result(result, key_id=get_payment_config().key_id)


@router.post("/verify", response_model=VerifyPaymentResponse)
def verify_payment(payload: VerifyPaymentRequest, background_tasks: BackgroundTasks) -> VerifyPaymentResponse:
    service = get_payment_service()
    try:
        outcome = service.verify_client_payment(
            order_id=payload.order_id or "",
            payment_id=payload.payment_id or "",
            signature=payload.signature or "",
            email=payload.email,
            plan=payload.plan,
            dispatch=background_tasks.add_task,
        )
    except PaymentError as exc:
        raise exc.to_http_exception() from exc
    except Exception as exc:
        logger.exception("Payment verification failed", extra={"payment_order_id": payload.order_id})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Verification failed"},
        ) from exc

    if not outcome.applied and not outcome.duplicate:
        logger.info(
            "Verified payment did not activate a plan",
            extra={"payment_order_id": payload.order_id, "payment_reason": outcome.reason},
        )
    return VerifyPaymentResponse(success=True)


@router.post("/webhook", response_model=WebhookAck)
async def receive_webhook(request: Request, background_tasks: BackgroundTasks):
    # Signatures cover the exact bytes sent, so the body is never parsed first.
    raw_body = await request.body()
    signature: Optional[str] = request.headers.get(WEBHOOK_SIGNATURE_HEADER)
    service = get_payment_service()
    try:
        await run_in_threadpool(
            service.handle_webhook,
            raw_body,
            signature,
            dispatch=background_tasks.add_task,
        )
    except ConfigurationError as exc:
        logger.error("Webhook rejected: %s", exc.message)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})
    except PaymentError as exc:
        logger.warning("Webhook rejected", extra={"payment_error_code": exc.code})
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid webhook signature"},
        )
    except Exception:
        logger.exception("Webhook processing failed")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Webhook processing failed"},
        )
    return WebhookAck()


@router.get("/subscription", response_model=SubscriptionResponse)
def get_subscription(
    email: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
) -> SubscriptionResponse:
    service = get_payment_service()
    try:
        snapshot = service.get_subscription_snapshot(email, limit=limit)
    except PaymentError as exc:
        raise exc.to_http_exception() from exc
    return SubscriptionResponse.from_snapshot(snapshot)


__all__ = [
    "WEBHOOK_SIGNATURE_HEADER",
    "payment_request_validation_handler",
    "register_payment_error_handlers",
    "router",
]
