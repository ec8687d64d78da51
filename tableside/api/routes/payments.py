from fastapi import APIRouter, Depends

from tableside.api.dependencies import get_actor_id, get_container
from tableside.api.schemas.schemas import (
    ManualPaymentRequest,
    PaymentIntentRequest,
    PaymentIntentResponse,
    PaymentResponse,
    PaymentResultResponse,
    RazorpayVerifyRequest,
)
from tableside.application.container import Container
from tableside.infrastructure.db.models import Payment

router = APIRouter(prefix="/payments", tags=["payments"])


def payment_response(payment: Payment) -> PaymentResponse:
    return PaymentResponse(
        id=payment.id,
        order_id=payment.order_id,
        amount=payment.amount,
        currency=payment.currency,
        method=payment.method.value,
        status=payment.status.value,
        success=payment.success,
        external_order_ref=payment.external_order_ref,
        external_payment_ref=payment.external_payment_ref,
        transaction_id=payment.transaction_id,
        payment_date=payment.payment_date,
    )


@router.post("/intent", response_model=PaymentIntentResponse)
def create_payment_intent(
    request: PaymentIntentRequest,
    customer_id: str = Depends(get_actor_id),
    container: Container = Depends(get_container),
):
    intent = container.payments.create_intent(
        customer_id=customer_id,
        order_id=request.order_id,
        amount=request.amount,
        currency=request.currency,
    )
    return PaymentIntentResponse(
        payment_id=intent.payment_id,
        order_id=intent.order_id,
        gateway_order_ref=intent.gateway_order_ref,
        amount=intent.amount,
        amount_minor_units=intent.amount_minor_units,
        currency=intent.currency,
        key_id=intent.key_id,
    )


@router.post("/verify", response_model=PaymentResultResponse)
def verify_payment(
    request: RazorpayVerifyRequest,
    container: Container = Depends(get_container),
):
    result = container.payments.verify(
        gateway_order_ref=request.razorpay_order_id,
        gateway_payment_ref=request.razorpay_payment_id,
        signature=request.razorpay_signature,
    )
    return PaymentResultResponse(
        success=result.success,
        status=result.status.value,
        payment_id=result.payment_id,
        order_id=result.order_id,
        gateway_order_ref=result.gateway_order_ref,
        gateway_payment_ref=result.gateway_payment_ref,
        amount=result.amount,
        payment_date=result.payment_date,
        replayed=result.replayed,
        message=result.message,
    )


@router.post("/manual", response_model=PaymentResponse)
def record_manual_payment(
    request: ManualPaymentRequest,
    actor_id: str = Depends(get_actor_id),
    container: Container = Depends(get_container),
):
    payment = container.payments.process(
        order_id=request.order_id,
        amount=request.amount,
        method=request.method,
        actor_id=actor_id,
    )
    return payment_response(payment)


@router.get("/orders/{order_id}", response_model=PaymentResponse)
def payment_for_order(
    order_id: str,
    container: Container = Depends(get_container),
):
    return payment_response(container.payments.payment_for_order(order_id))


@router.get("/gateway/{gateway_order_ref}", response_model=PaymentResponse)
def payment_by_gateway_ref(
    gateway_order_ref: str,
    container: Container = Depends(get_container),
):
    return payment_response(container.payments.payment_by_gateway_ref(gateway_order_ref))
