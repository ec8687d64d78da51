import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from tableside.application.notifications import (
    ORDER_STATUS_CHANGED,
    PAYMENT_CONFIRMED,
    PAYMENT_FAILED,
    NotificationDispatcher,
    PendingNotification,
)
from tableside.application.order_engine import order_key, payment_key, record_order_event
from tableside.domain.clock import Clock
from tableside.domain.exceptions import (
    ALREADY_PAID,
    PAYMENT_REF_CONSUMED,
    ConflictError,
    FatalError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from tableside.domain.money import to_amount, to_minor_units
from tableside.domain.state_machine import (
    OrderStateMachine,
    OrderStatus,
    PaymentMethod,
    PaymentStateMachine,
    PaymentStatus,
)
from tableside.infrastructure.db.models import Order, Payment, PaymentCallback
from tableside.infrastructure.db.session import session_scope
from tableside.infrastructure.gateway.razorpay_gateway import PaymentGateway
from tableside.infrastructure.gateway.signature import SignatureVerifier
from tableside.infrastructure.locks import KeyedLocks
from tableside.infrastructure.repositories.order_repository import OrderRepository
from tableside.infrastructure.repositories.payment_repository import (
    PaymentRepository,
    hash_callback_payload,
)

logger = logging.getLogger(__name__)

MANUAL_METHODS = {
    PaymentMethod.CASH,
    PaymentMethod.CARD,
    PaymentMethod.UPI,
    PaymentMethod.NET_BANKING,
}


@dataclass(frozen=True)
class PaymentIntentRef:
    payment_id: str
    order_id: str
    gateway_order_ref: str
    amount: Decimal
    amount_minor_units: int
    currency: str
    key_id: str | None


@dataclass(frozen=True)
class PaymentResult:
    success: bool
    status: PaymentStatus
    payment_id: str
    order_id: str
    gateway_order_ref: str
    gateway_payment_ref: str | None
    amount: Decimal
    payment_date: datetime | None
    replayed: bool
    message: str


class PaymentEngine:
    """
    Collects money for orders.

    A verified gateway confirmation and the order moving to CONFIRMED are
    committed together. The gateway payment reference is the idempotency
    key: replaying a confirmation that already succeeded changes nothing.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        locks: KeyedLocks,
        dispatcher: NotificationDispatcher,
        clock: Clock,
        gateway: PaymentGateway | None,
        verifier: SignatureVerifier | None,
        default_currency: str = "INR",
    ):
        self.session_factory = session_factory
        self.locks = locks
        self.dispatcher = dispatcher
        self.clock = clock
        self.gateway = gateway
        self.verifier = verifier
        self.default_currency = default_currency

    # -------------------------------------------
    # Gateway intent
    # -------------------------------------------
    def create_intent(
        self,
        customer_id: str,
        order_id: str,
        amount,
        currency: str | None = None,
    ) -> PaymentIntentRef:
        amount = self._parse_amount(amount)
        currency = (currency or self.default_currency).strip().upper()

        with session_scope(
            self.session_factory,
            "create_payment_intent",
            order_id=order_id,
            customer_id=customer_id,
        ) as db:
            self._payable_order(db, order_id, amount, customer_id=customer_id)
            existing = PaymentRepository(db).get_by_order_id(order_id)
            if existing and existing.success:
                raise ConflictError("already paid", code=ALREADY_PAID)

        if self.gateway is None:
            logger.error("Payment gateway not configured. order_id=%s", order_id)
            raise FatalError("Payment gateway not configured.")

        # Outside any transaction: no row stays locked while the gateway works.
        amount_minor_units = to_minor_units(amount)
        gateway_order_ref = self.gateway.create_gateway_order(
            amount_minor_units,
            currency,
            {
                "receipt": f"tableside_order_{order_id}",
                "order_id": order_id,
                "customer_id": customer_id,
            },
        )

        with self.locks.hold(order_key(order_id), payment_key(order_id)):
            with session_scope(
                self.session_factory,
                "store_payment_intent",
                order_id=order_id,
                gateway_order_ref=gateway_order_ref,
            ) as db:
                self._payable_order(db, order_id, amount, customer_id=customer_id)
                repository = PaymentRepository(db)
                payment = repository.lock_by_order_id(order_id)
                now = self.clock.now()

                if payment is None:
                    payment = repository.add(
                        Payment(
                            id=self.clock.new_id(),
                            order_id=order_id,
                            status=PaymentStatus.PENDING,
                            success=False,
                            created_at=now,
                        )
                    )
                elif payment.success:
                    raise ConflictError("already paid", code=ALREADY_PAID)
                elif payment.status != PaymentStatus.PENDING:
                    PaymentStateMachine.validate_transition(payment.status, PaymentStatus.PENDING)
                    payment.status = PaymentStatus.PENDING
                    logger.info("Reusing payment %s for a new attempt", payment.id)

                payment.amount = amount
                payment.currency = currency
                payment.method = PaymentMethod.RAZORPAY
                payment.external_order_ref = gateway_order_ref
                payment.updated_at = now
                db.flush()
                payment_id = payment.id

        logger.info(
            "Payment intent created. order_id=%s payment_id=%s gateway_order_ref=%s amount=%s %s",
            order_id,
            payment_id,
            gateway_order_ref,
            amount,
            currency,
        )
        return PaymentIntentRef(
            payment_id=payment_id,
            order_id=order_id,
            gateway_order_ref=gateway_order_ref,
            amount=amount,
            amount_minor_units=amount_minor_units,
            currency=currency,
            key_id=getattr(self.gateway, "key_id", None),
        )

    # -------------------------------------------
    # Gateway confirmation
    # -------------------------------------------
    def verify(
        self,
        gateway_order_ref: str,
        gateway_payment_ref: str,
        signature: str,
    ) -> PaymentResult:
        if not gateway_order_ref or not gateway_payment_ref or not signature:
            raise ValidationError(
                "gateway_order_ref, gateway_payment_ref and signature are required."
            )
        if self.verifier is None:
            logger.error(
                "Signature secret not configured; refusing to verify %s",
                gateway_order_ref,
            )
            raise FatalError("Payment signature secret not configured.")

        with session_scope(
            self.session_factory,
            "lookup_payment",
            gateway_order_ref=gateway_order_ref,
        ) as db:
            payment = PaymentRepository(db).get_by_external_order_ref(gateway_order_ref)
            if not payment:
                raise NotFoundError("payment", gateway_order_ref)
            order_id = payment.order_id

        signature_valid = self.verifier.verify(
            gateway_order_ref,
            gateway_payment_ref,
            signature,
        )
        notifications = ()

        with self.locks.hold(order_key(order_id), payment_key(order_id)):
            with session_scope(
                self.session_factory,
                "verify_payment",
                order_id=order_id,
                gateway_order_ref=gateway_order_ref,
                gateway_payment_ref=gateway_payment_ref,
            ) as db:
                repository = PaymentRepository(db)
                payment = repository.lock_by_order_id(order_id)
                if payment is None or payment.external_order_ref != gateway_order_ref:
                    # superseded by a newer intent for the same order
                    raise NotFoundError("payment", gateway_order_ref)

                if payment.success:
                    result = self._verify_settled(payment, gateway_payment_ref, signature_valid)
                elif not signature_valid:
                    result, notification = self._reject(db, payment, gateway_payment_ref)
                    notifications = (notification,)
                else:
                    result, notifications = self._settle(
                        db,
                        payment,
                        gateway_payment_ref,
                        signature,
                    )

        self.dispatcher.publish(*notifications)
        return result

    # -------------------------------------------
    # Manual / offline settlement
    # -------------------------------------------
    def process(
        self,
        order_id: str,
        amount,
        method: PaymentMethod | str,
        actor_id: str,
    ) -> Payment:
        amount = self._parse_amount(amount)
        try:
            method = PaymentMethod(method.strip().upper() if isinstance(method, str) else method)
        except ValueError:
            raise ValidationError(f"Unknown payment method: {method}") from None
        if method not in MANUAL_METHODS:
            raise ValidationError(f"{method.value} payments go through the gateway flow.")

        with self.locks.hold(order_key(order_id), payment_key(order_id)):
            with session_scope(
                self.session_factory,
                "process_payment",
                order_id=order_id,
                actor_id=actor_id,
            ) as db:
                self._payable_order(db, order_id, amount)
                repository = PaymentRepository(db)
                payment = repository.lock_by_order_id(order_id)
                now = self.clock.now()

                if payment is None:
                    payment = repository.add(
                        Payment(
                            id=self.clock.new_id(),
                            order_id=order_id,
                            status=PaymentStatus.PENDING,
                            success=False,
                            created_at=now,
                        )
                    )
                elif payment.success:
                    raise ConflictError("already paid", code=ALREADY_PAID)

                PaymentStateMachine.validate_transition(payment.status, PaymentStatus.SUCCESS)
                payment.amount = amount
                payment.method = method
                payment.currency = payment.currency or self.default_currency
                payment.status = PaymentStatus.SUCCESS
                payment.success = True
                payment.transaction_id = self.clock.new_id()
                payment.payment_date = now
                payment.updated_at = now

                order_notification = self._confirm_order(db, order_id, actor_id)
                db.flush()
                notification = self._record(db, payment, PAYMENT_CONFIRMED, actor_id)

        self.dispatcher.publish(order_notification, notification)
        logger.info(
            "Manual payment recorded. order_id=%s method=%s amount=%s by %s",
            order_id,
            method.value,
            amount,
            actor_id,
        )
        return payment

    # -------------------------------------------
    # Queries
    # -------------------------------------------
    def payment_for_order(self, order_id: str) -> Payment:
        with session_scope(self.session_factory, "payment_for_order", order_id=order_id) as db:
            payment = PaymentRepository(db).get_by_order_id(order_id)
            if not payment:
                raise NotFoundError("payment for order", order_id)
            return payment

    def payment_by_gateway_ref(self, gateway_order_ref: str) -> Payment:
        with session_scope(
            self.session_factory,
            "payment_by_gateway_ref",
            gateway_order_ref=gateway_order_ref,
        ) as db:
            payment = PaymentRepository(db).get_by_external_order_ref(gateway_order_ref)
            if not payment:
                raise NotFoundError("payment", gateway_order_ref)
            return payment

    # -------------------------------------------
    # Helpers
    # -------------------------------------------
    def _verify_settled(
        self,
        payment: Payment,
        gateway_payment_ref: str,
        signature_valid: bool,
    ) -> PaymentResult:
        if not signature_valid:
            # never downgrade a settled payment on a forged callback
            logger.warning(
                "Rejected callback with bad signature for settled payment %s",
                payment.id,
            )
            return self._result(payment, gateway_payment_ref, False, "Signature mismatch.")
        if payment.external_payment_ref != gateway_payment_ref:
            raise ConflictError("already paid", code=ALREADY_PAID)

        logger.info(
            "Replayed confirmation ignored. payment_id=%s gateway_payment_ref=%s",
            payment.id,
            gateway_payment_ref,
        )
        return self._result(
            payment,
            gateway_payment_ref,
            True,
            "Payment already verified.",
            replayed=True,
        )

    def _reject(
        self,
        db: Session,
        payment: Payment,
        gateway_payment_ref: str,
    ) -> tuple[PaymentResult, PendingNotification | None]:
        logger.warning(
            "Signature verification failed. payment_id=%s gateway_order_ref=%s gateway_payment_ref=%s",
            payment.id,
            payment.external_order_ref,
            gateway_payment_ref,
        )
        if payment.status == PaymentStatus.PENDING:
            payment.status = PaymentStatus.FAILED
        payment.success = False
        payment.updated_at = self.clock.now()
        db.flush()

        notification = self.dispatcher.record(
            db,
            aggregate_type="payment",
            aggregate_id=payment.id,
            event_type=PAYMENT_FAILED,
            payload={
                "payment_id": payment.id,
                "order_id": payment.order_id,
                "gateway_order_ref": payment.external_order_ref,
                "gateway_payment_ref": gateway_payment_ref,
                "reason": "INVALID_SIGNATURE",
            },
            dedupe_key=f"payment:{payment.id}:failed:{gateway_payment_ref}",
        )
        result = self._result(
            payment,
            gateway_payment_ref,
            False,
            "Payment verification failed - signature mismatch.",
        )
        return result, notification

    def _settle(
        self,
        db: Session,
        payment: Payment,
        gateway_payment_ref: str,
        signature: str,
    ) -> tuple[PaymentResult, tuple[PendingNotification | None, ...]]:
        repository = PaymentRepository(db)
        consumed = repository.get_by_external_payment_ref(gateway_payment_ref)
        if consumed and consumed.id != payment.id:
            raise ConflictError(
                "Payment reference already consumed by another order.",
                code=PAYMENT_REF_CONSUMED,
            )

        PaymentStateMachine.validate_transition(payment.status, PaymentStatus.SUCCESS)
        order_notification = self._confirm_order(db, payment.order_id, "gateway")

        now = self.clock.now()
        payment.status = PaymentStatus.SUCCESS
        payment.success = True
        payment.external_payment_ref = gateway_payment_ref
        payment.external_signature = signature
        payment.transaction_id = gateway_payment_ref
        payment.payment_date = now
        payment.updated_at = now

        if not repository.get_callback(self._provider, gateway_payment_ref):
            repository.add_callback(
                PaymentCallback(
                    id=self.clock.new_id(),
                    provider=self._provider,
                    external_payment_ref=gateway_payment_ref,
                    payment_id=payment.id,
                    payload_hash=hash_callback_payload(
                        payment.external_order_ref,
                        gateway_payment_ref,
                        signature,
                    ),
                    status="PROCESSED",
                    created_at=now,
                )
            )
        try:
            db.flush()
        except IntegrityError as exc:
            raise ConflictError(
                "Duplicate callback delivery detected for this payment.",
                code=PAYMENT_REF_CONSUMED,
            ) from exc

        notification = self._record(db, payment, PAYMENT_CONFIRMED, "gateway")
        logger.info(
            "Payment %s verified; order %s confirmed. gateway_payment_ref=%s",
            payment.id,
            payment.order_id,
            gateway_payment_ref,
        )
        result = self._result(payment, gateway_payment_ref, True, "Payment verified successfully.")
        return result, (order_notification, notification)

    def _confirm_order(
        self,
        db: Session,
        order_id: str,
        actor_id: str,
    ) -> PendingNotification | None:
        order = OrderRepository(db).lock_order(order_id)
        if not order:
            raise NotFoundError("order", order_id)
        if order.status == OrderStatus.PENDING:
            OrderStateMachine.validate_transition(order.status, OrderStatus.CONFIRMED)
            order.status = OrderStatus.CONFIRMED
            order.updated_at = self.clock.now()
            return record_order_event(
                self.dispatcher,
                db,
                order,
                ORDER_STATUS_CHANGED,
                actor_id,
            )
        if order.status == OrderStatus.CANCELLED:
            raise InvalidStateError(
                entity="order",
                from_state=order.status.value,
                to_state=OrderStatus.CONFIRMED.value,
            )
        # staff may already have moved the order along; leave it there
        return None

    def _payable_order(
        self,
        db: Session,
        order_id: str,
        amount: Decimal,
        customer_id: str | None = None,
    ) -> Order:
        order = OrderRepository(db).get_by_id(order_id)
        if not order:
            raise NotFoundError("order", order_id)
        if customer_id is not None and order.customer_id != customer_id:
            raise ValidationError("Order does not belong to the requesting customer.")
        if order.status == OrderStatus.CANCELLED:
            raise InvalidStateError(
                entity="order",
                from_state=order.status.value,
                to_state=OrderStatus.CONFIRMED.value,
            )
        if amount != to_amount(order.total_amount):
            raise ValidationError(
                f"Amount {amount} does not match order total {to_amount(order.total_amount)}."
            )
        return order

    @staticmethod
    def _parse_amount(amount) -> Decimal:
        try:
            value = to_amount(amount)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        if value <= 0:
            raise ValidationError("Amount must be positive.")
        return value

    @property
    def _provider(self) -> str:
        return getattr(self.gateway, "provider", "RAZORPAY")

    def _record(
        self,
        db: Session,
        payment: Payment,
        event_type: str,
        actor_id: str,
    ) -> PendingNotification | None:
        return self.dispatcher.record(
            db,
            aggregate_type="payment",
            aggregate_id=payment.id,
            event_type=event_type,
            payload={
                "payment_id": payment.id,
                "order_id": payment.order_id,
                "amount": str(payment.amount),
                "currency": payment.currency,
                "method": payment.method.value,
                "gateway_payment_ref": payment.external_payment_ref,
                "actor_id": actor_id,
            },
            dedupe_key=f"payment:{payment.id}:{event_type}",
        )

    @staticmethod
    def _result(
        payment: Payment,
        gateway_payment_ref: str | None,
        success: bool,
        message: str,
        replayed: bool = False,
    ) -> PaymentResult:
        return PaymentResult(
            success=success,
            status=payment.status,
            payment_id=payment.id,
            order_id=payment.order_id,
            gateway_order_ref=payment.external_order_ref,
            gateway_payment_ref=gateway_payment_ref,
            amount=payment.amount,
            payment_date=payment.payment_date,
            replayed=replayed,
            message=message,
        )
