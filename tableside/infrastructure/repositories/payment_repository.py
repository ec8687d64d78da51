# tableside/infrastructure/repositories/payment_repository.py

import hashlib
import json

from sqlalchemy import select
from sqlalchemy.orm import Session

from tableside.infrastructure.db.models import Payment, PaymentCallback


def hash_callback_payload(
    gateway_order_ref: str,
    gateway_payment_ref: str,
    signature: str,
) -> str:
    payload = {
        "gateway_order_ref": gateway_order_ref,
        "gateway_payment_ref": gateway_payment_ref,
        "signature": signature,
    }
    encoded = json.dumps(payload, sort_keys=True).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


class PaymentRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, payment_id: str) -> Payment | None:
        stmt = select(Payment).where(Payment.id == payment_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_order_id(self, order_id: str) -> Payment | None:
        stmt = select(Payment).where(Payment.order_id == order_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def lock_by_order_id(self, order_id: str) -> Payment | None:
        stmt = (
            select(Payment)
            .where(Payment.order_id == order_id)
            .with_for_update()
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_external_order_ref(self, external_order_ref: str) -> Payment | None:
        stmt = select(Payment).where(Payment.external_order_ref == external_order_ref)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_external_payment_ref(self, external_payment_ref: str) -> Payment | None:
        stmt = select(Payment).where(Payment.external_payment_ref == external_payment_ref)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_callback(self, provider: str, external_payment_ref: str) -> PaymentCallback | None:
        stmt = (
            select(PaymentCallback)
            .where(PaymentCallback.provider == provider)
            .where(PaymentCallback.external_payment_ref == external_payment_ref)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def add(self, payment: Payment) -> Payment:
        self.db.add(payment)
        return payment

    def add_callback(self, callback: PaymentCallback) -> PaymentCallback:
        self.db.add(callback)
        return callback

    def delete(self, payment: Payment) -> None:
        self.db.delete(payment)
