"""
Payment Service - recording payments and moving them between statuses
"""
import logging
from datetime import datetime
from typing import Dict, Any, Optional

from rentalshop.core.errors import NotFoundError, ValidationError, ErrorCode
from rentalshop.domain.subscription import (
    Payment, PaymentCreate, PaymentStatusUpdate, PAYMENT_STATUSES, PAYMENT_METHODS, PAYMENT_TYPES
)
from rentalshop.repositories.payment_repository import PaymentRepository
from rentalshop.repositories.order_repository import OrderRepository

logger = logging.getLogger(__name__)


def status_change_fields(payment: Payment, new_status: str, now: datetime,
                         reference: Optional[str] = None) -> Dict[str, Any]:
    """Columns to write for a status change; REFUNDED requires a COMPLETED payment"""
    if new_status not in PAYMENT_STATUSES:
        raise ValidationError(f"Invalid payment status '{new_status}'")
    if new_status == "REFUNDED" and payment.status != "COMPLETED":
        raise ValidationError("Only completed payments can be refunded")
    if payment.status in ("REFUNDED", "CANCELLED") and new_status != payment.status:
        raise ValidationError(f"Payment is {payment.status.lower()}")

    fields: Dict[str, Any] = {"status": new_status}
    if new_status == "COMPLETED":
        fields["processed_at"] = now
    if reference:
        fields["reference"] = reference
    return fields


class PaymentService:

    def __init__(self, payment_repo: Optional[PaymentRepository] = None,
                 order_repo: Optional[OrderRepository] = None):
        self.payment_repo = payment_repo or PaymentRepository()
        self.order_repo = order_repo or OrderRepository()

    def get(self, payment_id: int, merchant_id: Optional[int] = None) -> Payment:
        payment = self.payment_repo.find_by_id(payment_id)
        if payment is None or (merchant_id is not None and payment.merchant_id != merchant_id):
            raise NotFoundError(f"Payment {payment_id} not found", code=ErrorCode.PAYMENT_NOT_FOUND)
        return payment

    def create(self, merchant_id: int, data: PaymentCreate, now: Optional[datetime] = None) -> Payment:
        if data.method not in PAYMENT_METHODS:
            raise ValidationError(f"Invalid payment method '{data.method}'")
        if data.type not in PAYMENT_TYPES:
            raise ValidationError(f"Invalid payment type '{data.type}'")
        if data.status not in PAYMENT_STATUSES:
            raise ValidationError(f"Invalid payment status '{data.status}'")
        if data.amount <= 0:
            raise ValidationError("Payment amount must be greater than 0")

        if data.order_id is not None:
            order = self.order_repo.find_by_id(data.order_id)
            if order is None or order.merchant_id != merchant_id:
                raise NotFoundError(f"Order {data.order_id} not found", code=ErrorCode.ORDER_NOT_FOUND)

        fields = data.model_dump()
        fields["merchant_id"] = merchant_id
        if data.status == "COMPLETED":
            fields["processed_at"] = now or datetime.utcnow()

        payment = self.payment_repo.create(fields)
        logger.info(f"Payment {payment.id} recorded for merchant {merchant_id}: {payment.amount} {payment.currency}")
        return payment

    def update_status(self, payment_id: int, merchant_id: Optional[int], change: PaymentStatusUpdate,
                      now: Optional[datetime] = None) -> Payment:
        payment = self.get(payment_id, merchant_id)
        fields = status_change_fields(payment, change.status.upper(), now or datetime.utcnow(), change.reference)
        return self.payment_repo.update(payment_id, fields)
