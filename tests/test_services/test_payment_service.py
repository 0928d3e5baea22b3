"""
Unit tests for PaymentService

Author: TM3
Date: 2026-03-12
"""
import pytest
from unittest.mock import MagicMock
from datetime import datetime
from decimal import Decimal

from rentalshop.core.errors import NotFoundError, ValidationError
from rentalshop.domain.subscription import Payment, PaymentCreate, PaymentStatusUpdate
from rentalshop.services.payment_service import PaymentService, status_change_fields


def _payment(**overrides):
    fields = {
        'id': 30,
        'merchant_id': 1,
        'order_id': 100,
        'amount': Decimal('300000'),
        'method': 'CASH',
        'status': 'PENDING',
        'created_at': datetime(2026, 3, 1),
    }
    fields.update(overrides)
    return Payment(**fields)


class TestStatusChange:

    def test_completed_sets_processed_at(self):
        now = datetime(2026, 3, 2)

        fields = status_change_fields(_payment(), "COMPLETED", now, reference="RCPT-1")

        assert fields == {"status": "COMPLETED", "processed_at": now, "reference": "RCPT-1"}

    def test_refund_requires_completed(self):
        with pytest.raises(ValidationError):
            status_change_fields(_payment(), "REFUNDED", datetime(2026, 3, 2))

    def test_refunded_payment_is_final(self):
        with pytest.raises(ValidationError):
            status_change_fields(_payment(status="REFUNDED"), "COMPLETED", datetime(2026, 3, 2))


class TestPaymentService:

    def test_create_for_own_order(self):
        # Arrange
        payment_repo = MagicMock()
        order_repo = MagicMock()
        order_repo.find_by_id.return_value = MagicMock(merchant_id=1)
        payment_repo.create.return_value = _payment(status='COMPLETED')
        now = datetime(2026, 3, 2)

        # Act
        PaymentService(payment_repo, order_repo).create(
            1, PaymentCreate(order_id=100, amount=Decimal('300000'), method='CASH', status='COMPLETED'), now=now
        )

        # Assert
        fields = payment_repo.create.call_args[0][0]
        assert fields["merchant_id"] == 1
        assert fields["processed_at"] == now

    def test_create_for_other_merchants_order(self):
        order_repo = MagicMock()
        order_repo.find_by_id.return_value = MagicMock(merchant_id=2)

        with pytest.raises(NotFoundError):
            PaymentService(MagicMock(), order_repo).create(1, PaymentCreate(order_id=100, amount=Decimal('10')))

    def test_create_rejects_bad_values(self):
        service = PaymentService(MagicMock(), MagicMock())

        with pytest.raises(ValidationError):
            service.create(1, PaymentCreate(amount=Decimal('10'), method='BITCOIN'))
        with pytest.raises(ValidationError):
            service.create(1, PaymentCreate(amount=Decimal('0')))

    def test_update_status_checks_merchant(self):
        payment_repo = MagicMock()
        payment_repo.find_by_id.return_value = _payment(merchant_id=2)

        with pytest.raises(NotFoundError):
            PaymentService(payment_repo, MagicMock()).update_status(30, 1, PaymentStatusUpdate(status="COMPLETED"))

    def test_update_status_uppercases(self):
        # Arrange
        payment_repo = MagicMock()
        payment_repo.find_by_id.return_value = _payment(status='COMPLETED')

        # Act
        PaymentService(payment_repo, MagicMock()).update_status(30, None, PaymentStatusUpdate(status="refunded"))

        # Assert
        assert payment_repo.update.call_args[0][1] == {"status": "REFUNDED"}
