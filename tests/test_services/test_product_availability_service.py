"""
Unit tests for ProductAvailabilityService

Author: TM3
Date: 2026-03-13
"""
import pytest
from unittest.mock import MagicMock
from datetime import date, datetime

from rentalshop.core.errors import NotFoundError, ValidationError
from rentalshop.domain.order import Order
from rentalshop.domain.product import Product, OutletStock
from rentalshop.services.product_availability_service import (
    ProductAvailabilityService, summarize_availability
)

TODAY = date(2026, 3, 2)


def _order(row, item_row, **overrides):
    return Order(**dict(row, **overrides), items=[item_row])


@pytest.fixture
def product(sample_product_row):
    return Product(**sample_product_row, outlet_stock=[OutletStock(outlet_id=1, stock=5, renting=2, available=3)])


@pytest.fixture
def service(product):
    product_repo = MagicMock()
    order_repo = MagicMock()
    product_repo.find_by_id.return_value = product
    order_repo.find_for_product_on_day.return_value = []
    return ProductAvailabilityService(product_repo=product_repo, order_repo=order_repo)


class TestSummary:

    def test_counts_rented_and_reserved(self, sample_order_row, sample_order_item_row):
        orders = [
            _order(sample_order_row, sample_order_item_row, status="PICKUPED"),
            _order(sample_order_row, dict(sample_order_item_row, quantity=1), id=101),
        ]

        summary = summarize_availability(5, orders, 10)

        assert summary == {"total_stock": 5, "total_rented": 2, "total_reserved": 1,
                           "total_available": 2, "is_available": True}

    def test_only_counts_the_checked_product(self, sample_order_row, sample_order_item_row):
        other = dict(sample_order_item_row, product_id=11)

        summary = summarize_availability(2, [_order(sample_order_row, other)], 10)

        assert summary["total_reserved"] == 0
        assert summary["is_available"] is True

    def test_overbooked_day_is_not_available(self, sample_order_row, sample_order_item_row):
        orders = [_order(sample_order_row, dict(sample_order_item_row, quantity=3))]

        summary = summarize_availability(2, orders, 10)

        assert summary["total_available"] == 0
        assert summary["is_available"] is False


class TestProductAvailabilityService:

    def test_check_day(self, service, sample_order_row, sample_order_item_row):
        # Arrange
        service.order_repo.find_for_product_on_day.return_value = [
            _order(sample_order_row, sample_order_item_row)
        ]

        # Act
        result = service.check(10, 1, date(2026, 3, 3), merchant_id=1, today=TODAY)

        # Assert
        assert result["date"] == "2026-03-03"
        assert result["product"]["barcode"] == "DR-001"
        assert result["summary"]["total_reserved"] == 2
        assert result["summary"]["total_available"] == 3
        assert result["meta"]["total_orders"] == 1
        assert result["orders"][0]["order_number"] == "ORD00112345"
        service.order_repo.find_for_product_on_day.assert_called_once_with(
            10, 1, datetime(2026, 3, 3, 0, 0), datetime(2026, 3, 3, 23, 59, 59, 999999)
        )

    def test_past_day_is_rejected(self, service):
        with pytest.raises(ValidationError):
            service.check(10, 1, date(2026, 3, 1), today=TODAY)

        service.product_repo.find_by_id.assert_not_called()

    def test_product_of_other_merchant(self, service):
        with pytest.raises(NotFoundError):
            service.check(10, 1, TODAY, merchant_id=2, today=TODAY)

    def test_product_not_stocked_at_outlet(self, service):
        with pytest.raises(ValidationError) as exc_info:
            service.check(10, 4, TODAY, today=TODAY)

        assert "not stocked at outlet 4" in exc_info.value.message
        service.order_repo.find_for_product_on_day.assert_not_called()
