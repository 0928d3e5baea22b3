"""
API tests for /api/v1/orders

Author: TM3
Date: 2026-03-12
"""
from unittest.mock import patch

from rentalshop.core.errors import ValidationError, InsufficientStockError, ErrorCode
from rentalshop.domain.order import Order
from rentalshop.domain.product import Product


class TestOrdersAPI:

    @patch('rentalshop.api.orders.OrderRepository')
    def test_staff_only_see_their_outlet(self, mock_repo_class, client, staff_headers, sample_order_row):
        # Arrange
        mock_repo = mock_repo_class.return_value
        mock_repo.find_all.return_value = ([Order(**sample_order_row)], 1)

        # Act
        response = client.get("/api/v1/orders/?outlet_id=2&status=reserved", headers=staff_headers)

        # Assert
        assert response.status_code == 200
        kwargs = mock_repo.find_all.call_args[1]
        assert kwargs["outlet_id"] == 1
        assert kwargs["merchant_id"] == 1
        assert kwargs["status"] == "RESERVED"
        assert response.json()["data"][0]["total_amount"] == 300000.0

    @patch('rentalshop.api.orders.OrderService')
    def test_create_order(self, mock_service_class, client, merchant_headers, sample_order_row):
        # Arrange
        mock_service_class.return_value.create.return_value = Order(**sample_order_row)

        # Act
        response = client.post(
            "/api/v1/orders/",
            json={"order_type": "rent", "outlet_id": 1, "items": [{"product_id": 10, "quantity": 2}]},
            headers=merchant_headers
        )

        # Assert
        assert response.status_code == 201
        assert response.json()["data"]["order_number"] == "ORD00112345"
        merchant_id, data = mock_service_class.return_value.create.call_args[0]
        assert merchant_id == 1
        assert data.order_type == "RENT"
        assert mock_service_class.return_value.create.call_args[1] == {"user_id": "5"}

    def test_create_order_without_items(self, client, merchant_headers):
        response = client.post("/api/v1/orders/", json={"outlet_id": 1, "items": []}, headers=merchant_headers)

        assert response.status_code == 422

    @patch('rentalshop.api.orders.OrderService')
    def test_create_with_insufficient_stock(self, mock_service_class, client, merchant_headers):
        mock_service_class.return_value.create.side_effect = InsufficientStockError(
            "Insufficient stock for product 10 at outlet 1: requested 4, available 3"
        )

        response = client.post("/api/v1/orders/", json={"outlet_id": 1, "items": [{"product_id": 10}]},
                               headers=merchant_headers)

        assert response.status_code == 400
        assert "requested 4, available 3" in response.json()["detail"]["message"]

    @patch('rentalshop.api.orders.OrderService')
    def test_change_status(self, mock_service_class, client, merchant_headers, sample_order_row):
        mock_service_class.return_value.change_status.return_value = Order(
            **dict(sample_order_row, status="PICKUPED")
        )

        response = client.patch("/api/v1/orders/100/status", json={"status": "PICKUPED"},
                                 headers=merchant_headers)

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "PICKUPED"
        assert mock_service_class.return_value.change_status.call_args[0][1] == 1

    def test_change_status_unknown(self, client, merchant_headers):
        response = client.patch("/api/v1/orders/100/status", json={"status": "LOST"}, headers=merchant_headers)

        assert response.status_code == 400

    @patch('rentalshop.api.orders.OrderService')
    def test_invalid_transition(self, mock_service_class, client, merchant_headers):
        mock_service_class.return_value.change_status.side_effect = ValidationError(
            "Cannot change order ORD00112345 from RETURNED to PICKUPED",
            code=ErrorCode.INVALID_STATUS_TRANSITION
        )

        response = client.patch("/api/v1/orders/100/status", json={"status": "PICKUPED"},
                                headers=merchant_headers)

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_STATUS_TRANSITION"

    def test_staff_cannot_cancel(self, client, staff_headers):
        response = client.delete("/api/v1/orders/100", headers=staff_headers)

        assert response.status_code == 403

    @patch('rentalshop.api.orders.ProductRepository')
    def test_calculate_price(self, mock_repo_class, client, merchant_headers, sample_product_row):
        mock_repo_class.return_value.find_by_id.return_value = Product(
            **dict(sample_product_row, pricing_type="DAILY")
        )

        response = client.post("/api/v1/orders/pricing/calculate",
                               json={"product_id": 10, "quantity": 2, "duration": 3},
                               headers=merchant_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["subtotal"] == 900000.0
        assert data["deposit"] == 1000000.0

    @patch('rentalshop.api.orders.ProductRepository')
    def test_validate_period_uses_outlet_stock(self, mock_repo_class, client, merchant_headers,
                                               sample_product_row):
        # Arrange
        product = Product(**sample_product_row, outlet_stock=[
            {"outlet_id": 1, "stock": 2, "renting": 1, "available": 1}
        ])
        mock_repo_class.return_value.find_by_id.return_value = product

        # Act
        response = client.post("/api/v1/orders/pricing/validate", json={
            "product_id": 10, "outlet_id": 1, "quantity": 2,
            "start": "2026-03-02T09:00:00", "end": "2026-03-04T09:00:00"
        }, headers=merchant_headers)

        # Assert
        data = response.json()["data"]
        assert data["is_valid"] is False
        assert data["days"] == 2
        assert "Insufficient stock. Available: 1, requested: 2" in data["errors"]
