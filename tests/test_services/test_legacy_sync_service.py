"""
Unit tests for LegacySyncService

The connector and every repository are mocks; the tests follow one sync
session from fetch to rollback.

Author: TM3
Date: 2026-03-12
"""
import asyncio
import pytest
from unittest.mock import patch, MagicMock, AsyncMock
from datetime import datetime

import requests

from rentalshop.core.errors import NotFoundError, ValidationError, RentalShopError, ErrorCode
from rentalshop.domain.sync import SyncSession, SyncRecord
from rentalshop.services.legacy_sync_service import (
    LegacySyncService, build_connector, resolve_entities, validate_image_urls
)

LEGACY_CUSTOMERS = [
    {"id": 1, "name": "Lan Nguyen", "phone": "0901234567"},
    {"id": 2, "name": "Minh Tran", "phone": "0907654321"},
]
LEGACY_PRODUCTS = [
    {"id": 88, "name": "Wedding dress", "price": 1200000, "quantity": 2},
]
LEGACY_ORDERS = [
    {"id": 9001, "status": "reserved", "customer_phone": "0901234567",
     "list_product": [{"product_id": 88, "qty": 1, "price": 1200000}]},
    {"id": 9002, "status": "reserved", "list_product": [{"product_id": 77, "qty": 1}]},
]


def _session(status="IN_PROGRESS", **fields):
    return SyncSession(id=3, merchant_id=1, status=status, started_at=datetime(2026, 3, 6), **fields)


def _connector(customers=LEGACY_CUSTOMERS, products=LEGACY_PRODUCTS, orders=LEGACY_ORDERS):
    connector = MagicMock()
    connector.fetch_customers = AsyncMock(return_value={"success": True, "data": customers})
    connector.fetch_products = AsyncMock(return_value={"success": True, "data": products})
    connector.fetch_orders = AsyncMock(return_value={"success": True, "data": orders})
    connector.get_logs.return_value = []
    return connector


@pytest.fixture
def service():
    service = LegacySyncService(
        connector=_connector(),
        merchant_repo=MagicMock(),
        outlet_repo=MagicMock(),
        customer_repo=MagicMock(),
        product_repo=MagicMock(),
        category_repo=MagicMock(),
        order_repo=MagicMock(),
        sync_repo=MagicMock(),
        number_generator=MagicMock(),
    )
    service.outlet_repo.find_default.return_value = MagicMock(id=1)
    service.category_repo.find_or_create_default.return_value = 4
    service.sync_repo.create_session.return_value = _session()
    service.sync_repo.finish_session.side_effect = lambda sid, status, **kwargs: _session(status)
    service.customer_repo.find_existing_phones.return_value = ["0907654321"]
    service.customer_repo.create.return_value = MagicMock(id=20)
    service.customer_repo.find_by_phone.return_value = MagicMock(id=20)
    service.product_repo.create.return_value = MagicMock(id=10)
    service.order_repo.create.return_value = MagicMock(id=100)
    service.number_generator.generate.return_value = 'ORD00112345'
    return service


class TestLegacySyncService:

    def test_preview_counts_and_samples(self, service):
        # Act
        preview = asyncio.run(service.preview(1))

        # Assert
        assert preview["counts"] == {"customers": 2, "products": 1, "orders": 2}
        assert preview["samples"]["customers"][0]["first_name"] == "Lan"
        service.sync_repo.create_session.assert_not_called()

    def test_preview_unknown_merchant(self, service):
        service.merchant_repo.find_by_id.return_value = None

        with pytest.raises(NotFoundError):
            asyncio.run(service.preview(99))

    def test_execute_creates_and_records(self, service):
        # Act
        result = asyncio.run(service.execute(1))

        # Assert
        stats = result["stats"]
        assert stats["customers"] == {"total": 2, "created": 1, "failed": 0}
        assert stats["products"] == {"total": 1, "created": 1, "failed": 0}
        assert stats["orders"] == {"total": 2, "created": 1, "failed": 1}
        assert result["errors"] == ["Order 9002: unmapped products [77]"]
        assert result["session"]["status"] == "COMPLETED"

        order_fields, items = service.order_repo.create.call_args[0]
        assert order_fields["customer_id"] == 20
        assert order_fields["order_number"] == 'ORD00112345'
        assert items[0]["product_id"] == 10
        assert service.order_repo.create.call_args[1] == {"check_stock": False}

        recorded = [c[0][1] for c in service.sync_repo.add_record.call_args_list]
        assert recorded == ["customer", "product", "order"]

    def test_execute_counts_failed_customer(self, service):
        # Arrange
        service.customer_repo.find_existing_phones.return_value = []
        service.customer_repo.create.side_effect = [MagicMock(id=20), Exception("duplicate key")]

        # Act
        result = asyncio.run(service.execute(1))

        # Assert
        assert result["stats"]["customers"] == {"total": 2, "created": 1, "failed": 1}
        assert any("duplicate key" in error for error in result["errors"])

    def test_execute_without_outlet(self, service):
        service.outlet_repo.find_default.return_value = None

        with pytest.raises(NotFoundError):
            asyncio.run(service.execute(1))
        service.sync_repo.create_session.assert_not_called()

    def test_execute_selected_entities(self, service):
        # Act
        result = asyncio.run(service.execute(1, entities=["customers"]))

        # Assert
        assert list(result["stats"]) == ["customers"]
        service._connector.fetch_products.assert_not_awaited()
        service._connector.fetch_orders.assert_not_awaited()
        assert service.sync_repo.create_session.call_args[1]["entities"] == ["customers"]
        service.product_repo.create.assert_not_called()

    def test_orders_need_products(self, service):
        with pytest.raises(ValidationError):
            asyncio.run(service.execute(1, entities=["customers", "orders"]))

        service.sync_repo.create_session.assert_not_called()

    def test_execute_stores_endpoint_not_token(self, service):
        service._connector.endpoint = "https://legacy.example.com"
        service._connector.token = "secret-token"

        asyncio.run(service.execute(1))

        assert service.sync_repo.create_session.call_args[1]["config"] == {"endpoint": "https://legacy.example.com"}

    def test_inactive_product_recorded_when_deactivate_fails(self, service):
        # Arrange
        service._connector.fetch_products = AsyncMock(return_value={
            "success": True, "data": [dict(LEGACY_PRODUCTS[0], is_active=False)]
        })
        service.product_repo.deactivate.side_effect = Exception("deadlock detected")

        # Act
        result = asyncio.run(service.execute(1))

        # Assert
        assert result["stats"]["products"] == {"total": 1, "created": 1, "failed": 0}
        assert "Product 88: created but could not be deactivated: deadlock detected" in result["errors"]
        service.sync_repo.add_record.assert_any_call(3, "product", 10, old_id="88")
        assert service.order_repo.create.call_args[0][1][0]["product_id"] == 10

    def test_product_with_failed_deactivate_is_rolled_back(self, service):
        """Test a product whose deactivation failed is still deleted when the run fails later"""
        # Arrange
        service._connector.fetch_products = AsyncMock(return_value={
            "success": True, "data": [dict(LEGACY_PRODUCTS[0], is_active=False)]
        })
        service.product_repo.deactivate.side_effect = Exception("deadlock detected")
        service.sync_repo.add_record.side_effect = [None, None, RuntimeError("connection lost")]

        # Act
        with pytest.raises(RentalShopError):
            asyncio.run(service.execute(1))

        # Assert
        service.product_repo.delete_many.assert_called_once_with([10])
        service.order_repo.delete_many.assert_called_once_with([100])
        service.sync_repo.delete_records.assert_called_once_with(3)

    def test_fetch_failure_marks_session_failed(self, service):
        """Test a legacy fetch error removes created records and fails the session"""
        # Arrange
        service._connector.fetch_orders = AsyncMock(return_value={"success": False, "error": "timeout"})

        # Act
        with pytest.raises(RentalShopError) as exc_info:
            asyncio.run(service.execute(1))

        # Assert
        assert exc_info.value.code == ErrorCode.LEGACY_SYNC_FAILED
        args, kwargs = service.sync_repo.finish_session.call_args
        assert args == (3, "FAILED")
        assert "timeout" in kwargs["error"]
        service.order_repo.delete_many.assert_called_once_with([])

    def test_unexpected_error_deletes_created_records(self, service):
        # Arrange
        service.sync_repo.add_record.side_effect = [None, RuntimeError("connection lost")]

        # Act
        with pytest.raises(RentalShopError):
            asyncio.run(service.execute(1))

        # Assert
        service.customer_repo.delete_many.assert_called_once_with([20])
        service.product_repo.delete_many.assert_called_once_with([10])

    def test_rollback(self, service):
        # Arrange
        service.sync_repo.find_session.return_value = _session("COMPLETED")
        service.sync_repo.find_records.return_value = [
            SyncRecord(id=1, session_id=3, entity_type="customer", entity_id=20, created_at=datetime(2026, 3, 6)),
            SyncRecord(id=2, session_id=3, entity_type="order", entity_id=100, created_at=datetime(2026, 3, 6)),
        ]
        service.order_repo.delete_many.return_value = 1
        service.product_repo.delete_many.return_value = 0
        service.customer_repo.delete_many.return_value = 1

        # Act
        result = service.rollback(3)

        # Assert
        assert result["deleted"] == {"order": 1, "product": 0, "customer": 1}
        assert result["session"]["status"] == "ROLLED_BACK"
        service.order_repo.delete_many.assert_called_once_with([100])

    def test_rollback_twice(self, service):
        service.sync_repo.find_session.return_value = _session("ROLLED_BACK")

        with pytest.raises(ValidationError):
            service.rollback(3)

    def test_missing_session(self, service):
        service.sync_repo.find_session.return_value = None

        with pytest.raises(NotFoundError) as exc_info:
            service.get_session(42)

        assert exc_info.value.code == ErrorCode.SYNC_SESSION_NOT_FOUND


class TestResumeAndExport:

    def _records(self):
        return [
            SyncRecord(id=1, session_id=3, entity_type="customer", entity_id=20, old_id="1",
                       created_at=datetime(2026, 3, 6)),
            SyncRecord(id=2, session_id=3, entity_type="product", entity_id=10, old_id="88",
                       created_at=datetime(2026, 3, 6)),
        ]

    def test_resume_skips_synced_records(self, service):
        # Arrange
        service.sync_repo.find_session.return_value = _session("PARTIALLY_COMPLETED")
        service.sync_repo.find_records.return_value = self._records()

        # Act
        result = asyncio.run(service.resume(3))

        # Assert
        service.sync_repo.restart_session.assert_called_once_with(3)
        service.customer_repo.create.assert_not_called()
        service.product_repo.create.assert_not_called()
        assert service.order_repo.create.call_args[0][1][0]["product_id"] == 10
        assert result["stats"]["products"] == {"total": 1, "created": 1, "failed": 0}
        assert result["stats"]["orders"] == {"total": 2, "created": 1, "failed": 1}
        assert result["skipped"] == {"customers": 1, "products": 1, "orders": 0}
        assert service.sync_repo.finish_session.call_args[0] == (3, "COMPLETED")

    @pytest.mark.parametrize("status", ["COMPLETED", "IN_PROGRESS", "ROLLED_BACK"])
    def test_resume_rejects_other_statuses(self, service, status):
        service.sync_repo.find_session.return_value = _session(status)

        with pytest.raises(ValidationError) as exc_info:
            asyncio.run(service.resume(3))

        assert exc_info.value.code == ErrorCode.SYNC_SESSION_NOT_RESUMABLE
        service.sync_repo.restart_session.assert_not_called()

    def test_failed_resume_keeps_created_records(self, service):
        # Arrange
        service.sync_repo.find_session.return_value = _session("FAILED", entities=["customers", "products"])
        service.sync_repo.find_records.return_value = []
        service._connector.fetch_products = AsyncMock(return_value={"success": False, "error": "timeout"})

        # Act
        with pytest.raises(RentalShopError):
            asyncio.run(service.resume(3))

        # Assert
        service._connector.fetch_orders.assert_not_awaited()
        args, kwargs = service.sync_repo.finish_session.call_args
        assert args == (3, "PARTIALLY_COMPLETED")
        assert "timeout" in kwargs["error"]
        service.customer_repo.delete_many.assert_not_called()
        service.sync_repo.delete_records.assert_not_called()

    @patch('rentalshop.services.legacy_sync_service.build_connector')
    def test_resume_uses_session_endpoint(self, mock_build, service):
        # Arrange
        service._connector = None
        mock_build.return_value = _connector()
        service.sync_repo.find_session.return_value = _session(
            "FAILED", config={"endpoint": "https://legacy.example.com"}
        )
        service.sync_repo.find_records.return_value = []

        # Act
        asyncio.run(service.resume(3, token="fresh-token"))

        # Assert
        mock_build.assert_called_once_with("https://legacy.example.com", "fresh-token")

    def test_export_preview_limits_rows(self, service):
        # Arrange
        products = [{"id": i, "name": f"Dress {i}", "price": 100000} for i in range(25)]
        service._connector.fetch_products = AsyncMock(return_value={"success": True, "data": products})

        # Act
        result = asyncio.run(service.export(["products"], preview=True))

        # Assert
        assert result["entities"] == ["products"]
        assert result["counts"] == {"products": 25}
        assert len(result["data"]["products"]) == 20
        assert result["data"]["products"][3]["metadata"]["product_id"] == 3
        service.sync_repo.create_session.assert_not_called()
        service.product_repo.create.assert_not_called()

    def test_export_continues_after_failed_entity(self, service):
        service._connector.fetch_customers = AsyncMock(return_value={"success": False, "error": "HTTP 502: Bad Gateway"})

        result = asyncio.run(service.export(["customers", "orders"]))

        assert result["data"]["customers"] == []
        assert result["errors"] == ["Failed to fetch customers: HTTP 502: Bad Gateway"]
        assert result["counts"]["orders"] == 2
        assert result["data"]["orders"][1]["items"][0]["old_product_id"] == 77


class TestHelpers:

    @patch('rentalshop.services.legacy_sync_service.settings')
    def test_build_connector_requires_url(self, mock_settings):
        mock_settings.LEGACY_API_URL = ""

        with pytest.raises(ValidationError):
            build_connector()

    @patch('rentalshop.services.legacy_sync_service.requests.head')
    def test_validate_image_urls(self, mock_head):
        # Arrange
        mock_head.side_effect = [
            MagicMock(status_code=200, headers={"Content-Type": "image/jpeg"}),
            MagicMock(status_code=200, headers={"Content-Type": "text/html"}),
            requests.ConnectionError("dns"),
        ]

        # Act
        valid = validate_image_urls(["https://a/1.jpg", "https://a/page", "https://b/2.jpg"])

        # Assert
        assert valid == ["https://a/1.jpg"]

    def test_resolve_entities(self):
        assert resolve_entities(None) == ["customers", "products", "orders"]
        assert resolve_entities(["Orders", "products"]) == ["products", "orders"]
        assert resolve_entities(["orders"], orders_need_products=False) == ["orders"]

    def test_resolve_unknown_entity(self):
        with pytest.raises(ValidationError) as exc_info:
            resolve_entities(["customers", "invoices"])

        assert "invoices" in exc_info.value.message

    @patch('rentalshop.services.legacy_sync_service.settings')
    def test_build_connector_request_overrides(self, mock_settings):
        mock_settings.LEGACY_API_URL = "https://configured.example.com"
        mock_settings.LEGACY_API_TOKEN = "configured-token"
        mock_settings.LEGACY_API_COOKIE = None

        connector = build_connector("https://other.example.com/", "request-token")

        assert connector.endpoint == "https://other.example.com"
        assert connector.token == "request-token"
        assert build_connector().token == "configured-token"
