"""
Unit tests for LegacyRentalConnector

Requests go through httpx.MockTransport; no network access.

Author: TM3
Date: 2026-03-12
"""
import asyncio
import json

import httpx
import pytest

from rentalshop.connectors.legacy_rental_connector import (
    LegacyRentalConnector, extract_data, mask_token
)


def _page(items, key="customers", page=1, total_pages=1, count=None):
    return {
        "jsonrpc": "2.0",
        "result": {
            "meta": {"server": "pos"},
            "data": {
                key: items,
                "total_of_page": total_pages,
                "current_page": page,
                "page_size": 20,
                "count": count if count is not None else len(items),
            }
        }
    }


def _connector(handler):
    return LegacyRentalConnector(
        "https://pos.example.com/",
        "abcdefghijklmnopqrstuvwxyz",
        transport=httpx.MockTransport(handler)
    )


class TestExtractData:

    def test_list_key_under_result_data(self):
        assert extract_data(_page([{"id": 1}])) == [{"id": 1}]

    def test_result_data_list(self):
        assert extract_data({"result": {"data": [1, 2]}}) == [1, 2]

    def test_plain_data_and_body(self):
        assert extract_data({"data": {"ok": True}}) == {"ok": True}
        assert extract_data({"ok": True}) == {"ok": True}
        assert extract_data([1]) == [1]


class TestLegacyRentalConnector:

    def test_requires_endpoint(self):
        with pytest.raises(ValueError):
            LegacyRentalConnector("", "token")

    def test_mask_token(self):
        assert mask_token("abcdefghijklmnopqrstuvwxyz") == "***qrstuvwxyz"
        assert mask_token(None) == "NOT SET"

    def test_fetch_sends_json_rpc_envelope(self):
        # Arrange
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"result": {"data": {"ok": 1}}})

        connector = _connector(handler)

        # Act
        result = asyncio.run(connector.fetch("/rental/ping", {"a": 1}))

        # Assert
        assert result["success"] is True
        assert result["data"] == {"ok": 1}
        assert seen["url"] == "https://pos.example.com/rental/ping"
        assert seen["body"] == {"jsonrpc": "2.0", "id": None, "params": {"a": 1}}
        assert seen["headers"]["TOKEN"] == "abcdefghijklmnopqrstuvwxyz"
        assert seen["headers"]["device"] == "Iphone 6s"
        assert connector.api_calls == 1

    def test_fetch_http_error(self):
        connector = _connector(lambda request: httpx.Response(500, text="boom"))

        result = asyncio.run(connector.fetch("/rental/get_orders"))

        assert result == {"success": False, "error": "HTTP 500: boom"}
        assert any(log["level"] == "error" for log in connector.get_logs())

    def test_fetch_redirect_is_an_error(self):
        """Test a 3xx answer (e.g. a login page redirect) is not parsed as data"""
        connector = _connector(
            lambda request: httpx.Response(302, headers={"Location": "/login"}, text="Found")
        )

        result = asyncio.run(connector.fetch("/rental/get_orders"))

        assert result == {"success": False, "error": "HTTP 302: Found"}

    def test_fetch_rpc_error(self):
        connector = _connector(
            lambda request: httpx.Response(200, json={"error": {"message": "Session expired"}})
        )

        result = asyncio.run(connector.fetch("/rental/get_orders"))

        assert result["success"] is False
        assert result["error"] == "Session expired"

    def test_fetch_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        result = asyncio.run(_connector(handler).fetch("/rental/get_orders"))

        assert result["success"] is False
        assert "refused" in result["error"]

    def test_fetch_all_pages(self):
        """Test every page listed by total_of_page is requested and merged"""
        # Arrange
        pages = {
            1: _page([{"id": 1}, {"id": 2}], page=1, total_pages=3, count=5),
            2: _page([{"id": 3}, {"id": 4}], page=2, total_pages=3, count=5),
            3: _page([{"id": 5}], page=3, total_pages=3, count=5),
        }

        def handler(request):
            page = json.loads(request.content)["params"].get("page", 1)
            return httpx.Response(200, json=pages[page])

        connector = _connector(handler)

        # Act
        result = asyncio.run(connector.fetch_customers())

        # Assert
        assert [c["id"] for c in result["data"]] == [1, 2, 3, 4, 5]
        assert result["pagination"]["total_of_page"] == 3
        assert result["pagination"]["count"] == 5
        assert result["meta"] == {"server": "pos"}
        assert connector.api_calls == 3

    def test_failed_page_is_skipped(self):
        def handler(request):
            page = json.loads(request.content)["params"].get("page", 1)
            if page == 2:
                return httpx.Response(502, text="bad gateway")
            return httpx.Response(200, json=_page([{"id": page}], key="products", page=page, total_pages=2))

        connector = _connector(handler)

        result = asyncio.run(connector.fetch_products())

        assert result["success"] is True
        assert result["data"] == [{"id": 1}]
        assert any(log["level"] == "warning" for log in connector.get_logs())

    def test_fetch_orders_params(self):
        # Arrange
        seen = {}

        def handler(request):
            seen["params"] = json.loads(request.content)["params"]
            return httpx.Response(200, json=_page([{"id": 9}], key="orders"))

        # Act
        result = asyncio.run(_connector(handler).fetch_orders(start_date="2026-03-01", end_date="2026-03-05"))

        # Assert
        assert result["data"] == [{"id": 9}]
        assert seen["params"]["after_time"] == "2026-03-01"
        assert seen["params"]["end_date"] == "2026-03-05"
        assert seen["params"]["product_ids"] == []

    def test_connection_check(self):
        connector = _connector(lambda request: httpx.Response(200, json=_page([{"id": 1}], count=42)))

        result = asyncio.run(connector.test_connection())

        assert result["success"] is True
        assert result["customers_count"] == 42
        assert result["token"] == "***qrstuvwxyz"

    def test_clear_logs(self):
        connector = _connector(lambda request: httpx.Response(200, json={}))
        asyncio.run(connector.fetch("/x"))

        connector.clear_logs()

        assert connector.get_logs() == []
