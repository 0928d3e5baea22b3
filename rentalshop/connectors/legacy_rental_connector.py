"""
Legacy Rental POS Connector
Fetches customers, products and orders from the legacy rental server

The legacy server speaks a JSON-RPC-like dialect: every call is a POST of
{"jsonrpc": "2.0", "id": null, "params": {...}} and answers with
{"jsonrpc": "2.0", "result": {"meta": {...}, "data": {...}}}.
Paginated lists carry total_of_page / current_page / page_size / count
inside result.data.

Every request and response is recorded in an in-memory log so the sync
UI can show what happened.

Author: TM3
Date: 2026-03-06
"""
import time
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_DEVICE_HEADERS = {
    "lat": "15.985848",
    "long": "108.2644128",
    "device": "Iphone 6s",
    "version": "234",
}

DEFAULT_PAGE_SIZE = 20
DEFAULT_AFTER_TIME = "2020-01-01"

# result.data keys holding the list for each endpoint
LIST_KEYS = ("products", "customers", "orders")

_LOG_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def extract_data(body: Any) -> Any:
    """
    Pull the useful payload out of a legacy response.

    Priority: result.data.{products,customers,orders}, result.data when it
    is a list, result.data, result, data, then the whole body.
    """
    if not isinstance(body, dict):
        return body

    result = body.get("result")
    if isinstance(result, dict):
        data = result.get("data")
        if isinstance(data, dict):
            for key in LIST_KEYS:
                if key in data and data[key] is not None:
                    return data[key]
        if data is not None:
            return data
        return result
    if result is not None:
        return result

    if body.get("data") is not None:
        return body["data"]
    return body


def mask_token(token: Optional[str]) -> str:
    return f"***{token[-10:]}" if token else "NOT SET"


class LegacyRentalConnector:
    """
    Connector for the legacy rental POS API

    Handles:
    - JSON-RPC style POST requests with device headers
    - Pagination of customers and products
    - Order retrieval by date window
    - Request/response logging (get_logs / clear_logs)
    """

    def __init__(self, endpoint: str, token: str, cookie: Optional[str] = None,
                 headers: Optional[Dict[str, str]] = None, timeout: float = 60.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Args:
            endpoint: Base URL of the legacy server
            token: Value for the TOKEN header
            cookie: Optional session cookie
            headers: Overrides for lat/long/device/version
            timeout: Request timeout in seconds
            transport: Custom httpx transport (tests)
        """
        if not endpoint:
            raise ValueError("Legacy API endpoint not configured. Set LEGACY_API_URL")

        self.endpoint = endpoint.rstrip("/")
        self.token = token
        self.cookie = cookie
        self.device_headers = {**DEFAULT_DEVICE_HEADERS, **(headers or {})}
        self.timeout = timeout
        self.transport = transport
        self.api_calls = 0
        self.logs: List[Dict[str, Any]] = []

    # ========================================================================
    # Logs
    # ========================================================================

    def log(self, level: str, message: str, data: Any = None) -> None:
        self.logs.append({
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "message": message,
            "data": data,
        })
        logger.log(_LOG_LEVELS.get(level, logging.INFO), message)

    def get_logs(self) -> List[Dict[str, Any]]:
        return list(self.logs)

    def clear_logs(self) -> None:
        self.logs = []

    # ========================================================================
    # Requests
    # ========================================================================

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "TOKEN": self.token or "",
            **self.device_headers,
        }
        if self.cookie:
            headers["Cookie"] = self.cookie
        return headers

    async def fetch(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        POST one JSON-RPC request

        Returns:
            {"success": True, "data": ..., "full_response": ...} or
            {"success": False, "error": "..."}
        """
        url = f"{self.endpoint}{path}"
        payload = {"jsonrpc": "2.0", "id": None, "params": params or {}}

        self.log("info", f"Request POST {url}", {"params": payload["params"]})
        started = time.monotonic()

        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
                response = await client.post(url, json=payload, headers=self._headers())
            self.api_calls += 1
        except httpx.HTTPError as e:
            self.log("error", f"Request to {path} failed: {e}")
            return {"success": False, "error": str(e)}

        duration_ms = round((time.monotonic() - started) * 1000, 2)
        self.log("info", f"Response {response.status_code} from {path}",
                 {"status": response.status_code, "duration_ms": duration_ms})

        if not response.is_success:
            error = f"HTTP {response.status_code}: {response.text}"
            self.log("error", f"Request to {path} failed", {"error": error})
            return {"success": False, "error": error}

        try:
            body = response.json()
        except ValueError as e:
            self.log("error", f"Invalid JSON from {path}: {e}")
            return {"success": False, "error": f"Invalid JSON response: {e}"}

        if isinstance(body, dict) and body.get("error"):
            error = body["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            self.log("error", f"Legacy server returned an error for {path}", {"error": error})
            return {"success": False, "error": message, "full_response": body}

        return {"success": True, "data": extract_data(body), "full_response": body}

    async def _fetch_all_pages(self, path: str, entity: str, keyword: str) -> Dict[str, Any]:
        self.log("info", f"Starting {entity} fetch (all pages)")

        first = await self.fetch(path, {"keyword_search": keyword})
        if not first["success"]:
            self.log("error", f"Failed to fetch {entity}: {first.get('error')}")
            return first

        items: List[Any] = []
        total_pages = 1
        current_page = 1
        page_size = DEFAULT_PAGE_SIZE
        total_count = 0
        meta = None

        result = (first.get("full_response") or {}).get("result")
        page_info = result.get("data") if isinstance(result, dict) else None

        if isinstance(page_info, dict):
            total_pages = int(page_info.get("total_of_page") or 1)
            current_page = int(page_info.get("current_page") or 1)
            page_size = int(page_info.get("page_size") or DEFAULT_PAGE_SIZE)
            total_count = int(page_info.get("count") or 0)
            meta = result.get("meta")

        if isinstance(first["data"], list):
            items.extend(first["data"])
        self.log("info", f"First page: {len(items)} {entity}, total pages: {total_pages}, total count: {total_count}")

        for page in range(2, total_pages + 1):
            self.log("info", f"Fetching page {page}/{total_pages}")
            page_result = await self.fetch(path, {"keyword_search": keyword, "page": page})

            if page_result["success"] and isinstance(page_result.get("data"), list):
                items.extend(page_result["data"])
                self.log("success", f"Page {page} fetched: {len(page_result['data'])} {entity}")
            else:
                self.log("warning", f"Page {page} failed: {page_result.get('error') or 'Unknown error'}")

        self.log("success", f"All {entity} fetched: {len(items)} total from {total_pages} pages")

        return {
            "success": True,
            "data": items,
            "pagination": {
                "total_of_page": total_pages,
                "current_page": current_page,
                "page_size": page_size,
                "count": total_count or len(items),
            },
            "meta": meta,
        }

    async def fetch_customers(self, keyword: str = "") -> Dict[str, Any]:
        return await self._fetch_all_pages("/rental/get_customers", "customers", keyword)

    async def fetch_products(self, keyword: str = "") -> Dict[str, Any]:
        return await self._fetch_all_pages("/rental/get_products", "products", keyword)

    async def fetch_orders(self, keyword: str = "", product_ids: Optional[List[int]] = None,
                           start_date: Optional[str] = None, end_date: Optional[str] = None,
                           after_time: Optional[str] = None) -> Dict[str, Any]:
        self.log("info", "Starting orders fetch")

        params: Dict[str, Any] = {
            "keyword_search": keyword,
            "product_ids": product_ids or [],
            "after_time": after_time or start_date or DEFAULT_AFTER_TIME,
        }
        if start_date:
            params["start_date"] = start_date
        if end_date:
            params["end_date"] = end_date

        result = await self.fetch("/rental/get_orders", params)

        if result["success"]:
            count = len(result["data"]) if isinstance(result.get("data"), list) else 0
            self.log("success", f"Orders fetched: {count} orders")
        else:
            self.log("error", f"Failed to fetch orders: {result.get('error')}")

        return result

    async def test_connection(self) -> Dict[str, Any]:
        self.log("info", "Testing connection to legacy server")
        self.log("info", f"Endpoint: {self.endpoint}")
        self.log("info", f"Token: {mask_token(self.token)}")

        result = await self.fetch_customers()
        if result["success"]:
            self.log("success", "Connection test successful")
            return {
                "success": True,
                "message": "Connection successful",
                "endpoint": self.endpoint,
                "token": mask_token(self.token),
                "customers_count": result["pagination"]["count"],
            }

        self.log("error", f"Connection test failed: {result.get('error')}")
        return {"success": False, "error": result.get("error"), "endpoint": self.endpoint}
