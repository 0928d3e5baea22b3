"""
Legacy Transformers - map legacy POS records to RentalShop fields

Legacy payloads are loose: the same value can live under several keys and
"no value" is often sent as false. Each transformer returns a plain dict
using our column names plus a "metadata" dict with the legacy identifiers.
"""
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Dict, Any, Optional, List

LEGACY_DATE_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d")


def _value(value: Any) -> Any:
    """Legacy false / 'false' / '' mean no value"""
    if value is False or value == "false" or value == "":
        return None
    return value


def _first(record: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = _value(record.get(key))
        if value is not None:
            return value
    return default


def _number(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    value = _value(value)
    if value is None:
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default


def _int(value: Any, default: int = 0) -> int:
    try:
        return int(_number(value, Decimal(default)))
    except (InvalidOperation, ValueError):
        return default


def parse_legacy_date(value: Any) -> Optional[datetime]:
    """Parse 'YYYY-MM-DD HH:MM:SS' (and ISO variants); invalid values give None"""
    value = _value(value)
    if value is None:
        return None
    if isinstance(value, datetime):
        return value

    text = str(value).strip()
    for fmt in LEGACY_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [url for url in value if isinstance(url, str) and url]


# ============================================================================
# Customers
# ============================================================================

def transform_customer(customer: Dict[str, Any]) -> Dict[str, Any]:
    full_name = _first(customer, "full_name", "name")
    if full_name is None:
        full_name = f"{customer.get('first_name') or ''} {customer.get('last_name') or ''}".strip()

    parts = str(full_name or "").split()
    first_name = parts[0] if parts else "Customer"
    last_name = " ".join(parts[1:]) or None

    phone = _first(customer, "phone", "phone_number", "mobile")

    return {
        "first_name": first_name,
        "last_name": last_name,
        "email": _first(customer, "email", "email_address"),
        "phone": str(phone).strip() if phone is not None else None,
        "address": _first(customer, "address", "street"),
        "city": _first(customer, "city"),
        "state": _first(customer, "state", "province"),
        "zip_code": _first(customer, "zip_code", "zipCode", "postal_code"),
        "country": _first(customer, "country"),
        "id_number": _first(customer, "id_number", "idNumber", "identity_number"),
        "id_type": _first(customer, "id_type", "idType"),
        "notes": _first(customer, "notes", "note", "description"),
        "is_active": customer.get("is_active") is not False and customer.get("isActive") is not False,
        "metadata": {
            "customer_id": _first(customer, "customer_id", "id"),
            "customer_level": customer.get("customer_level"),
            "royal_rental_point": customer.get("royal_rental_point"),
            "royal_sale_point": customer.get("royal_sale_point"),
        },
    }


# ============================================================================
# Products
# ============================================================================

def _product_stock(product: Dict[str, Any]) -> int:
    # on_hand can go negative when over-rented, so quantity wins when present
    if product.get("quantity") is not None:
        stock = _int(product["quantity"])
    elif product.get("on_hand") is not None and product.get("in_rent") is not None:
        stock = _int(product["on_hand"]) + _int(product["in_rent"])
    elif product.get("stock") is not None:
        stock = _int(product["stock"])
    elif product.get("total_stock") is not None:
        stock = _int(product["total_stock"])
    else:
        stock = 0
    return max(0, stock)


def _product_images(product: Dict[str, Any]) -> List[str]:
    if _string_list(product.get("gallery")):
        return _string_list(product["gallery"])
    if isinstance(_value(product.get("avatar")), str):
        return [product["avatar"]]
    for key in ("images", "image_urls"):
        if _string_list(product.get(key)):
            return _string_list(product[key])
    if isinstance(_value(product.get("image")), str):
        return [product["image"]]
    return []


def transform_product(product: Dict[str, Any], outlet_id: Optional[int] = None,
                      category_id: Optional[int] = None) -> Dict[str, Any]:
    pricing = product.get("rental_pricing")
    if isinstance(pricing, list) and pricing:
        rent_price = _number(pricing[0].get("price") if isinstance(pricing[0], dict) else None)
    else:
        rent_price = _number(_first(product, "rent_price", "rentPrice", "price", "rental_price"))

    sale_price = _first(product, "sale_price", "salePrice")

    return {
        "name": _first(product, "name", "product_name", "title", default="Untitled Product"),
        "description": _first(product, "description", "desc", "details"),
        "barcode": _first(product, "barcode", "sku", "code", "default_code"),
        "stock": _product_stock(product),
        "rent_price": max(rent_price, Decimal("0")),
        "sale_price": _number(sale_price) if sale_price is not None else None,
        "deposit": _number(_first(product, "deposit", "security_deposit", "deposit_amount")),
        "images": _product_images(product),
        "is_active": (product.get("is_active") is not False and product.get("isActive") is not False
                      and product.get("type") != "inactive"),
        "outlet_id": outlet_id,
        "category_id": category_id,
        "metadata": {
            "product_id": _first(product, "product_id", "id"),
            "on_hand": product.get("on_hand"),
            "in_rent": product.get("in_rent"),
            "sold": product.get("sold"),
        },
    }


# ============================================================================
# Orders
# ============================================================================

def _order_type(order: Dict[str, Any]) -> str:
    for key in ("order_type", "order_state"):
        if _value(order.get(key)) is not None:
            return "SALE" if str(order[key]).lower() in ("sale", "sell") else "RENT"
    if _value(order.get("type")) is not None:
        return "SALE" if str(order["type"]).upper() == "SALE" else "RENT"
    if order.get("is_sale") or order.get("isSale"):
        return "SALE"
    return "RENT"


def _order_status(order: Dict[str, Any], order_type: str) -> str:
    closed = "RETURNED" if order_type == "RENT" else "COMPLETED"
    raw = _first(order, "order_status", "status")
    if raw is None:
        return "RESERVED"

    status = str(raw).lower()
    if re.search(r"pickup|picked|renting|active", status):
        return "PICKUPED"
    if "return" in status:
        return closed
    if "cancel" in status:
        return "CANCELLED"
    if re.search(r"complete|finish|done", status):
        return "COMPLETED"
    return "RESERVED"


def _order_item(item: Dict[str, Any], product_map: Dict[str, int]) -> Dict[str, Any]:
    old_product_id = _first(item, "product_id", "productId")
    quantity = _int(_first(item, "quantity", "qty"), 1) or 1
    unit_price = _number(_first(item, "price", "unit_price", "unitPrice"))
    total_price = _first(item, "sub_total", "total_price")

    mapped = {
        "product_id": product_map.get(str(old_product_id)) if old_product_id is not None else None,
        "quantity": quantity,
        "unit_price": unit_price,
        "total_price": _number(total_price) if total_price is not None else unit_price * quantity,
        "deposit": _number(_first(item, "deposit", "security_deposit")),
    }
    if mapped["product_id"] is None:
        mapped["old_product_id"] = old_product_id
    return mapped


def transform_order(order: Dict[str, Any], outlet_id: Optional[int] = None,
                    product_map: Optional[Dict[str, int]] = None) -> Dict[str, Any]:
    """
    Map a legacy order.

    product_map maps legacy product ids (as strings) to our product ids;
    items whose product is not mapped keep old_product_id instead.
    """
    product_map = product_map or {}
    order_type = _order_type(order)

    raw_items = _first(order, "list_product", "orderItems", "items", default=[])
    items = [_order_item(item, product_map) for item in raw_items if isinstance(item, dict)]

    total = _first(order, "book_amount", "total_amount", "totalAmount", "total")
    total_amount = _number(total) if total is not None else sum(
        (item["total_price"] for item in items), Decimal("0")
    )

    phone = _first(order, "customer_phone", "customerPhone", "phone")

    return {
        "order_type": order_type,
        "status": _order_status(order, order_type),
        "outlet_id": outlet_id,
        "total_amount": total_amount,
        "deposit_amount": _number(_first(order, "deposit_amount", "depositAmount", "deposit")),
        "damage_fee": _number(order.get("damage_fee")),
        "pickup_planned_at": parse_legacy_date(_first(order, "pickup_date", "pickup_plan_at")),
        "return_planned_at": parse_legacy_date(_first(order, "return_date", "return_plan_at")),
        "picked_up_at": parse_legacy_date(_first(order, "picked_up_at", "pickup_at")),
        "returned_at": parse_legacy_date(_first(order, "returned_at", "return_at")),
        "customer_name": _first(order, "customer_name", "customerName"),
        "customer_phone": str(phone).strip() if phone is not None else None,
        "notes": _first(order, "note", "notes", "description"),
        "items": items,
        "metadata": {
            "order_id": _first(order, "order_id", "id"),
            "order_code": _first(order, "order_code", "orderNumber"),
            "create_date": order.get("create_date"),
            "customer_id": order.get("customer_id"),
            "outlet_id": order.get("outlet_id"),
            "discount": order.get("discount") or 0,
        },
    }
