"""
Product Availability Service
Stock, rented and reserved quantities of a product at one outlet on a given day

Author: TM3
Date: 2026-03-13
"""
from typing import Dict, Any, List, Optional
from datetime import date, datetime, time
import logging

from rentalshop.core.errors import NotFoundError, ValidationError, ErrorCode
from rentalshop.domain.order import Order
from rentalshop.repositories.product_repository import ProductRepository
from rentalshop.repositories.order_repository import OrderRepository

logger = logging.getLogger(__name__)


def summarize_availability(total_stock: int, orders: List[Order], product_id: int) -> Dict[str, Any]:
    """
    Picked-up orders count as rented, reserved orders as reserved.

    total_available never goes below zero; is_available is False when the
    day is fully booked or overbooked.
    """
    rented = 0
    reserved = 0
    for order in orders:
        quantity = sum(item.quantity for item in order.items if item.product_id == product_id)
        if order.status == "PICKUPED":
            rented += quantity
        elif order.status == "RESERVED":
            reserved += quantity

    available = total_stock - rented - reserved
    return {
        "total_stock": total_stock,
        "total_rented": rented,
        "total_reserved": reserved,
        "total_available": max(0, available),
        "is_available": available > 0,
    }


class ProductAvailabilityService:
    """Answers "can this product be rented at this outlet on this day" """

    def __init__(self,
                 product_repo: Optional[ProductRepository] = None,
                 order_repo: Optional[OrderRepository] = None):
        self.product_repo = product_repo or ProductRepository()
        self.order_repo = order_repo or OrderRepository()

    def check(self, product_id: int, outlet_id: int, day: date,
              merchant_id: Optional[int] = None, today: Optional[date] = None) -> Dict[str, Any]:
        """
        Availability summary plus the orders touching the day.

        Raises:
            ValidationError: day is in the past, or the product has no stock at the outlet
            NotFoundError: product missing or owned by another merchant
        """
        today = today or date.today()
        if day < today:
            raise ValidationError("Date cannot be in the past", details={"date": day.isoformat()})

        product = self.product_repo.find_by_id(product_id)
        if product is None or (merchant_id is not None and product.merchant_id != merchant_id):
            raise NotFoundError(f"Product {product_id} not found", code=ErrorCode.PRODUCT_NOT_FOUND)

        stock = product.stock_at(outlet_id)
        if stock is None:
            raise ValidationError(f"Product {product_id} is not stocked at outlet {outlet_id}")

        orders = self.order_repo.find_for_product_on_day(
            product_id, outlet_id, datetime.combine(day, time.min), datetime.combine(day, time.max)
        )
        logger.debug(f"Availability of product {product_id} at outlet {outlet_id} on {day}: {len(orders)} orders")

        return {
            "product": {"id": product.id, "name": product.name, "barcode": product.barcode,
                        "outlet_id": outlet_id},
            "date": day.isoformat(),
            "summary": summarize_availability(stock.stock, orders, product_id),
            "orders": [order.to_dict() for order in orders],
            "meta": {"total_orders": len(orders), "checked_at": datetime.utcnow().isoformat()},
        }
