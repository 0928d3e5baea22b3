"""
Orders API Endpoints
Rental and sale orders, status changes and rental pricing helpers

Author: TM3
Date: 2026-03-09
"""
from fastapi import APIRouter, HTTPException, Query, Depends
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
import logging

from rentalshop.core.auth import TokenUser, get_current_user, require_role, resolve_merchant_scope
from rentalshop.core.errors import RentalShopError, NotFoundError, ValidationError, ErrorCode
from rentalshop.domain.order import OrderCreate, OrderUpdate, OrderStatusUpdate, ORDER_TYPES, ORDER_STATUSES
from rentalshop.repositories.order_repository import OrderRepository
from rentalshop.repositories.product_repository import ProductRepository
from rentalshop.services.order_service import OrderService
from rentalshop.services.pricing_service import calculate_rental_price, validate_rental_period

logger = logging.getLogger(__name__)
router = APIRouter()


class RentalPriceRequest(BaseModel):
    product_id: int
    quantity: int = Field(1, ge=1)
    duration: Optional[int] = Field(None, ge=1)


class RentalPeriodRequest(BaseModel):
    product_id: int
    outlet_id: int
    quantity: int = 1
    start: datetime
    end: datetime


def _scope(user: TokenUser) -> Optional[int]:
    """Merchant the caller is limited to (None for admins)"""
    return None if user.is_admin else user.merchant_id


def _get_product(product_id: int, user: TokenUser):
    product = ProductRepository().find_by_id(product_id)
    if product is None or (not user.is_admin and product.merchant_id != user.merchant_id):
        raise NotFoundError(f"Product {product_id} not found", code=ErrorCode.PRODUCT_NOT_FOUND)
    return product


@router.get("/")
async def get_orders(
    merchant_id: Optional[int] = Query(None, description="Merchant (admins may omit to list all)"),
    outlet_id: Optional[int] = Query(None, description="Filter by outlet"),
    status: Optional[str] = Query(None, description="Filter by order status"),
    order_type: Optional[str] = Query(None, description="RENT or SALE"),
    customer_id: Optional[int] = Query(None, description="Filter by customer"),
    search: Optional[str] = Query(None, description="Search by order number, customer name or phone"),
    from_date: Optional[str] = Query(None, description="Created on/after (YYYY-MM-DD)"),
    to_date: Optional[str] = Query(None, description="Created on/before (YYYY-MM-DD)"),
    limit: int = Query(50, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    user: TokenUser = Depends(get_current_user)
):
    """
    Get orders with optional filters

    Outlet staff only see orders of their own outlet.
    """
    try:
        scope = resolve_merchant_scope(user, merchant_id, required=False)
        if user.role in ("OUTLET_ADMIN", "OUTLET_STAFF") and user.outlet_id:
            outlet_id = user.outlet_id

        orders, total = OrderRepository().find_all(
            merchant_id=scope,
            outlet_id=outlet_id,
            status=status.upper() if status else None,
            order_type=order_type.upper() if order_type else None,
            customer_id=customer_id,
            search=search,
            from_date=from_date,
            to_date=to_date,
            limit=limit,
            offset=offset
        )

        return {
            "status": "success",
            "total": total,
            "limit": limit,
            "offset": offset,
            "count": len(orders),
            "data": [order.to_dict() for order in orders]
        }

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching orders: {str(e)}")


@router.post("/pricing/calculate")
async def calculate_price(request: RentalPriceRequest, user: TokenUser = Depends(get_current_user)):
    """Price of renting a product for a duration, using the product's pricing type"""
    try:
        product = _get_product(request.product_id, user)
        result = calculate_rental_price(
            product.rent_price,
            request.quantity,
            duration=request.duration,
            pricing_type=product.pricing_type,
            deposit=product.deposit
        )
        return {"status": "success", "data": result}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error calculating price: {str(e)}")


@router.post("/pricing/validate")
async def validate_period(request: RentalPeriodRequest, user: TokenUser = Depends(get_current_user)):
    try:
        product = _get_product(request.product_id, user)
        stock = product.stock_at(request.outlet_id)
        available = stock.available if stock else 0

        result = validate_rental_period(
            request.start, request.end, request.quantity, available, product.rent_price
        )
        return {"status": "success", "data": result}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error validating rental period: {str(e)}")


@router.get("/number/{order_number}")
async def get_order_by_number(order_number: str, user: TokenUser = Depends(get_current_user)):
    try:
        order = OrderRepository().find_by_number(order_number)
        if order is None or (not user.is_admin and order.merchant_id != user.merchant_id):
            raise NotFoundError(f"Order {order_number} not found", code=ErrorCode.ORDER_NOT_FOUND)
        return {"status": "success", "data": order.to_dict()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching order: {str(e)}")


@router.get("/{order_id}")
async def get_order(order_id: int, user: TokenUser = Depends(get_current_user)):
    try:
        order = OrderService().get(order_id, _scope(user))
        return {"status": "success", "data": order.to_dict()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching order: {str(e)}")


@router.post("/", status_code=201)
async def create_order(
    data: OrderCreate,
    merchant_id: Optional[int] = Query(None, description="Merchant (required for admins)"),
    user: TokenUser = Depends(get_current_user)
):
    """
    Create an order

    Stock availability is checked per item at the order's outlet and
    the order number is generated for that outlet.
    """
    try:
        scope = resolve_merchant_scope(user, merchant_id)
        data.order_type = data.order_type.upper()
        if data.order_type not in ORDER_TYPES:
            raise ValidationError(f"Invalid order type '{data.order_type}'")

        order = OrderService().create(scope, data, user_id=user.id)
        return {"status": "success", "data": order.to_dict()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error creating order: {str(e)}")


@router.put("/{order_id}")
async def update_order(order_id: int, data: OrderUpdate, user: TokenUser = Depends(get_current_user)):
    try:
        order = OrderService().update(order_id, _scope(user), data, user_id=user.id)
        return {"status": "success", "data": order.to_dict()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error updating order: {str(e)}")


@router.patch("/{order_id}/status")
async def change_order_status(order_id: int, change: OrderStatusUpdate,
                              user: TokenUser = Depends(get_current_user)):
    try:
        if change.status.upper() not in ORDER_STATUSES:
            raise ValidationError(f"Invalid order status '{change.status}'")

        order = OrderService().change_status(order_id, _scope(user), change, user_id=user.id)
        return {"status": "success", "data": order.to_dict()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error updating order status: {str(e)}")


@router.delete("/{order_id}")
async def cancel_order(
    order_id: int,
    reason: Optional[str] = Query(None, description="Cancellation reason"),
    user: TokenUser = Depends(require_role("OUTLET_ADMIN"))
):
    """Cancel an order (orders are never hard-deleted)"""
    try:
        order = OrderService().cancel(order_id, _scope(user), reason=reason, user_id=user.id)
        return {"status": "success", "data": order.to_dict()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error cancelling order: {str(e)}")
