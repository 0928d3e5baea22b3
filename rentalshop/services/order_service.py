"""
Order Service - order creation and status lifecycle

Stock effects per transition:
- RENT  RESERVED -> PICKUPED : renting += qty (available -= qty)
- RENT  PICKUPED -> RETURNED : renting -= qty (available += qty)
- RENT  PICKUPED -> COMPLETED / CANCELLED : renting -= qty
- SALE  -> COMPLETED         : stock -= qty (available -= qty)

Author: TM3
Date: 2026-03-05
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, Any, Optional, List

from rentalshop.core.errors import NotFoundError, ValidationError, ErrorCode
from rentalshop.domain.order import (
    Order, OrderCreate, OrderUpdate, OrderStatusUpdate, ORDER_STATUSES, ORDER_STATUS_TRANSITIONS
)
from rentalshop.repositories.merchant_repository import OutletRepository
from rentalshop.repositories.product_repository import ProductRepository
from rentalshop.repositories.customer_repository import CustomerRepository
from rentalshop.repositories.order_repository import OrderRepository, StockMove
from rentalshop.repositories.audit_repository import AuditRepository
from rentalshop.services.order_number_service import OrderNumberGenerator
from rentalshop.services.plan_limit_service import PlanLimitService
from rentalshop.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)


def stock_moves_for_transition(order: Order, new_status: str) -> List[StockMove]:
    """Stock deltas implied by moving an order to new_status"""
    moves: List[StockMove] = []

    for item in order.items:
        if item.product_id is None:
            continue

        if order.order_type == "RENT":
            if order.status == "RESERVED" and new_status == "PICKUPED":
                moves.append((item.product_id, order.outlet_id, 0, item.quantity))
            elif order.status == "PICKUPED" and new_status in ("RETURNED", "COMPLETED", "CANCELLED"):
                moves.append((item.product_id, order.outlet_id, 0, -item.quantity))
        elif order.order_type == "SALE" and new_status == "COMPLETED":
            moves.append((item.product_id, order.outlet_id, -item.quantity, 0))

    return moves


def validate_transition(order: Order, new_status: str) -> None:
    if new_status not in ORDER_STATUSES:
        raise ValidationError(f"Invalid order status '{new_status}'")

    allowed = ORDER_STATUS_TRANSITIONS.get(order.status, ())
    if new_status not in allowed:
        raise ValidationError(
            f"Cannot change order {order.order_number} from {order.status} to {new_status}",
            code=ErrorCode.INVALID_STATUS_TRANSITION,
            details={"from": order.status, "to": new_status, "allowed": list(allowed)}
        )

    if new_status == "RETURNED" and order.order_type != "RENT":
        raise ValidationError("Only rental orders can be returned",
                              code=ErrorCode.INVALID_STATUS_TRANSITION)


class OrderService:
    """Business logic for orders"""

    def __init__(self,
                 order_repo: Optional[OrderRepository] = None,
                 outlet_repo: Optional[OutletRepository] = None,
                 product_repo: Optional[ProductRepository] = None,
                 customer_repo: Optional[CustomerRepository] = None,
                 audit_repo: Optional[AuditRepository] = None,
                 number_generator: Optional[OrderNumberGenerator] = None,
                 plan_limits: Optional[PlanLimitService] = None,
                 subscriptions: Optional[SubscriptionService] = None):
        self.order_repo = order_repo or OrderRepository()
        self.outlet_repo = outlet_repo or OutletRepository()
        self.product_repo = product_repo or ProductRepository()
        self.customer_repo = customer_repo or CustomerRepository()
        self.audit_repo = audit_repo or AuditRepository()
        self.number_generator = number_generator or OrderNumberGenerator(repository=self.order_repo)
        self.plan_limits = plan_limits or PlanLimitService()
        self.subscriptions = subscriptions or SubscriptionService()

    def get(self, order_id: int, merchant_id: Optional[int] = None) -> Order:
        order = self.order_repo.find_by_id(order_id)
        if order is None or (merchant_id is not None and order.merchant_id != merchant_id):
            raise NotFoundError(f"Order {order_id} not found", code=ErrorCode.ORDER_NOT_FOUND)
        return order

    def create(self, merchant_id: int, data: OrderCreate, user_id: Optional[str] = None) -> Order:
        """
        Create an order for one of the merchant's outlets.

        Raises:
            NotFoundError: outlet, product or customer not found for this merchant
            InsufficientStockError: a product lacks available stock at the outlet
            PlanLimitError / SubscriptionError: the merchant may not create orders
        """
        outlet = self.outlet_repo.find_by_id(data.outlet_id)
        if outlet is None or outlet.merchant_id != merchant_id:
            raise NotFoundError(f"Outlet {data.outlet_id} not found", code=ErrorCode.OUTLET_NOT_FOUND)

        self.subscriptions.ensure_can_perform(merchant_id, "create")
        self.plan_limits.enforce(merchant_id, "orders")

        customer_name = data.customer_name
        customer_phone = data.customer_phone
        if data.customer_id is not None:
            customer = self.customer_repo.find_by_id(data.customer_id)
            if customer is None or customer.merchant_id != merchant_id:
                raise NotFoundError(f"Customer {data.customer_id} not found",
                                    code=ErrorCode.CUSTOMER_NOT_FOUND)
            customer_name = customer_name or customer.full_name
            customer_phone = customer_phone or customer.phone

        items = []
        for item in data.items:
            product = self.product_repo.find_by_id(item.product_id)
            if product is None or product.merchant_id != merchant_id or not product.is_active:
                raise NotFoundError(f"Product {item.product_id} not found",
                                    code=ErrorCode.PRODUCT_NOT_FOUND)

            if item.unit_price is not None:
                unit_price = item.unit_price
            elif data.order_type == "SALE":
                unit_price = product.sale_price or Decimal("0")
            else:
                unit_price = product.rent_price

            items.append({
                "product_id": product.id,
                "quantity": item.quantity,
                "unit_price": unit_price,
                "total_price": item.total_price if item.total_price is not None else unit_price * item.quantity,
                "deposit": item.deposit,
                "notes": item.notes,
            })

        total_amount = data.total_amount
        if total_amount is None:
            total_amount = sum((i["total_price"] for i in items), Decimal("0"))

        order_number = self.number_generator.generate(outlet.id)
        order = self.order_repo.create({
            "order_number": order_number,
            "order_type": data.order_type,
            "status": "RESERVED",
            "outlet_id": outlet.id,
            "customer_id": data.customer_id,
            "customer_name": customer_name,
            "customer_phone": customer_phone,
            "total_amount": total_amount,
            "deposit_amount": data.deposit_amount,
            "pickup_planned_at": data.pickup_planned_at,
            "return_planned_at": data.return_planned_at,
            "notes": data.notes,
            "created_by_id": user_id,
        }, items)

        logger.info(f"Order {order.order_number} created for merchant {merchant_id}")
        self.audit_repo.log(
            "Order", order.id, "CREATE", user_id=user_id, merchant_id=merchant_id,
            description=f"Order created: {order.order_number}",
            new_values={"order_number": order.order_number, "total_amount": order.total_amount}
        )
        return order

    def update(self, order_id: int, merchant_id: Optional[int], data: OrderUpdate,
               user_id: Optional[str] = None) -> Order:
        order = self.get(order_id, merchant_id)
        if order.status in ("RETURNED", "COMPLETED", "CANCELLED"):
            raise ValidationError(f"Cannot edit a {order.status.lower()} order")

        fields = data.model_dump(exclude_unset=True)
        if not fields:
            return order

        updated = self.order_repo.update(order_id, fields)
        self.audit_repo.log(
            "Order", order_id, "UPDATE", user_id=user_id, merchant_id=order.merchant_id,
            description=f"Order updated: {order.order_number}",
            old_values={k: getattr(order, k) for k in fields}, new_values=fields
        )
        return updated

    def change_status(self, order_id: int, merchant_id: Optional[int], change: OrderStatusUpdate,
                      user_id: Optional[str] = None, now: Optional[datetime] = None) -> Order:
        order = self.get(order_id, merchant_id)
        new_status = change.status.upper()
        validate_transition(order, new_status)

        now = now or datetime.utcnow()
        fields: Dict[str, Any] = {"status": new_status}
        if new_status == "PICKUPED":
            fields["picked_up_at"] = now
        elif new_status == "RETURNED":
            fields["returned_at"] = now
        if change.damage_fee is not None:
            fields["damage_fee"] = change.damage_fee
        if change.notes:
            fields["notes"] = change.notes

        moves = stock_moves_for_transition(order, new_status)
        updated = self.order_repo.update(order_id, fields, stock_moves=moves, expected_status=order.status)

        logger.info(f"Order {order.order_number}: {order.status} -> {new_status}")
        self.audit_repo.log(
            "Order", order_id, "UPDATE", user_id=user_id, merchant_id=order.merchant_id,
            description=f"Order {order.order_number} status {order.status} -> {new_status}",
            old_values={"status": order.status}, new_values={"status": new_status}
        )
        return updated

    def cancel(self, order_id: int, merchant_id: Optional[int], reason: Optional[str] = None,
               user_id: Optional[str] = None) -> Order:
        note = f"Cancelled: {reason}" if reason else None
        return self.change_status(
            order_id, merchant_id, OrderStatusUpdate(status="CANCELLED", notes=note), user_id=user_id
        )
