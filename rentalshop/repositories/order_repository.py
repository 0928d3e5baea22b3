"""
Order Repository - Data Access Layer for Orders

Handles all database queries for orders and order items.
Writes that touch stock (create, status changes) run in one transaction
together with the outlet_stock updates.

Author: TM3
Date: 2026-03-04
"""
from typing import List, Optional, Tuple, Dict, Any
from datetime import datetime, date

from rentalshop.domain.order import Order, OrderItem
from rentalshop.core.database import get_db_connection_dict
from rentalshop.core.errors import InsufficientStockError, ValidationError, ConflictError, ErrorCode

ORDER_COLUMNS = """
    o.id, o.order_number, o.order_type, o.status, o.outlet_id, ot.merchant_id,
    o.customer_id, o.customer_name, o.customer_phone, o.total_amount,
    o.deposit_amount, o.damage_fee, o.pickup_planned_at, o.return_planned_at,
    o.picked_up_at, o.returned_at, o.notes, o.created_at, o.updated_at
"""

ORDER_FROM = "orders o JOIN outlets ot ON ot.id = o.outlet_id"

ITEM_COLUMNS = """
    oi.id, oi.order_id, oi.product_id, p.name as product_name, oi.quantity,
    oi.unit_price, oi.total_price, oi.deposit, oi.notes
"""

# (product_id, outlet_id, stock_delta, renting_delta)
StockMove = Tuple[int, int, int, int]


class OrderRepository:
    """
    Repository for Order data access

    All SQL queries for orders are centralized here.
    Returns Order domain models, not raw dictionaries.
    """

    @staticmethod
    def _map_row_to_item(row: dict) -> OrderItem:
        return OrderItem(
            id=row['id'],
            order_id=row['order_id'],
            product_id=row.get('product_id'),
            product_name=row.get('product_name'),
            quantity=row['quantity'],
            unit_price=row['unit_price'],
            total_price=row['total_price'],
            deposit=row.get('deposit') or 0,
            notes=row.get('notes')
        )

    @staticmethod
    def _map_row_to_order(row: dict, item_rows: Optional[List[dict]] = None) -> Order:
        return Order(
            id=row['id'],
            order_number=row['order_number'],
            order_type=row['order_type'],
            status=row['status'],
            outlet_id=row['outlet_id'],
            merchant_id=row.get('merchant_id'),
            customer_id=row.get('customer_id'),
            customer_name=row.get('customer_name'),
            customer_phone=row.get('customer_phone'),
            total_amount=row['total_amount'],
            deposit_amount=row.get('deposit_amount') or 0,
            damage_fee=row.get('damage_fee') or 0,
            pickup_planned_at=row.get('pickup_planned_at'),
            return_planned_at=row.get('return_planned_at'),
            picked_up_at=row.get('picked_up_at'),
            returned_at=row.get('returned_at'),
            notes=row.get('notes'),
            created_at=row['created_at'],
            updated_at=row.get('updated_at'),
            items=[OrderRepository._map_row_to_item(r) for r in (item_rows or [])]
        )

    @staticmethod
    def _load_items(cursor, order_ids: List[int]) -> Dict[int, List[dict]]:
        if not order_ids:
            return {}

        cursor.execute(f"""
            SELECT {ITEM_COLUMNS}
            FROM order_items oi
            LEFT JOIN products p ON p.id = oi.product_id
            WHERE oi.order_id = ANY(%s)
            ORDER BY oi.id
        """, (order_ids,))

        items: Dict[int, List[dict]] = {}
        for row in cursor.fetchall():
            items.setdefault(row['order_id'], []).append(row)
        return items

    def _find_one(self, where: str, value: Any) -> Optional[Order]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {ORDER_COLUMNS}
                FROM {ORDER_FROM}
                WHERE {where}
            """, (value,))
            row = cursor.fetchone()
            if not row:
                return None

            items = self._load_items(cursor, [row['id']])
            return self._map_row_to_order(row, items.get(row['id']))

        finally:
            cursor.close()
            conn.close()

    def find_by_id(self, order_id: int) -> Optional[Order]:
        """
        Find order by ID, with items

        Returns:
            Order or None if not found
        """
        return self._find_one("o.id = %s", order_id)

    def find_by_number(self, order_number: str) -> Optional[Order]:
        return self._find_one("o.order_number = %s", order_number)

    def find_all(
        self,
        merchant_id: Optional[int] = None,
        outlet_id: Optional[int] = None,
        status: Optional[str] = None,
        order_type: Optional[str] = None,
        customer_id: Optional[int] = None,
        search: Optional[str] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[Order], int]:
        """
        Find orders with filters

        Args:
            merchant_id: Filter by merchant (through the outlet)
            outlet_id: Filter by outlet
            status: Filter by order status
            order_type: RENT or SALE
            customer_id: Filter by customer
            search: Search in order number, customer name or phone
            from_date / to_date: created_at range (inclusive dates)
            limit: Maximum results to return
            offset: Number of results to skip

        Returns:
            Tuple of (list of orders with items, total count)
        """
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            conditions = []
            params: List[Any] = []

            if merchant_id is not None:
                conditions.append("ot.merchant_id = %s")
                params.append(merchant_id)

            if outlet_id is not None:
                conditions.append("o.outlet_id = %s")
                params.append(outlet_id)

            if status:
                conditions.append("o.status = %s")
                params.append(status)

            if order_type:
                conditions.append("o.order_type = %s")
                params.append(order_type)

            if customer_id is not None:
                conditions.append("o.customer_id = %s")
                params.append(customer_id)

            if search:
                conditions.append("(o.order_number ILIKE %s OR o.customer_name ILIKE %s OR o.customer_phone ILIKE %s)")
                search_term = f"%{search}%"
                params.extend([search_term] * 3)

            if from_date:
                conditions.append("o.created_at >= %s")
                params.append(from_date)

            if to_date:
                conditions.append("o.created_at < %s::date + INTERVAL '1 day'")
                params.append(to_date)

            where_clause = " AND ".join(conditions) if conditions else "1=1"

            cursor.execute(f"""
                SELECT COUNT(*) as total
                FROM {ORDER_FROM}
                WHERE {where_clause}
            """, params)
            total = cursor.fetchone()['total']

            cursor.execute(f"""
                SELECT {ORDER_COLUMNS}
                FROM {ORDER_FROM}
                WHERE {where_clause}
                ORDER BY o.created_at DESC
                LIMIT %s OFFSET %s
            """, params + [limit, offset])

            rows = cursor.fetchall()
            items = self._load_items(cursor, [row['id'] for row in rows])
            orders = [self._map_row_to_order(row, items.get(row['id'])) for row in rows]

            return orders, total

        finally:
            cursor.close()
            conn.close()

    def find_for_product_on_day(self, product_id: int, outlet_id: int,
                                day_start: datetime, day_end: datetime) -> List[Order]:
        """
        Orders at an outlet holding product_id whose rental window touches the day

        Matches orders picked up or returned during the day, orders spanning
        it, and picked-up orders without a planned return that started before
        it. Only the items for product_id are loaded.
        """
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {ORDER_COLUMNS}
                FROM {ORDER_FROM}
                WHERE o.outlet_id = %s
                  AND o.status <> 'CANCELLED'
                  AND EXISTS (
                      SELECT 1 FROM order_items oi
                      WHERE oi.order_id = o.id AND oi.product_id = %s
                  )
                  AND (
                      o.pickup_planned_at BETWEEN %s AND %s
                      OR o.return_planned_at BETWEEN %s AND %s
                      OR (o.pickup_planned_at <= %s
                          AND (o.return_planned_at >= %s
                               OR (o.return_planned_at IS NULL AND o.status = 'PICKUPED')))
                  )
                ORDER BY o.pickup_planned_at ASC
            """, (outlet_id, product_id, day_start, day_end, day_start, day_end,
                  day_start, day_end))
            rows = cursor.fetchall()

            items = self._load_items(cursor, [row['id'] for row in rows])
            return [
                self._map_row_to_order(
                    row, [item for item in items.get(row['id'], []) if item['product_id'] == product_id]
                )
                for row in rows
            ]

        finally:
            cursor.close()
            conn.close()

    # ========================================================================
    # Order numbers
    # ========================================================================

    def order_number_exists(self, order_number: str) -> bool:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("SELECT 1 FROM orders WHERE order_number = %s", (order_number,))
            return cursor.fetchone() is not None
        finally:
            cursor.close()
            conn.close()

    def find_latest_number(self, prefix: str) -> Optional[str]:
        """Highest order number starting with prefix (longest first, then lexical)"""
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                SELECT order_number
                FROM orders
                WHERE order_number LIKE %s
                ORDER BY LENGTH(order_number) DESC, order_number DESC
                LIMIT 1
            """, (f"{prefix}%",))
            row = cursor.fetchone()
            return row['order_number'] if row else None
        finally:
            cursor.close()
            conn.close()

    # ========================================================================
    # Writes
    # ========================================================================

    def create(self, order: Dict[str, Any], items: List[Dict[str, Any]],
               check_stock: bool = True) -> Order:
        """
        Insert an order and its items in one transaction.

        When check_stock is set, the outlet_stock rows of every product are
        locked and available quantity is verified before inserting.

        Raises:
            InsufficientStockError: if a product lacks available stock
        """
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            if check_stock:
                requested: Dict[int, int] = {}
                for item in items:
                    requested[item['product_id']] = requested.get(item['product_id'], 0) + item['quantity']

                for product_id, quantity in requested.items():
                    cursor.execute("""
                        SELECT available
                        FROM outlet_stock
                        WHERE product_id = %s AND outlet_id = %s
                        FOR UPDATE
                    """, (product_id, order['outlet_id']))
                    row = cursor.fetchone()
                    available = row['available'] if row else 0
                    if available < quantity:
                        raise InsufficientStockError(
                            f"Insufficient stock for product {product_id}: "
                            f"requested {quantity}, available {available}",
                            details={"product_id": product_id, "requested": quantity, "available": available}
                        )

            now = datetime.utcnow()
            cursor.execute("""
                INSERT INTO orders
                    (order_number, order_type, status, outlet_id, customer_id,
                     customer_name, customer_phone, total_amount, deposit_amount,
                     damage_fee, pickup_planned_at, return_planned_at, picked_up_at,
                     returned_at, notes, created_by_id, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, 0, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING id
            """, (
                order['order_number'], order['order_type'], order.get('status', 'RESERVED'),
                order['outlet_id'], order.get('customer_id'), order.get('customer_name'),
                order.get('customer_phone'), order['total_amount'], order.get('deposit_amount', 0),
                order.get('pickup_planned_at'), order.get('return_planned_at'),
                order.get('picked_up_at'), order.get('returned_at'), order.get('notes'),
                order.get('created_by_id'), order.get('created_at') or now, now
            ))
            order_id = cursor.fetchone()['id']

            for item in items:
                cursor.execute("""
                    INSERT INTO order_items
                        (order_id, product_id, quantity, unit_price, total_price, deposit, notes)
                    VALUES (%s, %s, %s, %s, %s, %s, %s)
                """, (
                    order_id, item['product_id'], item['quantity'], item['unit_price'],
                    item['total_price'], item.get('deposit', 0), item.get('notes')
                ))

            cursor.execute(f"""
                SELECT {ORDER_COLUMNS}
                FROM {ORDER_FROM}
                WHERE o.id = %s
            """, (order_id,))
            row = cursor.fetchone()
            item_rows = self._load_items(cursor, [order_id])

            conn.commit()
            return self._map_row_to_order(row, item_rows.get(order_id))

        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()

    def update(self, order_id: int, fields: Dict[str, Any],
               stock_moves: Optional[List[StockMove]] = None,
               expected_status: Optional[str] = None) -> Optional[Order]:
        """
        Update order columns and apply stock moves atomically.

        Each stock move adjusts stock/renting of one product at one outlet
        and recomputes available = stock - renting.

        With expected_status the order row is locked first and the update
        raises ConflictError if another request already changed its status.
        """
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            if expected_status is not None:
                cursor.execute("SELECT status FROM orders WHERE id = %s FOR UPDATE", (order_id,))
                current = cursor.fetchone()
                if current is None:
                    conn.rollback()
                    return None
                if current['status'] != expected_status:
                    raise ConflictError(
                        f"Order {order_id} status changed to {current['status']}, expected {expected_status}",
                        code=ErrorCode.ORDER_STATUS_CHANGED,
                        details={"expected": expected_status, "current": current['status']}
                    )

            for product_id, outlet_id, stock_delta, renting_delta in (stock_moves or []):
                cursor.execute("""
                    UPDATE outlet_stock
                    SET stock = stock + %s,
                        renting = renting + %s,
                        available = (stock + %s) - (renting + %s)
                    WHERE product_id = %s AND outlet_id = %s
                    RETURNING stock, renting
                """, (stock_delta, renting_delta, stock_delta, renting_delta, product_id, outlet_id))
                row = cursor.fetchone()
                if row is None:
                    raise ValidationError(f"Product {product_id} has no stock at outlet {outlet_id}")
                if row['stock'] < 0 or row['renting'] < 0 or row['renting'] > row['stock']:
                    raise InsufficientStockError(
                        f"Insufficient stock for product {product_id} at outlet {outlet_id}",
                        details={"product_id": product_id, "stock": row['stock'], "renting": row['renting']}
                    )

            assignments = [f"{column} = %s" for column in fields] + ["updated_at = %s"]
            params = list(fields.values()) + [datetime.utcnow(), order_id]
            cursor.execute(f"""
                UPDATE orders
                SET {', '.join(assignments)}
                WHERE id = %s
                RETURNING id
            """, params)
            if cursor.fetchone() is None:
                conn.rollback()
                return None

            cursor.execute(f"""
                SELECT {ORDER_COLUMNS}
                FROM {ORDER_FROM}
                WHERE o.id = %s
            """, (order_id,))
            row = cursor.fetchone()
            item_rows = self._load_items(cursor, [order_id])

            conn.commit()
            return self._map_row_to_order(row, item_rows.get(order_id))

        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()

    def delete_many(self, order_ids: List[int]) -> int:
        """Hard delete orders and their items (sync rollback only)"""
        if not order_ids:
            return 0

        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("DELETE FROM order_items WHERE order_id = ANY(%s)", (order_ids,))
            cursor.execute("DELETE FROM orders WHERE id = ANY(%s)", (order_ids,))
            deleted = cursor.rowcount
            conn.commit()
            return deleted
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()
