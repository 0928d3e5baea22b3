"""
Payment Repository - order and subscription payments
"""
from typing import List, Optional, Tuple, Dict, Any
from datetime import datetime

from rentalshop.domain.subscription import Payment
from rentalshop.core.database import get_db_connection_dict

PAYMENT_COLUMNS = """
    id, merchant_id, order_id, subscription_id, amount, currency, method,
    type, status, reference, description, processed_at, created_at
"""


class PaymentRepository:
    """Repository for Payment data access"""

    @staticmethod
    def _map_row_to_payment(row: dict) -> Payment:
        return Payment(**{key: row[key] for key in Payment.model_fields if key in row})

    def find_by_id(self, payment_id: int) -> Optional[Payment]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"SELECT {PAYMENT_COLUMNS} FROM payments WHERE id = %s", (payment_id,))
            row = cursor.fetchone()
            return self._map_row_to_payment(row) if row else None
        finally:
            cursor.close()
            conn.close()

    def find_all(
        self,
        merchant_id: Optional[int] = None,
        order_id: Optional[int] = None,
        subscription_id: Optional[int] = None,
        status: Optional[str] = None,
        method: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[Payment], int]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            conditions = []
            params: List[Any] = []

            filters = {
                "merchant_id": merchant_id,
                "order_id": order_id,
                "subscription_id": subscription_id,
                "status": status,
                "method": method,
            }
            for column, value in filters.items():
                if value is not None:
                    conditions.append(f"{column} = %s")
                    params.append(value)

            where_clause = " AND ".join(conditions) if conditions else "1=1"

            cursor.execute(f"SELECT COUNT(*) as total FROM payments WHERE {where_clause}", params)
            total = cursor.fetchone()['total']

            cursor.execute(f"""
                SELECT {PAYMENT_COLUMNS}
                FROM payments
                WHERE {where_clause}
                ORDER BY created_at DESC
                LIMIT %s OFFSET %s
            """, params + [limit, offset])
            return [self._map_row_to_payment(row) for row in cursor.fetchall()], total
        finally:
            cursor.close()
            conn.close()

    def create(self, fields: Dict[str, Any]) -> Payment:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            columns = list(fields.keys())
            cursor.execute(f"""
                INSERT INTO payments ({', '.join(columns)}, created_at)
                VALUES ({', '.join(['%s'] * len(columns))}, %s)
                RETURNING {PAYMENT_COLUMNS}
            """, list(fields.values()) + [datetime.utcnow()])
            row = cursor.fetchone()
            conn.commit()
            return self._map_row_to_payment(row)
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()

    def update(self, payment_id: int, fields: Dict[str, Any]) -> Optional[Payment]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            assignments = [f"{column} = %s" for column in fields]
            cursor.execute(f"""
                UPDATE payments
                SET {', '.join(assignments)}
                WHERE id = %s
                RETURNING {PAYMENT_COLUMNS}
            """, list(fields.values()) + [payment_id])
            row = cursor.fetchone()
            conn.commit()
            return self._map_row_to_payment(row) if row else None
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()
