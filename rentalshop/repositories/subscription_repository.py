"""
Subscription Repository - plans and merchant subscriptions

Author: TM3
Date: 2026-03-04
"""
from typing import List, Optional, Tuple, Dict, Any
from datetime import datetime

from rentalshop.domain.subscription import Plan, PlanCreate, PlanUpdate, Subscription
from rentalshop.core.database import get_db_connection_dict

PLAN_COLUMNS = """
    id, name, description, base_price, currency, trial_days, max_outlets,
    max_users, max_products, max_customers, max_orders, is_active,
    created_at, updated_at
"""

SUBSCRIPTION_COLUMNS = """
    s.id, s.merchant_id, s.plan_id, pl.name as plan_name, s.status,
    s.billing_interval, s.amount, s.current_period_start, s.current_period_end,
    s.trial_end, s.canceled_at, s.cancel_reason, s.created_at, s.updated_at
"""

SUBSCRIPTION_FROM = "subscriptions s JOIN plans pl ON pl.id = s.plan_id"


class PlanRepository:
    """Repository for Plan data access"""

    @staticmethod
    def _map_row_to_plan(row: dict) -> Plan:
        return Plan(**{key: row[key] for key in Plan.model_fields if key in row})

    def find_by_id(self, plan_id: int) -> Optional[Plan]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"SELECT {PLAN_COLUMNS} FROM plans WHERE id = %s", (plan_id,))
            row = cursor.fetchone()
            return self._map_row_to_plan(row) if row else None
        finally:
            cursor.close()
            conn.close()

    def find_for_merchant(self, merchant_id: int) -> Optional[Plan]:
        """Plan of the merchant's current subscription, else the merchant's plan_id"""
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {PLAN_COLUMNS}
                FROM plans
                WHERE id = COALESCE(
                    (SELECT plan_id FROM subscriptions
                     WHERE merchant_id = %s
                     ORDER BY created_at DESC LIMIT 1),
                    (SELECT plan_id FROM merchants WHERE id = %s)
                )
            """, (merchant_id, merchant_id))
            row = cursor.fetchone()
            return self._map_row_to_plan(row) if row else None
        finally:
            cursor.close()
            conn.close()

    def find_all(self, active_only: bool = True) -> List[Plan]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            where_clause = "is_active = true" if active_only else "1=1"
            cursor.execute(f"""
                SELECT {PLAN_COLUMNS}
                FROM plans
                WHERE {where_clause}
                ORDER BY base_price
            """)
            return [self._map_row_to_plan(row) for row in cursor.fetchall()]
        finally:
            cursor.close()
            conn.close()

    def create(self, data: PlanCreate) -> Plan:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            now = datetime.utcnow()
            fields = data.model_dump()
            columns = list(fields.keys())
            cursor.execute(f"""
                INSERT INTO plans ({', '.join(columns)}, is_active, created_at, updated_at)
                VALUES ({', '.join(['%s'] * len(columns))}, true, %s, %s)
                RETURNING {PLAN_COLUMNS}
            """, list(fields.values()) + [now, now])
            row = cursor.fetchone()
            conn.commit()
            return self._map_row_to_plan(row)
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()

    def update(self, plan_id: int, data: PlanUpdate) -> Optional[Plan]:
        fields = data.model_dump(exclude_unset=True)
        if not fields:
            return self.find_by_id(plan_id)

        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            assignments = [f"{column} = %s" for column in fields] + ["updated_at = %s"]
            cursor.execute(f"""
                UPDATE plans
                SET {', '.join(assignments)}
                WHERE id = %s
                RETURNING {PLAN_COLUMNS}
            """, list(fields.values()) + [datetime.utcnow(), plan_id])
            row = cursor.fetchone()
            conn.commit()
            return self._map_row_to_plan(row) if row else None
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()


class SubscriptionRepository:
    """Repository for Subscription data access"""

    @staticmethod
    def _map_row_to_subscription(row: dict) -> Subscription:
        return Subscription(**{key: row[key] for key in Subscription.model_fields if key in row})

    def find_by_id(self, subscription_id: int) -> Optional[Subscription]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {SUBSCRIPTION_COLUMNS}
                FROM {SUBSCRIPTION_FROM}
                WHERE s.id = %s
            """, (subscription_id,))
            row = cursor.fetchone()
            return self._map_row_to_subscription(row) if row else None
        finally:
            cursor.close()
            conn.close()

    def find_current(self, merchant_id: int) -> Optional[Subscription]:
        """Most recent subscription of a merchant"""
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {SUBSCRIPTION_COLUMNS}
                FROM {SUBSCRIPTION_FROM}
                WHERE s.merchant_id = %s
                ORDER BY s.created_at DESC
                LIMIT 1
            """, (merchant_id,))
            row = cursor.fetchone()
            return self._map_row_to_subscription(row) if row else None
        finally:
            cursor.close()
            conn.close()

    def find_all(
        self,
        merchant_id: Optional[int] = None,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[Subscription], int]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            conditions = []
            params: List[Any] = []

            if merchant_id is not None:
                conditions.append("s.merchant_id = %s")
                params.append(merchant_id)
            if status:
                conditions.append("s.status = %s")
                params.append(status)

            where_clause = " AND ".join(conditions) if conditions else "1=1"

            cursor.execute(f"""
                SELECT COUNT(*) as total
                FROM {SUBSCRIPTION_FROM}
                WHERE {where_clause}
            """, params)
            total = cursor.fetchone()['total']

            cursor.execute(f"""
                SELECT {SUBSCRIPTION_COLUMNS}
                FROM {SUBSCRIPTION_FROM}
                WHERE {where_clause}
                ORDER BY s.current_period_end ASC
                LIMIT %s OFFSET %s
            """, params + [limit, offset])
            return [self._map_row_to_subscription(row) for row in cursor.fetchall()], total
        finally:
            cursor.close()
            conn.close()

    def find_by_statuses(self, statuses: List[str]) -> List[Subscription]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {SUBSCRIPTION_COLUMNS}
                FROM {SUBSCRIPTION_FROM}
                WHERE s.status = ANY(%s)
                ORDER BY s.current_period_end ASC
            """, (statuses,))
            return [self._map_row_to_subscription(row) for row in cursor.fetchall()]
        finally:
            cursor.close()
            conn.close()

    def create(self, fields: Dict[str, Any]) -> Subscription:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            now = datetime.utcnow()
            columns = list(fields.keys())
            cursor.execute(f"""
                INSERT INTO subscriptions ({', '.join(columns)}, created_at, updated_at)
                VALUES ({', '.join(['%s'] * len(columns))}, %s, %s)
                RETURNING id
            """, list(fields.values()) + [now, now])
            subscription_id = cursor.fetchone()['id']

            # Keep the merchant's plan pointer in sync
            cursor.execute("""
                UPDATE merchants SET plan_id = %s, updated_at = %s WHERE id = %s
            """, (fields['plan_id'], now, fields['merchant_id']))

            cursor.execute(f"""
                SELECT {SUBSCRIPTION_COLUMNS}
                FROM {SUBSCRIPTION_FROM}
                WHERE s.id = %s
            """, (subscription_id,))
            row = cursor.fetchone()
            conn.commit()
            return self._map_row_to_subscription(row)
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()

    def update(self, subscription_id: int, fields: Dict[str, Any]) -> Optional[Subscription]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            now = datetime.utcnow()
            assignments = [f"{column} = %s" for column in fields] + ["updated_at = %s"]
            cursor.execute(f"""
                UPDATE subscriptions
                SET {', '.join(assignments)}
                WHERE id = %s
                RETURNING id, merchant_id
            """, list(fields.values()) + [now, subscription_id])
            updated = cursor.fetchone()
            if updated is None:
                conn.rollback()
                return None

            if 'plan_id' in fields:
                cursor.execute("""
                    UPDATE merchants SET plan_id = %s, updated_at = %s WHERE id = %s
                """, (fields['plan_id'], now, updated['merchant_id']))

            cursor.execute(f"""
                SELECT {SUBSCRIPTION_COLUMNS}
                FROM {SUBSCRIPTION_FROM}
                WHERE s.id = %s
            """, (subscription_id,))
            row = cursor.fetchone()
            conn.commit()
            return self._map_row_to_subscription(row)
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()
