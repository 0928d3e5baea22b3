"""
Merchant Repository - Data Access Layer for merchants and outlets

Author: TM3
Date: 2026-03-02
"""
from typing import List, Optional, Tuple
from datetime import datetime

from rentalshop.domain.merchant import (
    Merchant, MerchantCreate, MerchantUpdate,
    Outlet, OutletCreate, OutletUpdate,
)
from rentalshop.core.database import get_db_connection_dict

MERCHANT_COLUMNS = """
    id, name, email, phone, address, business_type, status, plan_id,
    is_active, created_at, updated_at
"""

OUTLET_COLUMNS = """
    id, merchant_id, name, address, phone, is_default, is_active,
    created_at, updated_at
"""


class MerchantRepository:
    """Repository for Merchant data access"""

    @staticmethod
    def _map_row_to_merchant(row: dict) -> Merchant:
        return Merchant(
            id=row['id'],
            name=row['name'],
            email=row.get('email'),
            phone=row.get('phone'),
            address=row.get('address'),
            business_type=row.get('business_type'),
            status=row['status'],
            plan_id=row.get('plan_id'),
            is_active=row['is_active'],
            created_at=row['created_at'],
            updated_at=row.get('updated_at')
        )

    def find_by_id(self, merchant_id: int) -> Optional[Merchant]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {MERCHANT_COLUMNS}
                FROM merchants
                WHERE id = %s
            """, (merchant_id,))

            row = cursor.fetchone()
            return self._map_row_to_merchant(row) if row else None

        finally:
            cursor.close()
            conn.close()

    def find_all(
        self,
        status: Optional[str] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[Merchant], int]:
        """
        Find merchants with filters

        Returns:
            Tuple of (list of merchants, total count)
        """
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            conditions = []
            params = []

            if status:
                conditions.append("status = %s")
                params.append(status)

            if is_active is not None:
                conditions.append("is_active = %s")
                params.append(is_active)

            if search:
                conditions.append("(name ILIKE %s OR email ILIKE %s OR phone ILIKE %s)")
                search_term = f"%{search}%"
                params.extend([search_term, search_term, search_term])

            where_clause = " AND ".join(conditions) if conditions else "1=1"

            cursor.execute(f"""
                SELECT COUNT(*) as total
                FROM merchants
                WHERE {where_clause}
            """, params)
            total = cursor.fetchone()['total']

            cursor.execute(f"""
                SELECT {MERCHANT_COLUMNS}
                FROM merchants
                WHERE {where_clause}
                ORDER BY created_at DESC
                LIMIT %s OFFSET %s
            """, params + [limit, offset])

            merchants = [self._map_row_to_merchant(row) for row in cursor.fetchall()]
            return merchants, total

        finally:
            cursor.close()
            conn.close()

    def create(self, data: MerchantCreate) -> Merchant:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            now = datetime.utcnow()
            cursor.execute(f"""
                INSERT INTO merchants
                    (name, email, phone, address, business_type, status, plan_id,
                     is_active, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, true, %s, %s)
                RETURNING {MERCHANT_COLUMNS}
            """, (
                data.name, data.email, data.phone, data.address,
                data.business_type, data.status, data.plan_id, now, now
            ))
            row = cursor.fetchone()
            conn.commit()
            return self._map_row_to_merchant(row)

        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()

    def update(self, merchant_id: int, data: MerchantUpdate) -> Optional[Merchant]:
        fields = data.model_dump(exclude_unset=True)
        if not fields:
            return self.find_by_id(merchant_id)

        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            assignments = [f"{column} = %s" for column in fields]
            params = list(fields.values())
            assignments.append("updated_at = %s")
            params.append(datetime.utcnow())

            cursor.execute(f"""
                UPDATE merchants
                SET {', '.join(assignments)}
                WHERE id = %s
                RETURNING {MERCHANT_COLUMNS}
            """, params + [merchant_id])
            row = cursor.fetchone()
            conn.commit()
            return self._map_row_to_merchant(row) if row else None

        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()

    def deactivate(self, merchant_id: int) -> bool:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                UPDATE merchants
                SET is_active = false, status = 'INACTIVE', updated_at = %s
                WHERE id = %s
            """, (datetime.utcnow(), merchant_id))
            conn.commit()
            return cursor.rowcount > 0

        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()


class OutletRepository:
    """Repository for Outlet data access"""

    @staticmethod
    def _map_row_to_outlet(row: dict) -> Outlet:
        return Outlet(
            id=row['id'],
            merchant_id=row['merchant_id'],
            name=row['name'],
            address=row.get('address'),
            phone=row.get('phone'),
            is_default=row['is_default'],
            is_active=row['is_active'],
            created_at=row['created_at'],
            updated_at=row.get('updated_at')
        )

    def find_by_id(self, outlet_id: int) -> Optional[Outlet]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {OUTLET_COLUMNS}
                FROM outlets
                WHERE id = %s
            """, (outlet_id,))
            row = cursor.fetchone()
            return self._map_row_to_outlet(row) if row else None

        finally:
            cursor.close()
            conn.close()

    def find_by_merchant(self, merchant_id: int, is_active: Optional[bool] = None) -> List[Outlet]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            params = [merchant_id]
            active_clause = ""
            if is_active is not None:
                active_clause = "AND is_active = %s"
                params.append(is_active)

            cursor.execute(f"""
                SELECT {OUTLET_COLUMNS}
                FROM outlets
                WHERE merchant_id = %s {active_clause}
                ORDER BY is_default DESC, created_at
            """, params)
            return [self._map_row_to_outlet(row) for row in cursor.fetchall()]

        finally:
            cursor.close()
            conn.close()

    def find_default(self, merchant_id: int) -> Optional[Outlet]:
        """Default outlet, or the oldest active outlet when none is flagged"""
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {OUTLET_COLUMNS}
                FROM outlets
                WHERE merchant_id = %s AND is_active = true
                ORDER BY is_default DESC, created_at ASC
                LIMIT 1
            """, (merchant_id,))
            row = cursor.fetchone()
            return self._map_row_to_outlet(row) if row else None

        finally:
            cursor.close()
            conn.close()

    def create(self, merchant_id: int, data: OutletCreate) -> Outlet:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            now = datetime.utcnow()
            if data.is_default:
                cursor.execute("""
                    UPDATE outlets SET is_default = false WHERE merchant_id = %s
                """, (merchant_id,))

            cursor.execute(f"""
                INSERT INTO outlets
                    (merchant_id, name, address, phone, is_default, is_active,
                     created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, true, %s, %s)
                RETURNING {OUTLET_COLUMNS}
            """, (merchant_id, data.name, data.address, data.phone, data.is_default, now, now))
            row = cursor.fetchone()
            conn.commit()
            return self._map_row_to_outlet(row)

        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()

    def update(self, outlet_id: int, data: OutletUpdate) -> Optional[Outlet]:
        fields = data.model_dump(exclude_unset=True)
        if not fields:
            return self.find_by_id(outlet_id)

        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            if fields.get('is_default'):
                cursor.execute("""
                    UPDATE outlets SET is_default = false
                    WHERE merchant_id = (SELECT merchant_id FROM outlets WHERE id = %s)
                """, (outlet_id,))

            assignments = [f"{column} = %s" for column in fields]
            params = list(fields.values())
            assignments.append("updated_at = %s")
            params.append(datetime.utcnow())

            cursor.execute(f"""
                UPDATE outlets
                SET {', '.join(assignments)}
                WHERE id = %s
                RETURNING {OUTLET_COLUMNS}
            """, params + [outlet_id])
            row = cursor.fetchone()
            conn.commit()
            return self._map_row_to_outlet(row) if row else None

        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()
