"""
Customer Repository - Data Access Layer for Customers

Author: TM3
Date: 2026-03-03
"""
from typing import List, Optional, Tuple, Set, Iterable
from datetime import datetime

from rentalshop.domain.customer import Customer, CustomerCreate, CustomerUpdate
from rentalshop.core.database import get_db_connection_dict

CUSTOMER_COLUMNS = """
    id, merchant_id, first_name, last_name, email, phone, address, city,
    state, zip_code, country, date_of_birth, id_number, id_type, notes,
    is_active, created_at, updated_at
"""

INSERT_FIELDS = (
    'first_name', 'last_name', 'email', 'phone', 'address', 'city', 'state',
    'zip_code', 'country', 'date_of_birth', 'id_number', 'id_type', 'notes', 'is_active'
)


class CustomerRepository:
    """Repository for Customer data access"""

    @staticmethod
    def _map_row_to_customer(row: dict) -> Customer:
        return Customer(**{key: row.get(key) for key in Customer.model_fields if key in row})

    def find_by_id(self, customer_id: int) -> Optional[Customer]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {CUSTOMER_COLUMNS}
                FROM customers
                WHERE id = %s
            """, (customer_id,))
            row = cursor.fetchone()
            return self._map_row_to_customer(row) if row else None

        finally:
            cursor.close()
            conn.close()

    def find_by_phone(self, merchant_id: int, phone: str) -> Optional[Customer]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {CUSTOMER_COLUMNS}
                FROM customers
                WHERE merchant_id = %s AND phone = %s
                LIMIT 1
            """, (merchant_id, phone.strip()))
            row = cursor.fetchone()
            return self._map_row_to_customer(row) if row else None

        finally:
            cursor.close()
            conn.close()

    def find_existing_phones(self, merchant_id: int, phones: Iterable[str]) -> Set[str]:
        """Subset of phones that already belong to a customer of this merchant"""
        phones = [p for p in phones if p]
        if not phones:
            return set()

        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                SELECT phone FROM customers
                WHERE merchant_id = %s AND phone = ANY(%s)
            """, (merchant_id, phones))
            return {row['phone'] for row in cursor.fetchall()}

        finally:
            cursor.close()
            conn.close()

    def find_all(
        self,
        merchant_id: Optional[int] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[Customer], int]:
        """
        Find customers with filters

        Args:
            merchant_id: Filter by merchant
            is_active: Filter by active status
            search: Search in name, phone or email
            limit: Maximum results to return
            offset: Number of results to skip

        Returns:
            Tuple of (list of customers, total count)
        """
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            conditions = []
            params = []

            if merchant_id is not None:
                conditions.append("merchant_id = %s")
                params.append(merchant_id)

            if is_active is not None:
                conditions.append("is_active = %s")
                params.append(is_active)

            if search:
                conditions.append("""(
                    first_name ILIKE %s OR last_name ILIKE %s
                    OR phone ILIKE %s OR email ILIKE %s
                )""")
                search_term = f"%{search}%"
                params.extend([search_term] * 4)

            where_clause = " AND ".join(conditions) if conditions else "1=1"

            cursor.execute(f"""
                SELECT COUNT(*) as total
                FROM customers
                WHERE {where_clause}
            """, params)
            total = cursor.fetchone()['total']

            cursor.execute(f"""
                SELECT {CUSTOMER_COLUMNS}
                FROM customers
                WHERE {where_clause}
                ORDER BY created_at DESC
                LIMIT %s OFFSET %s
            """, params + [limit, offset])

            customers = [self._map_row_to_customer(row) for row in cursor.fetchall()]
            return customers, total

        finally:
            cursor.close()
            conn.close()

    def create(self, merchant_id: int, data: CustomerCreate) -> Customer:
        return self.bulk_create(merchant_id, [data])[0]

    def bulk_create(self, merchant_id: int, customers: List[CustomerCreate]) -> List[Customer]:
        """Insert many customers in a single transaction"""
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            now = datetime.utcnow()
            created = []
            for data in customers:
                values = [getattr(data, field) for field in INSERT_FIELDS]
                cursor.execute(f"""
                    INSERT INTO customers
                        (merchant_id, {', '.join(INSERT_FIELDS)}, created_at, updated_at)
                    VALUES ({', '.join(['%s'] * (len(INSERT_FIELDS) + 3))})
                    RETURNING {CUSTOMER_COLUMNS}
                """, [merchant_id] + values + [now, now])
                created.append(self._map_row_to_customer(cursor.fetchone()))

            conn.commit()
            return created

        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()

    def update(self, customer_id: int, data: CustomerUpdate) -> Optional[Customer]:
        fields = data.model_dump(exclude_unset=True)
        if not fields:
            return self.find_by_id(customer_id)

        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            assignments = [f"{column} = %s" for column in fields] + ["updated_at = %s"]
            params = list(fields.values()) + [datetime.utcnow(), customer_id]

            cursor.execute(f"""
                UPDATE customers
                SET {', '.join(assignments)}
                WHERE id = %s
                RETURNING {CUSTOMER_COLUMNS}
            """, params)
            row = cursor.fetchone()
            conn.commit()
            return self._map_row_to_customer(row) if row else None

        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()

    def deactivate(self, customer_id: int) -> bool:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                UPDATE customers SET is_active = false, updated_at = %s WHERE id = %s
            """, (datetime.utcnow(), customer_id))
            conn.commit()
            return cursor.rowcount > 0
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()

    def delete_many(self, customer_ids: List[int]) -> int:
        """Hard delete (sync rollback only)"""
        if not customer_ids:
            return 0

        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("DELETE FROM customers WHERE id = ANY(%s)", (customer_ids,))
            deleted = cursor.rowcount
            conn.commit()
            return deleted
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()
