"""
User Repository - merchant staff accounts
"""
from typing import List, Optional, Tuple
from datetime import datetime

from rentalshop.domain.merchant import User, UserUpdate
from rentalshop.core.database import get_db_connection_dict

USER_COLUMNS = """
    id, email, name, role, merchant_id, outlet_id, is_active,
    created_at, updated_at
"""


class UserRepository:
    """Repository for User data access (password hashes never leave this class)"""

    @staticmethod
    def _map_row_to_user(row: dict) -> User:
        return User(
            id=row['id'],
            email=row['email'],
            name=row.get('name'),
            role=row['role'],
            merchant_id=row.get('merchant_id'),
            outlet_id=row.get('outlet_id'),
            is_active=row['is_active'],
            created_at=row['created_at'],
            updated_at=row.get('updated_at')
        )

    def find_by_id(self, user_id: int) -> Optional[User]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"SELECT {USER_COLUMNS} FROM users WHERE id = %s", (user_id,))
            row = cursor.fetchone()
            return self._map_row_to_user(row) if row else None
        finally:
            cursor.close()
            conn.close()

    def find_by_email(self, email: str) -> Optional[User]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"SELECT {USER_COLUMNS} FROM users WHERE LOWER(email) = LOWER(%s)", (email,))
            row = cursor.fetchone()
            return self._map_row_to_user(row) if row else None
        finally:
            cursor.close()
            conn.close()

    def find_all(
        self,
        merchant_id: Optional[int] = None,
        outlet_id: Optional[int] = None,
        role: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[User], int]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            conditions = []
            params = []

            if merchant_id is not None:
                conditions.append("merchant_id = %s")
                params.append(merchant_id)
            if outlet_id is not None:
                conditions.append("outlet_id = %s")
                params.append(outlet_id)
            if role:
                conditions.append("role = %s")
                params.append(role)

            where_clause = " AND ".join(conditions) if conditions else "1=1"

            cursor.execute(f"SELECT COUNT(*) as total FROM users WHERE {where_clause}", params)
            total = cursor.fetchone()['total']

            cursor.execute(f"""
                SELECT {USER_COLUMNS}
                FROM users
                WHERE {where_clause}
                ORDER BY created_at DESC
                LIMIT %s OFFSET %s
            """, params + [limit, offset])
            return [self._map_row_to_user(row) for row in cursor.fetchall()], total

        finally:
            cursor.close()
            conn.close()

    def create(self, email: str, password_hash: str, name: Optional[str], role: str,
               merchant_id: Optional[int], outlet_id: Optional[int]) -> User:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            now = datetime.utcnow()
            cursor.execute(f"""
                INSERT INTO users
                    (email, password_hash, name, role, merchant_id, outlet_id,
                     is_active, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s, true, %s, %s)
                RETURNING {USER_COLUMNS}
            """, (email, password_hash, name, role, merchant_id, outlet_id, now, now))
            row = cursor.fetchone()
            conn.commit()
            return self._map_row_to_user(row)
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()

    def update(self, user_id: int, data: UserUpdate) -> Optional[User]:
        fields = data.model_dump(exclude_unset=True)
        if not fields:
            return self.find_by_id(user_id)

        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            assignments = [f"{column} = %s" for column in fields] + ["updated_at = %s"]
            params = list(fields.values()) + [datetime.utcnow(), user_id]
            cursor.execute(f"""
                UPDATE users
                SET {', '.join(assignments)}
                WHERE id = %s
                RETURNING {USER_COLUMNS}
            """, params)
            row = cursor.fetchone()
            conn.commit()
            return self._map_row_to_user(row) if row else None
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()
