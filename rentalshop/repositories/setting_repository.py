"""
Setting and Notification repositories
"""
from typing import List, Optional, Tuple, Any
from datetime import datetime

from psycopg2.extras import Json

from rentalshop.domain.setting import Setting, Notification, NotificationCreate
from rentalshop.core.database import get_db_connection_dict

SETTING_COLUMNS = "id, merchant_id, key, value, description, updated_at"
NOTIFICATION_COLUMNS = "id, merchant_id, user_id, title, message, type, is_read, created_at"


class SettingRepository:
    """Key/value settings. System settings have merchant_id NULL."""

    @staticmethod
    def _map_row_to_setting(row: dict) -> Setting:
        return Setting(**row)

    def find_effective(self, merchant_id: Optional[int]) -> List[Setting]:
        """
        System settings overlaid with the merchant's own values.

        For each key the merchant row wins over the system row.
        """
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                SELECT DISTINCT ON (key) {SETTING_COLUMNS}
                FROM settings
                WHERE merchant_id IS NULL OR merchant_id = %s
                ORDER BY key, merchant_id NULLS LAST
            """, (merchant_id,))
            return [self._map_row_to_setting(row) for row in cursor.fetchall()]
        finally:
            cursor.close()
            conn.close()

    def find(self, merchant_id: Optional[int], key: str) -> Optional[Setting]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {SETTING_COLUMNS}
                FROM settings
                WHERE key = %s AND (merchant_id = %s OR merchant_id IS NULL)
                ORDER BY merchant_id NULLS LAST
                LIMIT 1
            """, (key, merchant_id))
            row = cursor.fetchone()
            return self._map_row_to_setting(row) if row else None
        finally:
            cursor.close()
            conn.close()

    def upsert(self, merchant_id: Optional[int], key: str, value: Any,
               description: Optional[str] = None) -> Setting:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            now = datetime.utcnow()
            cursor.execute(f"""
                UPDATE settings
                SET value = %s, description = COALESCE(%s, description), updated_at = %s
                WHERE key = %s AND merchant_id IS NOT DISTINCT FROM %s
                RETURNING {SETTING_COLUMNS}
            """, (Json(value), description, now, key, merchant_id))
            row = cursor.fetchone()

            if row is None:
                cursor.execute(f"""
                    INSERT INTO settings (merchant_id, key, value, description, updated_at)
                    VALUES (%s, %s, %s, %s, %s)
                    RETURNING {SETTING_COLUMNS}
                """, (merchant_id, key, Json(value), description, now))
                row = cursor.fetchone()

            conn.commit()
            return self._map_row_to_setting(row)
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()

    def delete(self, merchant_id: Optional[int], key: str) -> bool:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                DELETE FROM settings
                WHERE key = %s AND merchant_id IS NOT DISTINCT FROM %s
            """, (key, merchant_id))
            conn.commit()
            return cursor.rowcount > 0
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()


class NotificationRepository:
    """In-app notifications for merchants and users"""

    def find_all(
        self,
        merchant_id: Optional[int] = None,
        user_id: Optional[int] = None,
        unread_only: bool = False,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[Notification], int]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            conditions = []
            params: List[Any] = []

            if merchant_id is not None:
                conditions.append("merchant_id = %s")
                params.append(merchant_id)
            if user_id is not None:
                conditions.append("(user_id = %s OR user_id IS NULL)")
                params.append(user_id)
            if unread_only:
                conditions.append("is_read = false")

            where_clause = " AND ".join(conditions) if conditions else "1=1"

            cursor.execute(f"SELECT COUNT(*) as total FROM notifications WHERE {where_clause}", params)
            total = cursor.fetchone()['total']

            cursor.execute(f"""
                SELECT {NOTIFICATION_COLUMNS}
                FROM notifications
                WHERE {where_clause}
                ORDER BY created_at DESC
                LIMIT %s OFFSET %s
            """, params + [limit, offset])
            return [Notification(**row) for row in cursor.fetchall()], total
        finally:
            cursor.close()
            conn.close()

    def count_unread(self, merchant_id: Optional[int], user_id: Optional[int] = None) -> int:
        _, total = self.find_all(merchant_id=merchant_id, user_id=user_id, unread_only=True, limit=0)
        return total

    def create(self, data: NotificationCreate) -> Notification:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                INSERT INTO notifications (merchant_id, user_id, title, message, type, is_read, created_at)
                VALUES (%s, %s, %s, %s, %s, false, %s)
                RETURNING {NOTIFICATION_COLUMNS}
            """, (data.merchant_id, data.user_id, data.title, data.message, data.type, datetime.utcnow()))
            row = cursor.fetchone()
            conn.commit()
            return Notification(**row)
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()

    def mark_read(self, notification_id: int, merchant_id: Optional[int]) -> bool:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                UPDATE notifications SET is_read = true
                WHERE id = %s AND (%s IS NULL OR merchant_id = %s)
            """, (notification_id, merchant_id, merchant_id))
            conn.commit()
            return cursor.rowcount > 0
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()

    def mark_all_read(self, merchant_id: int, user_id: Optional[int] = None) -> int:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                UPDATE notifications SET is_read = true
                WHERE merchant_id = %s AND is_read = false
                  AND (%s IS NULL OR user_id = %s OR user_id IS NULL)
            """, (merchant_id, user_id, user_id))
            conn.commit()
            return cursor.rowcount
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()
