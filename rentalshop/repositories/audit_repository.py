"""
Audit Repository - append-only audit trail
"""
from typing import List, Optional, Tuple, Dict, Any
from datetime import datetime
import json
import logging

from psycopg2.extras import Json

from rentalshop.domain.audit import AuditLog
from rentalshop.core.database import get_db_connection_dict

logger = logging.getLogger(__name__)

AUDIT_COLUMNS = """
    id, entity_type, entity_id, action, user_id, merchant_id, description,
    old_values, new_values, created_at
"""


def _jsonable(values: Optional[Dict[str, Any]]):
    if values is None:
        return None
    # Round-trip through json so Decimal/datetime values become plain JSON
    return Json(json.loads(json.dumps(values, default=str)))


class AuditRepository:
    """Repository for audit_logs"""

    def log(
        self,
        entity_type: str,
        entity_id: Any,
        action: str,
        user_id: Optional[str] = None,
        merchant_id: Optional[int] = None,
        description: Optional[str] = None,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Write an audit entry.

        Runs after the audited change has committed; failures are
        logged, not raised.
        """
        conn = None
        cursor = None
        try:
            conn = get_db_connection_dict()
            cursor = conn.cursor()
            cursor.execute("""
                INSERT INTO audit_logs
                    (entity_type, entity_id, action, user_id, merchant_id,
                     description, old_values, new_values, created_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            """, (
                entity_type, str(entity_id) if entity_id is not None else None, action,
                user_id, merchant_id, description,
                _jsonable(old_values), _jsonable(new_values), datetime.utcnow()
            ))
            conn.commit()
        except Exception as e:
            logger.error(f"Failed to write audit log for {entity_type} {entity_id} ({action}): {e}")
            if conn:
                conn.rollback()
        finally:
            if cursor:
                cursor.close()
            if conn:
                conn.close()

    def find_all(
        self,
        merchant_id: Optional[int] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        action: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[AuditLog], int]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            conditions = []
            params: List[Any] = []

            filters = {
                "merchant_id": merchant_id,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "action": action,
            }
            for column, value in filters.items():
                if value is not None:
                    conditions.append(f"{column} = %s")
                    params.append(value)

            where_clause = " AND ".join(conditions) if conditions else "1=1"

            cursor.execute(f"SELECT COUNT(*) as total FROM audit_logs WHERE {where_clause}", params)
            total = cursor.fetchone()['total']

            cursor.execute(f"""
                SELECT {AUDIT_COLUMNS}
                FROM audit_logs
                WHERE {where_clause}
                ORDER BY created_at DESC
                LIMIT %s OFFSET %s
            """, params + [limit, offset])
            return [AuditLog(**row) for row in cursor.fetchall()], total
        finally:
            cursor.close()
            conn.close()
