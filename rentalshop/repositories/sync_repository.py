"""
Sync Repository - legacy sync sessions and the records each one created
"""
from typing import List, Optional, Dict, Any
from datetime import datetime

from psycopg2.extras import Json

from rentalshop.domain.sync import SyncSession, SyncRecord, SYNC_ENTITIES
from rentalshop.core.database import get_db_connection_dict

SESSION_COLUMNS = ("id, merchant_id, source, status, entities, config, stats, error, "
                   "started_at, completed_at")


class SyncRepository:
    """Repository for sync_sessions and sync_records"""

    @staticmethod
    def _map_row_to_session(row: dict) -> SyncSession:
        return SyncSession(
            id=row['id'],
            merchant_id=row['merchant_id'],
            source=row['source'],
            status=row['status'],
            entities=row.get('entities') or list(SYNC_ENTITIES),
            config=row.get('config') or {},
            stats=row.get('stats') or {},
            error=row.get('error'),
            started_at=row['started_at'],
            completed_at=row.get('completed_at')
        )

    def create_session(self, merchant_id: int, entities: Optional[List[str]] = None,
                       config: Optional[Dict[str, Any]] = None, source: str = "legacy") -> SyncSession:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                INSERT INTO sync_sessions (merchant_id, source, status, entities, config, stats, started_at)
                VALUES (%s, %s, 'IN_PROGRESS', %s, %s, %s, %s)
                RETURNING {SESSION_COLUMNS}
            """, (merchant_id, source, Json(list(entities or SYNC_ENTITIES)), Json(config or {}),
                  Json({}), datetime.utcnow()))
            row = cursor.fetchone()
            conn.commit()
            return self._map_row_to_session(row)
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()

    def finish_session(self, session_id: int, status: str,
                       stats: Optional[Dict[str, Any]] = None,
                       error: Optional[str] = None) -> Optional[SyncSession]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                UPDATE sync_sessions
                SET status = %s,
                    stats = COALESCE(%s, stats),
                    error = %s,
                    completed_at = %s
                WHERE id = %s
                RETURNING {SESSION_COLUMNS}
            """, (status, Json(stats) if stats is not None else None, error,
                  datetime.utcnow(), session_id))
            row = cursor.fetchone()
            conn.commit()
            return self._map_row_to_session(row) if row else None
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()

    def restart_session(self, session_id: int) -> Optional[SyncSession]:
        """Put a finished session back to IN_PROGRESS, keeping its stats"""
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                UPDATE sync_sessions
                SET status = 'IN_PROGRESS', error = NULL, completed_at = NULL
                WHERE id = %s
                RETURNING {SESSION_COLUMNS}
            """, (session_id,))
            row = cursor.fetchone()
            conn.commit()
            return self._map_row_to_session(row) if row else None
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()

    def find_session(self, session_id: int) -> Optional[SyncSession]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"SELECT {SESSION_COLUMNS} FROM sync_sessions WHERE id = %s", (session_id,))
            row = cursor.fetchone()
            return self._map_row_to_session(row) if row else None
        finally:
            cursor.close()
            conn.close()

    def find_sessions(self, merchant_id: Optional[int] = None, limit: int = 20) -> List[SyncSession]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            if merchant_id is not None:
                cursor.execute(f"""
                    SELECT {SESSION_COLUMNS} FROM sync_sessions
                    WHERE merchant_id = %s
                    ORDER BY started_at DESC LIMIT %s
                """, (merchant_id, limit))
            else:
                cursor.execute(f"""
                    SELECT {SESSION_COLUMNS} FROM sync_sessions
                    ORDER BY started_at DESC LIMIT %s
                """, (limit,))
            return [self._map_row_to_session(row) for row in cursor.fetchall()]
        finally:
            cursor.close()
            conn.close()

    def add_record(self, session_id: int, entity_type: str, entity_id: int,
                   old_id: Optional[str] = None) -> None:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                INSERT INTO sync_records (session_id, entity_type, entity_id, old_id, created_at)
                VALUES (%s, %s, %s, %s, %s)
            """, (session_id, entity_type, entity_id, old_id, datetime.utcnow()))
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()

    def find_records(self, session_id: int) -> List[SyncRecord]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                SELECT id, session_id, entity_type, entity_id, old_id, created_at
                FROM sync_records
                WHERE session_id = %s
                ORDER BY id
            """, (session_id,))
            return [SyncRecord(**row) for row in cursor.fetchall()]
        finally:
            cursor.close()
            conn.close()

    def delete_records(self, session_id: int) -> int:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("DELETE FROM sync_records WHERE session_id = %s", (session_id,))
            deleted = cursor.rowcount
            conn.commit()
            return deleted
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()
