"""
Integration tests against a real PostgreSQL database

Run with RENTALSHOP_TEST_DATABASE_URL set; skipped otherwise.

Author: TM3
Date: 2026-03-12
"""
import pytest
from unittest.mock import patch

from rentalshop.core.config import settings
from rentalshop.core.database import get_db_connection_dict, get_db_connection_with_retry

pytestmark = pytest.mark.integration

REQUIRED_TABLES = [
    'merchants', 'outlets', 'users', 'categories', 'products', 'outlet_stock',
    'customers', 'orders', 'order_items', 'payments', 'plans', 'subscriptions',
]


class TestDatabaseConnection:

    def test_select_one(self, database_url):
        with patch.object(settings, "DATABASE_URL", database_url):
            conn = get_db_connection_with_retry(max_retries=1)

        cursor = conn.cursor()
        cursor.execute("SELECT 1")
        assert cursor.fetchone()[0] == 1
        cursor.close()
        conn.close()

    def test_schema_has_core_tables(self, database_url):
        with patch.object(settings, "DATABASE_URL", database_url):
            conn = get_db_connection_dict()

        cursor = conn.cursor()
        cursor.execute("""
            SELECT table_name FROM information_schema.tables
            WHERE table_schema = 'public'
        """)
        tables = {row['table_name'] for row in cursor.fetchall()}
        cursor.close()
        conn.close()

        missing = [table for table in REQUIRED_TABLES if table not in tables]
        assert missing == [], f"Missing tables: {missing}"
