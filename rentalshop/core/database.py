"""
PostgreSQL database access

All repositories talk to PostgreSQL through raw SQL with psycopg2.
This module centralizes the ways a connection can be obtained:
- plain connections (tuples)
- RealDictCursor connections (dicts, used by repositories and API responses)
- retrying variants for health checks and long running jobs

Author: TM3
Date: 2026-03-02
"""
import time
import logging

import psycopg2
from psycopg2.extras import RealDictCursor

from .config import settings

logger = logging.getLogger(__name__)

CONNECTION_TIMEOUT = settings.DB_CONNECT_TIMEOUT


def _database_url() -> str:
    database_url = settings.DATABASE_URL
    if not database_url:
        raise Exception("DATABASE_URL not configured")
    return database_url


def get_db_connection():
    """
    Get a direct psycopg2 database connection (returns tuples)

    Example:
        conn = get_db_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT id FROM orders")
        rows = cursor.fetchall()
        cursor.close()
        conn.close()
    """
    return psycopg2.connect(_database_url(), connect_timeout=CONNECTION_TIMEOUT)


def get_db_connection_dict():
    """
    Get a database connection with RealDictCursor (returns dictionaries)

    Use this for repository queries and API responses.
    """
    return psycopg2.connect(
        _database_url(),
        cursor_factory=RealDictCursor,
        connect_timeout=CONNECTION_TIMEOUT
    )


# ============================================================================
# Database Connection with Retry Logic
# ============================================================================

def _connect_with_retry(max_retries: int, retry_delay: float, cursor_factory=None):
    database_url = _database_url()
    last_error = None

    for attempt in range(1, max_retries + 1):
        try:
            logger.debug(f"Database connection attempt {attempt}/{max_retries}")
            if cursor_factory is not None:
                conn = psycopg2.connect(
                    database_url,
                    cursor_factory=cursor_factory,
                    connect_timeout=CONNECTION_TIMEOUT
                )
            else:
                conn = psycopg2.connect(database_url, connect_timeout=CONNECTION_TIMEOUT)

            # Test connection with a simple query
            cursor = conn.cursor()
            cursor.execute("SELECT 1")
            cursor.close()

            logger.debug(f"Database connection successful on attempt {attempt}")
            return conn

        except psycopg2.OperationalError as e:
            last_error = e
            logger.warning(f"Connection error on attempt {attempt}/{max_retries}: {e}")

            if attempt < max_retries:
                # Exponential backoff
                delay = retry_delay * (2 ** (attempt - 1))
                logger.info(f"Retrying in {delay:.2f} seconds...")
                time.sleep(delay)
            else:
                logger.error(f"All {max_retries} connection attempts failed")
                raise

        except Exception as e:
            # For non-connection errors, fail immediately
            logger.error(f"Unexpected error during connection: {e}")
            raise

    raise last_error if last_error else Exception("Connection failed after all retries")


def get_db_connection_with_retry(max_retries=None, retry_delay=1.0):
    """
    Get a psycopg2 connection with automatic retry on connection failures

    Args:
        max_retries: Maximum number of connection attempts (default: DB_CONNECT_RETRIES)
        retry_delay: Initial delay between retries in seconds (default: 1.0)

    Returns:
        psycopg2 connection object

    Raises:
        psycopg2.OperationalError: If all retry attempts fail
    """
    return _connect_with_retry(max_retries or settings.DB_CONNECT_RETRIES, retry_delay)


def get_db_connection_dict_with_retry(max_retries=None, retry_delay=1.0):
    """Same as get_db_connection_with_retry but rows come back as dicts."""
    return _connect_with_retry(
        max_retries or settings.DB_CONNECT_RETRIES,
        retry_delay,
        cursor_factory=RealDictCursor
    )
