"""
Integrity Service - on-demand data consistency report

Runs a fixed sequence of read-only SQL checks against the database and
aggregates them into a single report:

    {
        "overall": "healthy" | "degraded" | "critical",
        "timestamp": "2026-03-05T10:00:00+00:00",
        "checks": [ {name, status, code, message, severity, details}, ... ],
        "summary": {"total", "passed", "failed", "warnings"}
    }

Each check group is isolated: a group that raises records a failed check
and the remaining groups still run.

Author: TM3
Date: 2026-03-05
"""
import logging
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from rentalshop.core.database import get_db_connection_dict_with_retry

logger = logging.getLogger(__name__)

# Offending rows included in a failed check's details
SAMPLE_SIZE = 5


@dataclass
class IntegrityCheck:
    name: str
    status: str      # pass | fail | warning
    code: str
    message: str
    severity: str    # low | medium | high | critical
    details: Any = None

    def to_dict(self) -> dict:
        data = asdict(self)
        if data['details'] is None:
            del data['details']
        return data


@dataclass
class _CheckGroup:
    name: str
    error_name: str
    error_code: str
    error_message: str
    error_severity: str
    run: Callable[[Any], List[IntegrityCheck]] = field(repr=False)


def _sample(rows: List[dict]) -> List[dict]:
    """First rows as plain JSON-friendly dicts"""
    return [
        {key: (str(value) if not isinstance(value, (int, float, str, type(None))) else value)
         for key, value in dict(row).items()}
        for row in rows[:SAMPLE_SIZE]
    ]


def _reference_check(cursor, query: str, name: str, fail_code: str, fail_message: str,
                     details_key: str, pass_code: str, pass_message: str,
                     pass_severity: str = "medium") -> List[IntegrityCheck]:
    """Run a query returning offending rows; any row fails the check (high)"""
    cursor.execute(query)
    rows = cursor.fetchall()

    if rows:
        return [IntegrityCheck(
            name=name,
            status="fail",
            code=fail_code,
            message=fail_message.format(count=len(rows)),
            severity="high",
            details={details_key: _sample(rows)}
        )]

    return [IntegrityCheck(
        name=name,
        status="pass",
        code=pass_code,
        message=pass_message,
        severity=pass_severity
    )]


# ============================================================================
# Check groups
# ============================================================================

def check_order_customer_integrity(cursor) -> List[IntegrityCheck]:
    return _reference_check(
        cursor,
        """
        SELECT o.id, o.order_number, o.customer_id
        FROM orders o
        LEFT JOIN customers c ON o.customer_id = c.id
        WHERE o.customer_id IS NOT NULL AND c.id IS NULL
        """,
        name="order_customer_integrity",
        fail_code="INVALID_ORDER_CUSTOMER_REFS",
        fail_message="Found {count} orders with invalid customer references",
        details_key="invalid_orders",
        pass_code="ALL_ORDERS_VALID_CUSTOMERS",
        pass_message="All orders have valid customer references",
    )


def check_order_product_integrity(cursor) -> List[IntegrityCheck]:
    return _reference_check(
        cursor,
        """
        SELECT oi.id, oi.order_id, oi.product_id
        FROM order_items oi
        LEFT JOIN products p ON oi.product_id = p.id
        WHERE p.id IS NULL
        """,
        name="order_product_integrity",
        fail_code="INVALID_ORDER_ITEM_PRODUCT_REFS",
        fail_message="Found {count} order items with invalid product references",
        details_key="invalid_order_items",
        pass_code="ALL_ORDER_ITEMS_VALID_PRODUCTS",
        pass_message="All order items have valid product references",
    )


def check_user_outlet_integrity(cursor) -> List[IntegrityCheck]:
    return _reference_check(
        cursor,
        """
        SELECT u.id, u.email, u.outlet_id
        FROM users u
        LEFT JOIN outlets ot ON u.outlet_id = ot.id
        WHERE u.outlet_id IS NOT NULL AND ot.id IS NULL
        """,
        name="user_outlet_integrity",
        fail_code="INVALID_USER_OUTLET_ASSIGNMENTS",
        fail_message="Found {count} users with invalid outlet assignments",
        details_key="invalid_users",
        pass_code="ALL_USERS_VALID_OUTLETS",
        pass_message="All users have valid outlet assignments",
    )


def check_product_stock(cursor) -> List[IntegrityCheck]:
    """Negative stock levels (fail) and available != stock - renting (warning)"""
    checks = []

    cursor.execute("""
        SELECT s.product_id, p.name, s.outlet_id, s.stock
        FROM outlet_stock s
        JOIN products p ON p.id = s.product_id
        WHERE s.stock < 0
    """)
    negative = cursor.fetchall()

    if negative:
        checks.append(IntegrityCheck(
            name="product_stock_consistency",
            status="fail",
            code="NEGATIVE_STOCK_DETECTED",
            message=f"Found {len(negative)} products with negative stock",
            severity="high",
            details={"negative_stock_products": _sample(negative)}
        ))
    else:
        checks.append(IntegrityCheck(
            name="product_stock_consistency",
            status="pass",
            code="ALL_PRODUCTS_VALID_LEVELS",
            message="All products have valid stock levels",
            severity="medium"
        ))

    cursor.execute("""
        SELECT s.product_id, p.name, s.outlet_id, s.stock, s.renting, s.available
        FROM outlet_stock s
        JOIN products p ON p.id = s.product_id
        WHERE s.available != (s.stock - s.renting)
    """)
    inconsistent = cursor.fetchall()

    if inconsistent:
        checks.append(IntegrityCheck(
            name="product_available_consistency",
            status="warning",
            code="INCONSISTENT_STOCK_DETECTED",
            message=f"Found {len(inconsistent)} products with inconsistent available stock",
            severity="medium",
            details={"inconsistent_products": _sample(inconsistent)}
        ))
    else:
        checks.append(IntegrityCheck(
            name="product_available_consistency",
            status="pass",
            code="ALL_PRODUCTS_VALID_STOCK",
            message="All products have consistent available stock",
            severity="low"
        ))

    return checks


def check_payment_order_integrity(cursor) -> List[IntegrityCheck]:
    return _reference_check(
        cursor,
        """
        SELECT pm.id, pm.order_id, pm.amount
        FROM payments pm
        LEFT JOIN orders o ON pm.order_id = o.id
        WHERE pm.order_id IS NOT NULL AND o.id IS NULL
        """,
        name="payment_order_integrity",
        fail_code="INVALID_PAYMENT_ORDER_REFS",
        fail_message="Found {count} payments with invalid order references",
        details_key="invalid_payments",
        pass_code="ALL_PAYMENTS_VALID_ORDERS",
        pass_message="All payments have valid order references",
    )


def check_audit_log_completeness(cursor) -> List[IntegrityCheck]:
    cursor.execute("""
        SELECT COUNT(*) as count
        FROM orders
        WHERE created_at > NOW() - INTERVAL '1 day'
    """)
    operations_count = int(cursor.fetchone()['count'])

    cursor.execute("""
        SELECT COUNT(*) as count
        FROM audit_logs
        WHERE created_at > NOW() - INTERVAL '1 day'
          AND entity_type = 'Order'
    """)
    audit_logs_count = int(cursor.fetchone()['count'])

    details = {"operations_count": operations_count, "audit_logs_count": audit_logs_count}

    if operations_count > 0 and audit_logs_count == 0:
        return [IntegrityCheck(
            name="audit_log_completeness",
            status="warning",
            code="AUDIT_LOG_MISSING",
            message="Recent operations found without corresponding audit logs",
            severity="medium",
            details=details
        )]

    return [IntegrityCheck(
        name="audit_log_completeness",
        status="pass",
        code="AUDIT_LOG_WORKING",
        message="Audit logging appears to be working correctly",
        severity="low",
        details=details
    )]


def check_order_amount_consistency(cursor) -> List[IntegrityCheck]:
    cursor.execute("""
        SELECT id, order_number, total_amount, status
        FROM orders
        WHERE total_amount = 0 AND status != 'CANCELLED'
    """)
    rows = cursor.fetchall()

    if rows:
        return [IntegrityCheck(
            name="order_amount_consistency",
            status="warning",
            code="ZERO_AMOUNT_ORDERS_DETECTED",
            message=f"Found {len(rows)} orders with zero amounts",
            severity="medium",
            details={"zero_amount_orders": _sample(rows)}
        )]

    return [IntegrityCheck(
        name="order_amount_consistency",
        status="pass",
        code="ALL_ORDERS_VALID_AMOUNTS",
        message="All orders have valid amounts",
        severity="low"
    )]


def check_orphaned_order_items(cursor) -> List[IntegrityCheck]:
    return _reference_check(
        cursor,
        """
        SELECT oi.id, oi.order_id
        FROM order_items oi
        LEFT JOIN orders o ON oi.order_id = o.id
        WHERE o.id IS NULL
        """,
        name="orphaned_order_items",
        fail_code="ORPHANED_ORDER_ITEMS_DETECTED",
        fail_message="Found {count} orphaned order items",
        details_key="orphaned_items",
        pass_code="NO_ORPHANED_ORDER_ITEMS",
        pass_message="No orphaned order items found",
        pass_severity="low",
    )


CHECK_GROUPS: List[_CheckGroup] = [
    _CheckGroup("order_customer", "order_customer_integrity",
                "CHECK_ORDER_CUSTOMER_INTEGRITY_FAILED",
                "Failed to check order-customer integrity", "high",
                check_order_customer_integrity),
    _CheckGroup("order_product", "order_product_integrity",
                "CHECK_ORDER_PRODUCT_INTEGRITY_FAILED",
                "Failed to check order-product integrity", "high",
                check_order_product_integrity),
    _CheckGroup("user_outlet", "user_outlet_integrity",
                "CHECK_USER_OUTLET_INTEGRITY_FAILED",
                "Failed to check user-outlet integrity", "high",
                check_user_outlet_integrity),
    _CheckGroup("product_stock", "product_stock_consistency",
                "CHECK_PRODUCT_STOCK_FAILED",
                "Failed to check product stock consistency", "high",
                check_product_stock),
    _CheckGroup("payment_order", "payment_order_integrity",
                "CHECK_PAYMENT_ORDER_INTEGRITY_FAILED",
                "Failed to check payment-order integrity", "high",
                check_payment_order_integrity),
    _CheckGroup("audit_log", "audit_log_completeness",
                "CHECK_AUDIT_LOG_FAILED",
                "Failed to check audit log completeness", "medium",
                check_audit_log_completeness),
    _CheckGroup("data_consistency", "data_consistency",
                "CHECK_DATA_CONSISTENCY_FAILED",
                "Failed to check data consistency", "medium",
                check_order_amount_consistency),
    _CheckGroup("orphaned_records", "orphaned_records",
                "CHECK_ORPHANED_RECORDS_FAILED",
                "Failed to check for orphaned records", "medium",
                check_orphaned_order_items),
]


# ============================================================================
# Report
# ============================================================================

def build_report(checks: List[IntegrityCheck], now: Optional[datetime] = None) -> Dict[str, Any]:
    """Aggregate checks into the integrity report"""
    failed = [c for c in checks if c.status == "fail"]

    if any(c.severity == "critical" for c in failed):
        overall = "critical"
    elif failed:
        overall = "degraded"
    else:
        overall = "healthy"

    return {
        "overall": overall,
        "timestamp": (now or datetime.now(timezone.utc)).isoformat(),
        "checks": [c.to_dict() for c in checks],
        "summary": {
            "total": len(checks),
            "passed": sum(1 for c in checks if c.status == "pass"),
            "failed": len(failed),
            "warnings": sum(1 for c in checks if c.status == "warning"),
        }
    }


class IntegrityService:
    """Runs every check group against one connection"""

    def __init__(self, groups: Optional[List[_CheckGroup]] = None):
        self.groups = groups if groups is not None else CHECK_GROUPS

    def run_checks(self) -> Dict[str, Any]:
        logger.info("Starting data integrity checks")
        conn = get_db_connection_dict_with_retry()
        cursor = conn.cursor()
        checks: List[IntegrityCheck] = []

        try:
            for group in self.groups:
                try:
                    checks.extend(group.run(cursor))
                except Exception as e:
                    logger.error(f"Integrity check group '{group.name}' failed: {e}")
                    # Clear the aborted transaction so later groups can query
                    conn.rollback()
                    checks.append(IntegrityCheck(
                        name=group.error_name,
                        status="fail",
                        code=group.error_code,
                        message=group.error_message,
                        severity=group.error_severity,
                        details=str(e)
                    ))
        finally:
            cursor.close()
            conn.close()

        report = build_report(checks)
        logger.info(
            f"Integrity checks finished: overall={report['overall']} "
            f"passed={report['summary']['passed']} failed={report['summary']['failed']} "
            f"warnings={report['summary']['warnings']}"
        )
        return report
