"""
Unit tests for the data integrity report

Author: TM3
Date: 2026-03-12
"""
from dataclasses import replace
from unittest.mock import patch, MagicMock
from datetime import datetime, timezone

from rentalshop.services.integrity_service import (
    IntegrityService,
    IntegrityCheck,
    build_report,
    check_product_stock,
    check_audit_log_completeness,
    check_order_customer_integrity,
    CHECK_GROUPS,
)


def _check(status, severity="medium"):
    return IntegrityCheck(name="c", status=status, code="C", message="m", severity=severity)


class TestBuildReport:

    def test_all_pass_is_healthy(self):
        report = build_report([_check("pass"), _check("pass")],
                              now=datetime(2026, 3, 5, 10, 0, tzinfo=timezone.utc))

        assert report["overall"] == "healthy"
        assert report["timestamp"] == "2026-03-05T10:00:00+00:00"
        assert report["summary"] == {"total": 2, "passed": 2, "failed": 0, "warnings": 0}

    def test_warnings_do_not_degrade(self):
        report = build_report([_check("pass"), _check("warning")])

        assert report["overall"] == "healthy"
        assert report["summary"]["warnings"] == 1

    def test_failure_degrades(self):
        assert build_report([_check("fail", "high")])["overall"] == "degraded"

    def test_critical_failure(self):
        assert build_report([_check("fail", "high"), _check("fail", "critical")])["overall"] == "critical"

    def test_details_omitted_when_empty(self):
        report = build_report([_check("pass")])

        assert "details" not in report["checks"][0]


class TestChecks:

    def test_reference_check_samples_offending_rows(self):
        # Arrange
        cursor = MagicMock()
        cursor.fetchall.return_value = [
            {'id': i, 'order_number': f'ORD{i}', 'customer_id': 99} for i in range(8)
        ]

        # Act
        checks = check_order_customer_integrity(cursor)

        # Assert
        assert checks[0].status == "fail"
        assert checks[0].severity == "high"
        assert checks[0].message == "Found 8 orders with invalid customer references"
        assert len(checks[0].details["invalid_orders"]) == 5

    def test_product_stock_returns_two_checks(self):
        # Arrange
        cursor = MagicMock()
        cursor.fetchall.side_effect = [
            [],
            [{'product_id': 10, 'name': 'Dress', 'outlet_id': 1, 'stock': 5, 'renting': 1, 'available': 2}],
        ]

        # Act
        checks = check_product_stock(cursor)

        # Assert
        assert [c.status for c in checks] == ["pass", "warning"]
        assert checks[1].code == "INCONSISTENT_STOCK_DETECTED"

    def test_audit_log_missing(self):
        cursor = MagicMock()
        cursor.fetchone.side_effect = [{'count': 4}, {'count': 0}]

        checks = check_audit_log_completeness(cursor)

        assert checks[0].code == "AUDIT_LOG_MISSING"
        assert checks[0].details == {"operations_count": 4, "audit_logs_count": 0}


class TestIntegrityService:

    @patch('rentalshop.services.integrity_service.get_db_connection_dict_with_retry')
    def test_run_checks_on_clean_database(self, mock_get_conn):
        # Arrange
        mock_conn = MagicMock()
        mock_cursor = MagicMock()
        mock_get_conn.return_value = mock_conn
        mock_conn.cursor.return_value = mock_cursor
        mock_cursor.fetchall.return_value = []
        mock_cursor.fetchone.return_value = {'count': 0}

        # Act
        report = IntegrityService().run_checks()

        # Assert
        assert report["overall"] == "healthy"
        assert report["summary"]["total"] == len(CHECK_GROUPS) + 1
        assert report["summary"]["failed"] == 0
        mock_conn.close.assert_called_once()

    @patch('rentalshop.services.integrity_service.get_db_connection_dict_with_retry')
    def test_failing_group_does_not_stop_others(self, mock_get_conn):
        """Test a group that raises is recorded as failed and the next group still runs"""
        # Arrange
        mock_conn = MagicMock()
        mock_get_conn.return_value = mock_conn
        broken = MagicMock(side_effect=Exception("relation \"payments\" does not exist"))
        groups = [
            replace(CHECK_GROUPS[4], run=broken),
            CHECK_GROUPS[0],
        ]
        mock_conn.cursor.return_value.fetchall.return_value = []

        # Act
        report = IntegrityService(groups).run_checks()

        # Assert
        assert report["overall"] == "degraded"
        failed = report["checks"][0]
        assert failed["code"] == "CHECK_PAYMENT_ORDER_INTEGRITY_FAILED"
        assert "does not exist" in failed["details"]
        assert report["checks"][1]["status"] == "pass"
        mock_conn.rollback.assert_called_once()
