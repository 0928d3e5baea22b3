"""
API tests for /api/v1/system, /api/v1/sync/legacy and the health check

Author: TM3
Date: 2026-03-12
"""
from unittest.mock import patch, MagicMock, AsyncMock
from datetime import datetime

from rentalshop.core.errors import NotFoundError, RentalShopError, ValidationError, ErrorCode
from rentalshop.domain.sync import SyncSession


class TestHealth:

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "online"

    @patch('rentalshop.main.get_db_connection_with_retry')
    def test_health_connected(self, mock_get_conn, client):
        response = client.get("/health")

        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"]["status"] == "connected"
        mock_get_conn.assert_called_once_with(max_retries=1, retry_delay=0.5)

    @patch('rentalshop.main.get_db_connection_with_retry')
    def test_health_degraded(self, mock_get_conn, client):
        mock_get_conn.side_effect = Exception("could not connect to server")

        response = client.get("/health")

        body = response.json()
        assert response.status_code == 200
        assert body["status"] == "degraded"
        assert body["database"]["error"] == "could not connect to server"


class TestSystemAPI:

    def test_integrity_requires_admin(self, client, merchant_headers):
        response = client.get("/api/v1/system/integrity", headers=merchant_headers)

        assert response.status_code == 403

    @patch('rentalshop.api.system.IntegrityService')
    def test_integrity_report(self, mock_service_class, client, admin_headers):
        mock_service_class.return_value.run_checks.return_value = {
            "overall": "healthy", "checks": [], "summary": {"total": 0}
        }

        response = client.get("/api/v1/system/integrity", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["data"]["overall"] == "healthy"

    @patch('rentalshop.api.system.BackupService')
    def test_verify_missing_backup(self, mock_service_class, client, admin_headers):
        mock_service_class.return_value.verify_backup.side_effect = NotFoundError(
            "Backup file not found", code=ErrorCode.BACKUP_NOT_FOUND
        )

        response = client.post("/api/v1/system/backups/daily-1/verify", headers=admin_headers)

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "BACKUP_NOT_FOUND"

    @patch('rentalshop.api.system.AuditRepository')
    def test_audit_logs_scoped_to_merchant(self, mock_repo_class, client, merchant_headers):
        mock_repo_class.return_value.find_all.return_value = ([], 0)

        response = client.get("/api/v1/system/audit-logs?action=update", headers=merchant_headers)

        assert response.status_code == 200
        kwargs = mock_repo_class.return_value.find_all.call_args[1]
        assert kwargs["merchant_id"] == 1
        assert kwargs["action"] == "UPDATE"


class TestSyncAPI:

    def test_requires_admin(self, client, staff_headers):
        response = client.post("/api/v1/sync/legacy/preview?merchant_id=1", headers=staff_headers)

        assert response.status_code == 403

    @patch('rentalshop.api.sync.LegacySyncService')
    def test_execute(self, mock_service_class, client, admin_headers):
        # Arrange
        mock_service_class.return_value.execute = AsyncMock(return_value={
            "session": {"id": 3, "status": "COMPLETED"},
            "stats": {"customers": {"total": 1, "created": 1, "failed": 0}},
            "errors": []
        })

        # Act
        response = client.post("/api/v1/sync/legacy/execute?merchant_id=1&validate_images=true",
                               headers=admin_headers)

        # Assert
        assert response.status_code == 200
        assert response.json()["data"]["session"]["status"] == "COMPLETED"
        mock_service_class.return_value.execute.assert_awaited_once_with(
            1, entities=None, validate_images=True
        )

    @patch('rentalshop.api.sync.LegacySyncService')
    def test_execute_failure(self, mock_service_class, client, admin_headers):
        mock_service_class.return_value.execute = AsyncMock(side_effect=RentalShopError(
            "Failed to fetch orders from legacy server: timeout", code=ErrorCode.LEGACY_SYNC_FAILED
        ))

        response = client.post("/api/v1/sync/legacy/execute?merchant_id=1", headers=admin_headers)

        assert response.status_code == 500
        assert response.json()["detail"]["code"] == "LEGACY_SYNC_FAILED"

    @patch('rentalshop.api.sync.SyncRepository')
    def test_sessions(self, mock_repo_class, client, admin_headers):
        mock_repo_class.return_value.find_sessions.return_value = [
            SyncSession(id=3, merchant_id=1, status="COMPLETED", started_at=datetime(2026, 3, 6))
        ]

        response = client.get("/api/v1/sync/legacy/sessions?merchant_id=1", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["count"] == 1
        mock_repo_class.return_value.find_sessions.assert_called_once_with(merchant_id=1, limit=20)

    @patch('rentalshop.api.sync.build_connector')
    def test_connection(self, mock_build, client, admin_headers):
        connector = MagicMock()
        connector.test_connection = AsyncMock(return_value={"success": False, "error": "HTTP 401: denied"})
        connector.get_logs.return_value = [{"level": "error"}]
        mock_build.return_value = connector

        response = client.post("/api/v1/sync/legacy/test-connection", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "error"
        assert response.json()["logs"] == [{"level": "error"}]

    @patch('rentalshop.api.sync.build_connector')
    @patch('rentalshop.api.sync.LegacySyncService')
    def test_execute_with_request_endpoint_and_entities(self, mock_service_class, mock_build, client,
                                                        admin_headers):
        # Arrange
        mock_service_class.return_value.execute = AsyncMock(return_value={"session": {"id": 4}})

        # Act
        response = client.post(
            "/api/v1/sync/legacy/execute?merchant_id=1",
            json={"endpoint": "https://legacy.example.com", "token": "abc", "entities": ["customers"]},
            headers=admin_headers
        )

        # Assert
        assert response.status_code == 200
        mock_build.assert_called_once_with("https://legacy.example.com", "abc")
        mock_service_class.assert_called_once_with(connector=mock_build.return_value)
        mock_service_class.return_value.execute.assert_awaited_once_with(
            1, entities=["customers"], validate_images=False
        )

    @patch('rentalshop.api.sync.LegacySyncService')
    def test_execute_unknown_entity(self, mock_service_class, client, admin_headers):
        mock_service_class.return_value.execute = AsyncMock(
            side_effect=ValidationError("Unknown sync entities: invoices")
        )

        response = client.post("/api/v1/sync/legacy/execute?merchant_id=1", json={"entities": ["invoices"]},
                               headers=admin_headers)

        assert response.status_code == 400

    @patch('rentalshop.api.sync.LegacySyncService')
    def test_resume(self, mock_service_class, client, admin_headers):
        # Arrange
        mock_service_class.return_value.resume = AsyncMock(return_value={
            "session": {"id": 3, "status": "COMPLETED"}, "skipped": {"customers": 1}
        })

        # Act
        response = client.post("/api/v1/sync/legacy/sessions/3/resume", json={"token": "fresh"},
                               headers=admin_headers)

        # Assert
        assert response.status_code == 200
        assert response.json()["data"]["skipped"] == {"customers": 1}
        mock_service_class.return_value.resume.assert_awaited_once_with(
            3, validate_images=False, endpoint=None, token="fresh"
        )

    @patch('rentalshop.api.sync.LegacySyncService')
    def test_resume_completed_session(self, mock_service_class, client, admin_headers):
        mock_service_class.return_value.resume = AsyncMock(side_effect=ValidationError(
            "Sync session 3 is COMPLETED and cannot be resumed", code=ErrorCode.SYNC_SESSION_NOT_RESUMABLE
        ))

        response = client.post("/api/v1/sync/legacy/sessions/3/resume", headers=admin_headers)

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "SYNC_SESSION_NOT_RESUMABLE"

    @patch('rentalshop.api.sync.LegacySyncService')
    def test_export_json(self, mock_service_class, client, admin_headers):
        mock_service_class.return_value.export = AsyncMock(return_value={"entities": ["products"], "data": {}})

        response = client.post("/api/v1/sync/legacy/export", json={"entities": ["products"], "preview": True},
                               headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["data"]["entities"] == ["products"]
        mock_service_class.return_value.export.assert_awaited_once_with(["products"], preview=True)

    @patch('rentalshop.api.sync.LegacySyncService')
    def test_export_download(self, mock_service_class, client, admin_headers):
        # Arrange
        mock_service_class.return_value.export = AsyncMock(return_value={
            "entities": ["customers"],
            "data": {"customers": [{"first_name": "Lan", "created_at": datetime(2026, 3, 6)}]},
        })

        # Act
        response = client.post("/api/v1/sync/legacy/export", json={"download": True}, headers=admin_headers)

        # Assert
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/json")
        assert "legacy_export_customers_" in response.headers["content-disposition"]
        assert response.json()["data"]["customers"][0]["created_at"] == "2026-03-06T00:00:00"
