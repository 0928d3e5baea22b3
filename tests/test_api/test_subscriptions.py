"""
API tests for /api/v1/plans and /api/v1/subscriptions

Author: TM3
Date: 2026-03-12
"""
from unittest.mock import patch

from rentalshop.core.config import settings
from rentalshop.domain.subscription import Plan, Subscription


class TestPlansAPI:

    @patch('rentalshop.api.subscriptions.PlanRepository')
    def test_plan_pricing_lists_every_interval(self, mock_repo_class, client, sample_plan_row):
        # Arrange
        mock_repo_class.return_value.find_by_id.return_value = Plan(**sample_plan_row)

        # Act
        response = client.get("/api/v1/plans/2/pricing")

        # Assert
        assert response.status_code == 200
        pricing = response.json()["data"]["pricing"]
        assert pricing["quarterly"]["final_price"] == 270.0
        assert pricing["yearly"]["discount_percentage"] == 20

    def test_create_plan_requires_admin(self, client, merchant_headers):
        response = client.post("/api/v1/plans/", json={"name": "Starter"}, headers=merchant_headers)

        assert response.status_code == 403


class TestSubscriptionsAPI:

    @patch('rentalshop.api.subscriptions.SubscriptionRepository')
    def test_current_subscription_message(self, mock_repo_class, client, merchant_headers,
                                          sample_subscription_row):
        mock_repo_class.return_value.find_current.return_value = Subscription(
            **dict(sample_subscription_row, status="PAST_DUE")
        )

        response = client.get("/api/v1/subscriptions/current", headers=merchant_headers)

        assert response.status_code == 200
        assert response.json()["message"] == (
            "Your subscription payment is past due. Please update your payment method."
        )

    @patch('rentalshop.api.subscriptions.SubscriptionRepository')
    def test_no_current_subscription(self, mock_repo_class, client, merchant_headers):
        mock_repo_class.return_value.find_current.return_value = None

        response = client.get("/api/v1/subscriptions/current", headers=merchant_headers)

        assert response.json()["data"] is None
        assert response.json()["message"] == "No active subscription found"

    @patch('rentalshop.api.subscriptions.SubscriptionService')
    def test_expire_with_sync_key(self, mock_service_class, client):
        # Arrange
        mock_service_class.return_value.expire_overdue.return_value = {
            "success": True, "past_due": 2, "expired": 1
        }

        # Act
        with patch.object(settings, "SYNC_API_KEY", "scheduler-key"):
            response = client.post("/api/v1/subscriptions/expire", headers={"X-Sync-Key": "scheduler-key"})

        # Assert
        assert response.status_code == 200
        assert response.json()["data"]["expired"] == 1

    def test_expire_with_wrong_key_and_no_token(self, client):
        with patch.object(settings, "SYNC_API_KEY", "scheduler-key"):
            response = client.post("/api/v1/subscriptions/expire", headers={"X-Sync-Key": "guess"})

        assert response.status_code == 401

    def test_expire_rejects_merchant_token(self, client, merchant_headers):
        response = client.post("/api/v1/subscriptions/expire", headers=merchant_headers)

        assert response.status_code == 403

    @patch('rentalshop.api.subscriptions.SubscriptionRepository')
    def test_other_merchants_subscription_is_hidden(self, mock_repo_class, client, merchant_headers,
                                                    sample_subscription_row):
        mock_repo_class.return_value.find_by_id.return_value = Subscription(
            **dict(sample_subscription_row, merchant_id=2)
        )

        response = client.get("/api/v1/subscriptions/7", headers=merchant_headers)

        assert response.status_code == 404
