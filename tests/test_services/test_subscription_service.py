"""
Unit tests for subscription status rules and SubscriptionService

Repositories are MagicMocks; no database connection is made.

Author: TM3
Date: 2026-03-12
"""
import pytest
from unittest.mock import MagicMock
from datetime import datetime, timedelta
from decimal import Decimal

from rentalshop.core.errors import NotFoundError, ValidationError, SubscriptionError
from rentalshop.domain.subscription import Plan, Subscription
from rentalshop.services.subscription_service import (
    SubscriptionService,
    can_perform_operation,
    get_status_message,
    days_remaining,
    is_grace_period_exceeded,
    validate_for_renewal,
    needs_attention,
)


@pytest.fixture
def plan(sample_plan_row):
    return Plan(**sample_plan_row)


@pytest.fixture
def subscription(sample_subscription_row):
    return Subscription(**sample_subscription_row)


@pytest.fixture
def service(plan, subscription):
    plan_repo = MagicMock()
    subscription_repo = MagicMock()
    payment_repo = MagicMock()
    plan_repo.find_by_id.return_value = plan
    subscription_repo.find_by_id.return_value = subscription
    subscription_repo.update.side_effect = lambda sid, fields: subscription.model_copy(update=fields)
    subscription_repo.create.side_effect = lambda fields: Subscription(
        id=8, created_at=datetime(2026, 3, 1), **fields
    )
    return SubscriptionService(plan_repo, subscription_repo, payment_repo)


class TestStatusRules:

    def test_operations_per_status(self):
        assert can_perform_operation("ACTIVE", "delete") is True
        assert can_perform_operation("TRIAL", "create") is True
        assert can_perform_operation("TRIAL", "delete") is False
        assert can_perform_operation("PAST_DUE", "read") is True
        assert can_perform_operation("PAST_DUE", "create") is False
        assert can_perform_operation("cancelled", "read") is False
        assert can_perform_operation(None, "read") is False

    def test_status_messages(self):
        assert get_status_message(None) == "No active subscription found"
        assert "expired" in get_status_message("expired")
        assert "contact support" in get_status_message("UNKNOWN")

    def test_days_remaining_rounds_up(self, subscription):
        now = datetime(2026, 3, 13, 12, 0, 0)
        assert days_remaining(subscription, now) == 2

    def test_days_remaining_never_negative(self, subscription):
        assert days_remaining(subscription, datetime(2026, 4, 1)) == 0

    def test_grace_period(self, subscription):
        assert is_grace_period_exceeded(subscription, datetime(2026, 3, 20)) is False
        assert is_grace_period_exceeded(subscription, datetime(2026, 3, 23)) is True

    def test_renewal_rules(self, subscription):
        assert validate_for_renewal(None, datetime(2026, 3, 1))["can_renew"] is False

        still_active = validate_for_renewal(subscription, datetime(2026, 3, 1))
        assert still_active == {"can_renew": False, "reason": "Subscription is still active"}

        in_grace = validate_for_renewal(subscription, datetime(2026, 3, 18))
        assert in_grace["can_renew"] is True

        cancelled = subscription.model_copy(update={"status": "CANCELLED"})
        assert validate_for_renewal(cancelled, datetime(2026, 3, 1))["reason"] == "Subscription is cancelled"

    def test_needs_attention_urgency(self, subscription):
        now = datetime(2026, 3, 10)

        assert needs_attention(subscription, now) == (True, "low", "Subscription ending soon")
        assert needs_attention(subscription, datetime(2026, 2, 20))[0] is False

        expired = subscription.model_copy(update={"status": "EXPIRED"})
        assert needs_attention(expired, now)[1] == "critical"

        trial = subscription.model_copy(update={"status": "TRIAL"})
        assert needs_attention(trial, datetime(2026, 3, 13)) == (True, "medium", "Trial ending soon")


class TestSubscriptionService:

    def test_ensure_can_perform_without_subscription(self, service):
        service.subscription_repo.find_current.return_value = None

        service.ensure_can_perform(1, "create")

    def test_ensure_can_perform_blocks_past_due(self, service, subscription):
        # Arrange
        service.subscription_repo.find_current.return_value = subscription.model_copy(
            update={"status": "PAST_DUE"}
        )

        # Act / Assert
        with pytest.raises(SubscriptionError) as exc_info:
            service.ensure_can_perform(1, "create")

        assert exc_info.value.details["status"] == "PAST_DUE"

    def test_create_starts_trial(self, service):
        """Test a plan with trial days starts a TRIAL subscription"""
        # Arrange
        now = datetime(2026, 3, 1)

        # Act
        created = service.create(1, 2, "quarterly", now=now)

        # Assert
        fields = service.subscription_repo.create.call_args[0][0]
        assert fields["status"] == "TRIAL"
        assert fields["current_period_end"] == now + timedelta(days=14)
        assert fields["amount"] == Decimal("270.0")
        assert created.trial_end == now + timedelta(days=14)

    def test_create_without_trial_is_active(self, service, plan):
        # Arrange
        service.plan_repo.find_by_id.return_value = plan.model_copy(update={"trial_days": 0})

        # Act
        service.create(1, 2, "monthly", now=datetime(2026, 1, 31))

        # Assert
        fields = service.subscription_repo.create.call_args[0][0]
        assert fields["status"] == "ACTIVE"
        assert fields["current_period_end"] == datetime(2026, 2, 28)

    def test_create_with_inactive_plan(self, service, plan):
        service.plan_repo.find_by_id.return_value = plan.model_copy(update={"is_active": False})

        with pytest.raises(NotFoundError):
            service.create(1, 2)

    def test_create_with_invalid_interval(self, service):
        with pytest.raises(ValidationError):
            service.create(1, 2, "weekly")

    def test_change_plan_records_prorated_payment(self, service, plan):
        # Arrange
        bigger = plan.model_copy(update={"id": 3, "name": "Enterprise", "base_price": Decimal("200")})
        service.plan_repo.find_by_id.side_effect = lambda pid: plan if pid == 2 else bigger

        # Act
        result = service.change_plan(7, 3, now=datetime(2026, 3, 9))

        # Assert
        assert result["proration"]["days_remaining"] == 6
        assert result["proration"]["net_amount"] == 20.0
        payment_fields = service.payment_repo.create.call_args[0][0]
        assert payment_fields["type"] == "PLAN_CHANGE"
        assert payment_fields["amount"] == Decimal("20.0")
        assert result["subscription"].plan_id == 3

    def test_change_plan_same_price_has_no_payment(self, service):
        result = service.change_plan(7, 2, now=datetime(2026, 3, 9))

        assert result["payment"] is None
        service.payment_repo.create.assert_not_called()

    def test_change_plan_of_cancelled_subscription(self, service, subscription):
        service.subscription_repo.find_by_id.return_value = subscription.model_copy(
            update={"status": "CANCELLED"}
        )

        with pytest.raises(ValidationError):
            service.change_plan(7, 3)

    def test_extend_continues_from_future_period_end(self, service):
        # Act
        result = service.extend(7, now=datetime(2026, 3, 1))

        # Assert
        fields = service.subscription_repo.update.call_args[0][1]
        assert fields["current_period_start"] == datetime(2026, 3, 15)
        assert fields["current_period_end"] == datetime(2026, 4, 15)
        assert fields["status"] == "ACTIVE"
        assert service.payment_repo.create.call_args[0][0]["status"] == "COMPLETED"
        assert result["pricing"]["final_price"] == 100.0

    def test_extend_after_expiry_starts_now(self, service, subscription):
        # Arrange
        service.subscription_repo.find_by_id.return_value = subscription.model_copy(
            update={"status": "PAST_DUE"}
        )
        now = datetime(2026, 3, 18)

        # Act
        service.extend(7, now=now)

        # Assert
        fields = service.subscription_repo.update.call_args[0][1]
        assert fields["current_period_start"] == now

    def test_extend_expired_past_grace(self, service, subscription):
        service.subscription_repo.find_by_id.return_value = subscription.model_copy(
            update={"status": "EXPIRED"}
        )

        with pytest.raises(ValidationError):
            service.extend(7, now=datetime(2026, 5, 1))

    def test_cancel_twice(self, service, subscription):
        service.subscription_repo.find_by_id.return_value = subscription.model_copy(
            update={"status": "CANCELLED"}
        )

        with pytest.raises(ValidationError):
            service.cancel(7)

    def test_pause_and_resume(self, service, subscription):
        # Act
        paused = service.pause(7)

        # Assert
        assert paused.status == "PAUSED"

        service.subscription_repo.find_by_id.return_value = paused
        assert service.resume(7, now=datetime(2026, 3, 1)).status == "ACTIVE"
        assert service.resume(7, now=datetime(2026, 3, 20)).status == "PAST_DUE"

    def test_resume_requires_paused(self, service):
        with pytest.raises(ValidationError):
            service.resume(7)

    def test_missing_subscription(self, service):
        service.subscription_repo.find_by_id.return_value = None

        with pytest.raises(NotFoundError):
            service.cancel(99)

    def test_expire_overdue(self, service, subscription):
        # Arrange
        in_grace = subscription.model_copy(update={"id": 1})
        overdue = subscription.model_copy(update={"id": 2, "status": "PAST_DUE",
                                                  "current_period_end": datetime(2026, 3, 1)})
        current = subscription.model_copy(update={"id": 3, "current_period_end": datetime(2026, 4, 1)})
        service.subscription_repo.find_by_statuses.return_value = [in_grace, overdue, current]

        # Act
        result = service.expire_overdue(now=datetime(2026, 3, 16))

        # Assert
        assert result == {"success": True, "past_due": 1, "expired": 1}
        updates = [c[0] for c in service.subscription_repo.update.call_args_list]
        assert (1, {"status": "PAST_DUE"}) in updates
        assert (2, {"status": "EXPIRED"}) in updates
