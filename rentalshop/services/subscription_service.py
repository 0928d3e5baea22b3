"""
Subscription Service - subscription lifecycle and access rules

The module-level functions are pure status rules (no database). The
SubscriptionService class applies them to stored subscriptions:
create, change plan, extend/renew, cancel, pause, resume and expiry.

Author: TM3
Date: 2026-03-05
"""
import logging
import math
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, Any, Optional, List, Tuple

from dateutil.relativedelta import relativedelta

from rentalshop.core.errors import (
    NotFoundError, ValidationError, SubscriptionError, ErrorCode
)
from rentalshop.domain.subscription import Subscription, BILLING_INTERVALS
from rentalshop.repositories.subscription_repository import PlanRepository, SubscriptionRepository
from rentalshop.repositories.payment_repository import PaymentRepository
from rentalshop.services.pricing_service import (
    calculate_subscription_price, calculate_proration, INTERVAL_MONTHS
)

logger = logging.getLogger(__name__)

DEFAULT_GRACE_PERIOD_DAYS = 7

OPERATION_STATUSES = {
    "read": ("ACTIVE", "TRIAL", "PAST_DUE"),
    "create": ("ACTIVE", "TRIAL"),
    "update": ("ACTIVE", "TRIAL"),
    "delete": ("ACTIVE",),
    "admin": ("ACTIVE",),
}

STATUS_MESSAGES = {
    "CANCELLED": "Your subscription has been cancelled. Please contact support to reactivate your account.",
    "EXPIRED": "Your subscription has expired. Please renew to continue using our services.",
    "SUSPENDED": "Your subscription has been suspended. Please contact support for assistance.",
    "PAST_DUE": "Your subscription payment is past due. Please update your payment method.",
    "PAUSED": "Your subscription is paused. Please contact support to reactivate your account.",
}

STATUS_PRIORITY = {
    "ACTIVE": 1,
    "TRIAL": 2,
    "PAST_DUE": 3,
    "PAUSED": 4,
    "SUSPENDED": 5,
    "EXPIRED": 6,
    "CANCELLED": 7,
}


# ============================================================================
# Status rules
# ============================================================================

def can_perform_operation(status: Optional[str], operation: str) -> bool:
    if not status:
        return False
    return status.upper() in OPERATION_STATUSES.get(operation, ())


def get_status_message(status: Optional[str]) -> str:
    if not status:
        return "No active subscription found"
    return STATUS_MESSAGES.get(
        status.upper(), "There is an issue with your subscription. Please contact support."
    )


def get_status_priority(status: Optional[str]) -> int:
    return STATUS_PRIORITY.get((status or "").upper(), 999)


def _aware(now: datetime, reference: datetime) -> datetime:
    """Align naive/aware datetimes before comparing"""
    if reference.tzinfo is not None and now.tzinfo is None:
        return now.replace(tzinfo=reference.tzinfo)
    if reference.tzinfo is None and now.tzinfo is not None:
        return now.replace(tzinfo=None)
    return now


def days_remaining(subscription: Subscription, now: datetime) -> int:
    now = _aware(now, subscription.current_period_end)
    seconds = (subscription.current_period_end - now).total_seconds()
    return max(0, math.ceil(seconds / 86400))


def calculate_period(subscription: Subscription, now: datetime) -> Dict[str, Any]:
    return {
        "start": subscription.current_period_start,
        "end": subscription.current_period_end,
        "days_remaining": days_remaining(subscription, now),
        "is_active": subscription.status in ("ACTIVE", "TRIAL"),
    }


def is_expired(subscription: Subscription, now: datetime) -> bool:
    return _aware(now, subscription.current_period_end) > subscription.current_period_end


def is_grace_period_exceeded(subscription: Subscription, now: datetime,
                             grace_days: int = DEFAULT_GRACE_PERIOD_DAYS) -> bool:
    grace_end = subscription.current_period_end + timedelta(days=grace_days)
    return _aware(now, grace_end) > grace_end


def validate_for_renewal(subscription: Optional[Subscription], now: datetime,
                         grace_days: int = DEFAULT_GRACE_PERIOD_DAYS) -> Dict[str, Any]:
    if subscription is None:
        return {"can_renew": False, "reason": "Subscription not found"}
    if subscription.status == "CANCELLED":
        return {"can_renew": False, "reason": "Subscription is cancelled"}
    if subscription.status == "ACTIVE" and not is_expired(subscription, now):
        return {"can_renew": False, "reason": "Subscription is still active"}
    if is_grace_period_exceeded(subscription, now, grace_days):
        return {"can_renew": False, "reason": "Grace period exceeded"}
    return {"can_renew": True, "reason": None}


def needs_attention(subscription: Optional[Subscription], now: datetime) -> Tuple[bool, str, Optional[str]]:
    """
    Returns:
        (needs_attention, urgency, reason) with urgency low|medium|high|critical
    """
    if subscription is None:
        return False, "low", None

    status = subscription.status
    remaining = days_remaining(subscription, now)

    if status in ("EXPIRED", "CANCELLED"):
        return True, "critical", f"Subscription is {status.lower()}"
    if status in ("SUSPENDED", "PAST_DUE"):
        return True, "high", f"Subscription is {status.lower()}"
    if status == "TRIAL" and remaining <= 3:
        return True, "medium", "Trial ending soon"
    if status == "PAUSED":
        return True, "medium", "Subscription is paused"
    if status == "ACTIVE" and remaining <= 7:
        return True, "low", "Subscription ending soon"
    return False, "low", None


def next_period_end(start: datetime, interval: str) -> datetime:
    return start + relativedelta(months=INTERVAL_MONTHS[interval])


# ============================================================================
# Service
# ============================================================================

class SubscriptionService:
    """Business logic for merchant subscriptions"""

    def __init__(self,
                 plan_repo: Optional[PlanRepository] = None,
                 subscription_repo: Optional[SubscriptionRepository] = None,
                 payment_repo: Optional[PaymentRepository] = None):
        self.plan_repo = plan_repo or PlanRepository()
        self.subscription_repo = subscription_repo or SubscriptionRepository()
        self.payment_repo = payment_repo or PaymentRepository()

    def _get(self, subscription_id: int) -> Subscription:
        subscription = self.subscription_repo.find_by_id(subscription_id)
        if subscription is None:
            raise NotFoundError(f"Subscription {subscription_id} not found",
                                code=ErrorCode.SUBSCRIPTION_NOT_FOUND)
        return subscription

    def _get_plan(self, plan_id: int):
        plan = self.plan_repo.find_by_id(plan_id)
        if plan is None or not plan.is_active:
            raise NotFoundError(f"Plan {plan_id} not found", code=ErrorCode.PLAN_NOT_FOUND)
        return plan

    @staticmethod
    def _check_interval(interval: str) -> None:
        if interval not in BILLING_INTERVALS:
            raise ValidationError(f"Invalid billing interval '{interval}'")

    def ensure_can_perform(self, merchant_id: int, operation: str) -> None:
        """
        Raise SubscriptionError when the merchant's subscription blocks an operation.

        Merchants that never subscribed are allowed (no billing configured).
        """
        subscription = self.subscription_repo.find_current(merchant_id)
        if subscription is None:
            return
        if not can_perform_operation(subscription.status, operation):
            raise SubscriptionError(
                get_status_message(subscription.status),
                details={"status": subscription.status, "operation": operation}
            )

    def create(self, merchant_id: int, plan_id: int, billing_interval: str = "monthly",
               now: Optional[datetime] = None) -> Subscription:
        self._check_interval(billing_interval)
        plan = self._get_plan(plan_id)
        now = now or datetime.utcnow()
        pricing = calculate_subscription_price(plan.base_price, billing_interval)

        if plan.trial_days > 0:
            trial_end = now + timedelta(days=plan.trial_days)
            fields = {
                "merchant_id": merchant_id,
                "plan_id": plan.id,
                "status": "TRIAL",
                "billing_interval": billing_interval,
                "amount": Decimal(str(pricing["final_price"])),
                "current_period_start": now,
                "current_period_end": trial_end,
                "trial_end": trial_end,
            }
        else:
            fields = {
                "merchant_id": merchant_id,
                "plan_id": plan.id,
                "status": "ACTIVE",
                "billing_interval": billing_interval,
                "amount": Decimal(str(pricing["final_price"])),
                "current_period_start": now,
                "current_period_end": next_period_end(now, billing_interval),
                "trial_end": None,
            }

        subscription = self.subscription_repo.create(fields)
        logger.info(f"Created {subscription.status} subscription {subscription.id} for merchant {merchant_id}")
        return subscription

    def change_plan(self, subscription_id: int, plan_id: int,
                    billing_interval: Optional[str] = None,
                    now: Optional[datetime] = None) -> Dict[str, Any]:
        """Switch plan; records a PLAN_CHANGE payment with the prorated amount"""
        subscription = self._get(subscription_id)
        if subscription.status in ("CANCELLED", "EXPIRED"):
            raise ValidationError(f"Cannot change plan of a {subscription.status.lower()} subscription")

        interval = billing_interval or subscription.billing_interval
        self._check_interval(interval)
        current_plan = self._get_plan(subscription.plan_id)
        new_plan = self._get_plan(plan_id)
        now = now or datetime.utcnow()

        proration = calculate_proration(
            current_plan.base_price, new_plan.base_price, days_remaining(subscription, now)
        )
        pricing = calculate_subscription_price(new_plan.base_price, interval)

        updated = self.subscription_repo.update(subscription_id, {
            "plan_id": new_plan.id,
            "billing_interval": interval,
            "amount": Decimal(str(pricing["final_price"])),
        })

        payment = None
        if proration["net_amount"] != 0:
            payment = self.payment_repo.create({
                "merchant_id": subscription.merchant_id,
                "subscription_id": subscription_id,
                "amount": Decimal(str(proration["net_amount"])),
                "currency": new_plan.currency,
                "method": "MANUAL",
                "type": "PLAN_CHANGE",
                "status": "PENDING",
                "description": f"Plan change {current_plan.name} -> {new_plan.name}",
            })

        logger.info(f"Subscription {subscription_id} changed plan {current_plan.id} -> {new_plan.id}")
        return {
            "subscription": updated,
            "proration": proration,
            "payment": payment,
        }

    def extend(self, subscription_id: int, method: str = "MANUAL", reference: Optional[str] = None,
               billing_interval: Optional[str] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Renew for one billing interval.

        The new period starts at the old period end when still in the future,
        otherwise now. A completed SUBSCRIPTION_PAYMENT is recorded.
        """
        subscription = self._get(subscription_id)
        now = now or datetime.utcnow()

        if subscription.status == "CANCELLED":
            raise ValidationError("Subscription is cancelled")
        if subscription.status == "EXPIRED" and is_grace_period_exceeded(subscription, now):
            raise ValidationError("Grace period exceeded")

        interval = billing_interval or subscription.billing_interval
        self._check_interval(interval)
        plan = self._get_plan(subscription.plan_id)
        pricing = calculate_subscription_price(plan.base_price, interval)

        period_end = subscription.current_period_end
        start = period_end if period_end > _aware(now, period_end) else _aware(now, period_end)
        new_end = next_period_end(start, interval)

        updated = self.subscription_repo.update(subscription_id, {
            "status": "ACTIVE",
            "billing_interval": interval,
            "amount": Decimal(str(pricing["final_price"])),
            "current_period_start": start,
            "current_period_end": new_end,
            "trial_end": None,
        })

        payment = self.payment_repo.create({
            "merchant_id": subscription.merchant_id,
            "subscription_id": subscription_id,
            "amount": Decimal(str(pricing["final_price"])),
            "currency": plan.currency,
            "method": method,
            "type": "SUBSCRIPTION_PAYMENT",
            "status": "COMPLETED",
            "reference": reference,
            "processed_at": now,
            "description": f"{plan.name} ({interval})",
        })

        logger.info(f"Subscription {subscription_id} extended to {new_end.isoformat()}")
        return {"subscription": updated, "pricing": pricing, "payment": payment}

    def cancel(self, subscription_id: int, reason: Optional[str] = None,
               now: Optional[datetime] = None) -> Subscription:
        subscription = self._get(subscription_id)
        if subscription.status == "CANCELLED":
            raise ValidationError("Subscription is already cancelled")
        return self.subscription_repo.update(subscription_id, {
            "status": "CANCELLED",
            "canceled_at": now or datetime.utcnow(),
            "cancel_reason": reason,
        })

    def pause(self, subscription_id: int) -> Subscription:
        subscription = self._get(subscription_id)
        if subscription.status not in ("ACTIVE", "TRIAL"):
            raise ValidationError(f"Cannot pause a {subscription.status.lower()} subscription")
        return self.subscription_repo.update(subscription_id, {"status": "PAUSED"})

    def resume(self, subscription_id: int, now: Optional[datetime] = None) -> Subscription:
        subscription = self._get(subscription_id)
        if subscription.status != "PAUSED":
            raise ValidationError("Only paused subscriptions can be resumed")
        status = "ACTIVE" if not is_expired(subscription, now or datetime.utcnow()) else "PAST_DUE"
        return self.subscription_repo.update(subscription_id, {"status": status})

    def expire_overdue(self, now: Optional[datetime] = None,
                       grace_days: int = DEFAULT_GRACE_PERIOD_DAYS) -> Dict[str, Any]:
        """
        Move ended subscriptions along: ACTIVE/TRIAL past period end become
        PAST_DUE, and anything past the grace period becomes EXPIRED.
        """
        now = now or datetime.utcnow()
        past_due = 0
        expired = 0

        for subscription in self.subscription_repo.find_by_statuses(["ACTIVE", "TRIAL", "PAST_DUE"]):
            if is_grace_period_exceeded(subscription, now, grace_days):
                self.subscription_repo.update(subscription.id, {"status": "EXPIRED"})
                expired += 1
            elif subscription.status != "PAST_DUE" and is_expired(subscription, now):
                self.subscription_repo.update(subscription.id, {"status": "PAST_DUE"})
                past_due += 1

        logger.info(f"Subscription expiry run: {past_due} past due, {expired} expired")
        return {"success": True, "past_due": past_due, "expired": expired}

    def needing_attention(self, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        now = now or datetime.utcnow()
        subscriptions, _ = self.subscription_repo.find_all(limit=10000)

        results = []
        for subscription in sorted(subscriptions, key=lambda s: get_status_priority(s.status)):
            flagged, urgency, reason = needs_attention(subscription, now)
            if flagged:
                results.append({
                    "subscription": subscription.to_dict(),
                    "urgency": urgency,
                    "reason": reason,
                    "days_remaining": days_remaining(subscription, now),
                })
        return results
