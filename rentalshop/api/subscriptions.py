"""
Plans and Subscriptions API Endpoints

Two routers: plans_router (catalog, public read) and router
(merchant subscriptions and their lifecycle).

Author: TM3
Date: 2026-03-10
"""
from fastapi import APIRouter, HTTPException, Query, Depends
from typing import Optional, Any, Dict
from datetime import datetime
import logging

from rentalshop.core.auth import (
    TokenUser, get_current_user, require_admin, require_role, require_admin_or_sync_key, resolve_merchant_scope
)
from rentalshop.core.errors import RentalShopError, NotFoundError, ErrorCode
from rentalshop.domain.subscription import (
    PlanCreate, PlanUpdate, SubscriptionCreate, PlanChange, SubscriptionExtend, SubscriptionCancel,
    BILLING_INTERVALS
)
from rentalshop.repositories.subscription_repository import PlanRepository, SubscriptionRepository
from rentalshop.services.pricing_service import calculate_subscription_price
from rentalshop.services.subscription_service import (
    SubscriptionService, calculate_period, get_status_message, validate_for_renewal
)

logger = logging.getLogger(__name__)
plans_router = APIRouter()
router = APIRouter()


def _to_dicts(result: Dict[str, Any]) -> Dict[str, Any]:
    """Model values in a service result -> plain dicts"""
    return {key: value.to_dict() if hasattr(value, "to_dict") else value for key, value in result.items()}


def _get_subscription(subscription_id: int, user: TokenUser):
    subscription = SubscriptionRepository().find_by_id(subscription_id)
    if subscription is None or (not user.is_admin and subscription.merchant_id != user.merchant_id):
        raise NotFoundError(f"Subscription {subscription_id} not found", code=ErrorCode.SUBSCRIPTION_NOT_FOUND)
    return subscription


# ============================================================================
# Plans
# ============================================================================

@plans_router.get("/")
async def get_plans(include_inactive: bool = Query(False, description="Include retired plans")):
    """List plans (public)"""
    try:
        plans = PlanRepository().find_all(active_only=not include_inactive)
        return {
            "status": "success",
            "total": len(plans),
            "count": len(plans),
            "data": [plan.to_dict() for plan in plans]
        }

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching plans: {str(e)}")


@plans_router.get("/{plan_id}")
async def get_plan(plan_id: int):
    try:
        plan = PlanRepository().find_by_id(plan_id)
        if plan is None:
            raise NotFoundError(f"Plan {plan_id} not found", code=ErrorCode.PLAN_NOT_FOUND)
        return {"status": "success", "data": plan.to_dict()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching plan: {str(e)}")


@plans_router.get("/{plan_id}/pricing")
async def get_plan_pricing(plan_id: int):
    """Price of the plan for every billing interval, with discounts applied"""
    try:
        plan = PlanRepository().find_by_id(plan_id)
        if plan is None:
            raise NotFoundError(f"Plan {plan_id} not found", code=ErrorCode.PLAN_NOT_FOUND)

        pricing = {
            interval: calculate_subscription_price(plan.base_price, interval)
            for interval in BILLING_INTERVALS
        }
        return {"status": "success", "data": {"plan": plan.to_dict(), "pricing": pricing}}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error calculating plan pricing: {str(e)}")


@plans_router.post("/", status_code=201)
async def create_plan(data: PlanCreate, user: TokenUser = Depends(require_admin)):
    try:
        plan = PlanRepository().create(data)
        logger.info(f"Plan {plan.id} ({plan.name}) created by {user.email}")
        return {"status": "success", "data": plan.to_dict()}

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error creating plan: {str(e)}")


@plans_router.put("/{plan_id}")
async def update_plan(plan_id: int, data: PlanUpdate, user: TokenUser = Depends(require_admin)):
    try:
        plan = PlanRepository().update(plan_id, data)
        if plan is None:
            raise NotFoundError(f"Plan {plan_id} not found", code=ErrorCode.PLAN_NOT_FOUND)
        return {"status": "success", "data": plan.to_dict()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error updating plan: {str(e)}")


# ============================================================================
# Subscriptions
# ============================================================================

@router.get("/")
async def get_subscriptions(
    merchant_id: Optional[int] = Query(None, description="Merchant (admins may omit to list all)"),
    status: Optional[str] = Query(None, description="Filter by subscription status"),
    limit: int = Query(50, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    user: TokenUser = Depends(require_role("MERCHANT"))
):
    try:
        scope = resolve_merchant_scope(user, merchant_id, required=False)
        subscriptions, total = SubscriptionRepository().find_all(
            merchant_id=scope,
            status=status.upper() if status else None,
            limit=limit,
            offset=offset
        )

        return {
            "status": "success",
            "total": total,
            "limit": limit,
            "offset": offset,
            "count": len(subscriptions),
            "data": [s.to_dict() for s in subscriptions]
        }

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching subscriptions: {str(e)}")


@router.get("/current")
async def get_current_subscription(
    merchant_id: Optional[int] = Query(None, description="Merchant (required for admins)"),
    user: TokenUser = Depends(get_current_user)
):
    """Current subscription of a merchant with its status message"""
    try:
        scope = resolve_merchant_scope(user, merchant_id)
        subscription = SubscriptionRepository().find_current(scope)
        if subscription is None:
            return {
                "status": "success",
                "data": None,
                "message": get_status_message(None)
            }

        return {
            "status": "success",
            "data": subscription.to_dict(),
            "message": get_status_message(subscription.status)
        }

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching subscription: {str(e)}")


@router.get("/attention")
async def get_subscriptions_needing_attention(user: TokenUser = Depends(require_admin)):
    """Subscriptions that are expired, past due or ending soon, most urgent first"""
    try:
        results = SubscriptionService().needing_attention()
        return {"status": "success", "count": len(results), "data": results}

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching subscriptions: {str(e)}")


@router.post("/expire")
async def expire_overdue_subscriptions(caller: Optional[TokenUser] = Depends(require_admin_or_sync_key)):
    """
    Move subscriptions past their period end to PAST_DUE, and past the
    grace period to EXPIRED.

    Meant for a scheduler (X-Sync-Key) but admins can trigger it too.
    """
    try:
        result = SubscriptionService().expire_overdue()
        logger.info(f"Expiry run triggered by {caller.email if caller else 'sync key'}")
        return {"status": "success", "data": result}

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error expiring subscriptions: {str(e)}")


@router.get("/{subscription_id}")
async def get_subscription(subscription_id: int, user: TokenUser = Depends(get_current_user)):
    try:
        return {"status": "success", "data": _get_subscription(subscription_id, user).to_dict()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching subscription: {str(e)}")


@router.get("/{subscription_id}/status")
async def get_subscription_status(subscription_id: int, user: TokenUser = Depends(get_current_user)):
    """Billing period, renewal eligibility and status message"""
    try:
        subscription = _get_subscription(subscription_id, user)
        now = datetime.utcnow()

        return {
            "status": "success",
            "data": {
                "subscription_status": subscription.status,
                "message": get_status_message(subscription.status),
                "period": calculate_period(subscription, now),
                "renewal": validate_for_renewal(subscription, now)
            }
        }

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching subscription status: {str(e)}")


@router.post("/", status_code=201)
async def create_subscription(data: SubscriptionCreate, user: TokenUser = Depends(require_admin)):
    try:
        subscription = SubscriptionService().create(data.merchant_id, data.plan_id, data.billing_interval)
        return {"status": "success", "data": subscription.to_dict()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error creating subscription: {str(e)}")


@router.post("/{subscription_id}/change-plan")
async def change_plan(subscription_id: int, change: PlanChange,
                      user: TokenUser = Depends(require_role("MERCHANT"))):
    try:
        _get_subscription(subscription_id, user)
        result = SubscriptionService().change_plan(subscription_id, change.plan_id, change.billing_interval)
        return {"status": "success", "data": _to_dicts(result)}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error changing plan: {str(e)}")


@router.post("/{subscription_id}/extend")
async def extend_subscription(subscription_id: int, request: SubscriptionExtend,
                              user: TokenUser = Depends(require_role("MERCHANT"))):
    """Renew for one billing interval and record the payment"""
    try:
        _get_subscription(subscription_id, user)
        result = SubscriptionService().extend(
            subscription_id,
            method=request.method.upper(),
            reference=request.reference,
            billing_interval=request.billing_interval
        )
        return {"status": "success", "data": _to_dicts(result)}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error extending subscription: {str(e)}")


@router.post("/{subscription_id}/cancel")
async def cancel_subscription(subscription_id: int, request: SubscriptionCancel,
                              user: TokenUser = Depends(require_role("MERCHANT"))):
    try:
        _get_subscription(subscription_id, user)
        subscription = SubscriptionService().cancel(subscription_id, request.reason)
        logger.info(f"Subscription {subscription_id} cancelled by {user.email}")
        return {"status": "success", "data": subscription.to_dict()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error cancelling subscription: {str(e)}")


@router.post("/{subscription_id}/pause")
async def pause_subscription(subscription_id: int, user: TokenUser = Depends(require_admin)):
    try:
        subscription = SubscriptionService().pause(subscription_id)
        return {"status": "success", "data": subscription.to_dict()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error pausing subscription: {str(e)}")


@router.post("/{subscription_id}/resume")
async def resume_subscription(subscription_id: int, user: TokenUser = Depends(require_admin)):
    try:
        subscription = SubscriptionService().resume(subscription_id)
        return {"status": "success", "data": subscription.to_dict()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error resuming subscription: {str(e)}")
