"""
Notifications API Endpoints
"""
from fastapi import APIRouter, HTTPException, Query, Depends
from typing import Optional

from rentalshop.core.auth import TokenUser, get_current_user, require_role, resolve_merchant_scope
from rentalshop.core.errors import RentalShopError, NotFoundError
from rentalshop.domain.setting import NotificationCreate
from rentalshop.repositories.setting_repository import NotificationRepository

router = APIRouter()


def _user_id(user: TokenUser) -> Optional[int]:
    return int(user.id) if user.id and user.id.isdigit() else None


@router.get("/")
async def get_notifications(
    merchant_id: Optional[int] = Query(None, description="Merchant (required for admins)"),
    unread_only: bool = Query(False, description="Only unread notifications"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user: TokenUser = Depends(get_current_user)
):
    """Notifications addressed to the caller or to the whole merchant"""
    try:
        scope = resolve_merchant_scope(user, merchant_id)
        notifications, total = NotificationRepository().find_all(
            merchant_id=scope,
            user_id=_user_id(user),
            unread_only=unread_only,
            limit=limit,
            offset=offset
        )

        return {
            "status": "success",
            "total": total,
            "limit": limit,
            "offset": offset,
            "count": len(notifications),
            "data": [n.model_dump() for n in notifications]
        }

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching notifications: {str(e)}")


@router.get("/unread-count")
async def get_unread_count(
    merchant_id: Optional[int] = Query(None, description="Merchant (required for admins)"),
    user: TokenUser = Depends(get_current_user)
):
    try:
        scope = resolve_merchant_scope(user, merchant_id)
        count = NotificationRepository().count_unread(scope, _user_id(user))
        return {"status": "success", "data": {"unread": count}}

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error counting notifications: {str(e)}")


@router.post("/", status_code=201)
async def create_notification(data: NotificationCreate, user: TokenUser = Depends(require_role("MERCHANT"))):
    try:
        data.merchant_id = resolve_merchant_scope(user, data.merchant_id)
        notification = NotificationRepository().create(data)
        return {"status": "success", "data": notification.model_dump()}

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error creating notification: {str(e)}")


@router.patch("/{notification_id}/read")
async def mark_notification_read(notification_id: int, user: TokenUser = Depends(get_current_user)):
    try:
        scope = None if user.is_admin else user.merchant_id
        if not NotificationRepository().mark_read(notification_id, scope):
            raise NotFoundError(f"Notification {notification_id} not found")
        return {"status": "success", "message": f"Notification {notification_id} marked as read"}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error updating notification: {str(e)}")


@router.post("/read-all")
async def mark_all_notifications_read(
    merchant_id: Optional[int] = Query(None, description="Merchant (required for admins)"),
    user: TokenUser = Depends(get_current_user)
):
    try:
        scope = resolve_merchant_scope(user, merchant_id)
        updated = NotificationRepository().mark_all_read(scope, _user_id(user))
        return {"status": "success", "data": {"updated": updated}}

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error updating notifications: {str(e)}")
