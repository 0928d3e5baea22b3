"""
Payments API Endpoints
"""
from fastapi import APIRouter, HTTPException, Query, Depends
from typing import Optional
import logging

from rentalshop.core.auth import TokenUser, get_current_user, require_role, resolve_merchant_scope
from rentalshop.core.errors import RentalShopError
from rentalshop.domain.subscription import PaymentCreate, PaymentStatusUpdate
from rentalshop.repositories.payment_repository import PaymentRepository
from rentalshop.services.payment_service import PaymentService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/")
async def get_payments(
    merchant_id: Optional[int] = Query(None, description="Merchant (admins may omit to list all)"),
    order_id: Optional[int] = Query(None, description="Filter by order"),
    subscription_id: Optional[int] = Query(None, description="Filter by subscription"),
    status: Optional[str] = Query(None, description="Filter by payment status"),
    method: Optional[str] = Query(None, description="Filter by payment method"),
    limit: int = Query(50, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    user: TokenUser = Depends(require_role("OUTLET_ADMIN"))
):
    try:
        scope = resolve_merchant_scope(user, merchant_id, required=False)
        payments, total = PaymentRepository().find_all(
            merchant_id=scope,
            order_id=order_id,
            subscription_id=subscription_id,
            status=status.upper() if status else None,
            method=method.upper() if method else None,
            limit=limit,
            offset=offset
        )

        return {
            "status": "success",
            "total": total,
            "limit": limit,
            "offset": offset,
            "count": len(payments),
            "data": [payment.to_dict() for payment in payments]
        }

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching payments: {str(e)}")


@router.get("/{payment_id}")
async def get_payment(payment_id: int, user: TokenUser = Depends(get_current_user)):
    try:
        payment = PaymentService().get(payment_id, None if user.is_admin else user.merchant_id)
        return {"status": "success", "data": payment.to_dict()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching payment: {str(e)}")


@router.post("/", status_code=201)
async def create_payment(
    data: PaymentCreate,
    merchant_id: Optional[int] = Query(None, description="Merchant (required for admins)"),
    user: TokenUser = Depends(get_current_user)
):
    try:
        scope = resolve_merchant_scope(user, merchant_id)
        data.method = data.method.upper()
        data.type = data.type.upper()
        data.status = data.status.upper()

        payment = PaymentService().create(scope, data)
        return {"status": "success", "data": payment.to_dict()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error creating payment: {str(e)}")


@router.patch("/{payment_id}/status")
async def update_payment_status(payment_id: int, change: PaymentStatusUpdate,
                                user: TokenUser = Depends(require_role("OUTLET_ADMIN"))):
    """COMPLETED stamps processed_at; REFUNDED is only allowed from COMPLETED"""
    try:
        payment = PaymentService().update_status(
            payment_id, None if user.is_admin else user.merchant_id, change
        )
        logger.info(f"Payment {payment_id} -> {payment.status} by {user.email}")
        return {"status": "success", "data": payment.to_dict()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error updating payment: {str(e)}")
