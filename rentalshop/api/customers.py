"""
Customers API Endpoints
"""
from fastapi import APIRouter, HTTPException, Query, Depends
from typing import Optional
import logging

from rentalshop.core.auth import TokenUser, get_current_user, require_role, resolve_merchant_scope
from rentalshop.core.errors import RentalShopError, NotFoundError, ValidationError, ConflictError, ErrorCode
from rentalshop.domain.customer import CustomerCreate, CustomerUpdate, ID_TYPES
from rentalshop.repositories.customer_repository import CustomerRepository
from rentalshop.services.plan_limit_service import PlanLimitService
from rentalshop.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)
router = APIRouter()


def _get_customer(customer_id: int, user: TokenUser):
    customer = CustomerRepository().find_by_id(customer_id)
    if customer is None or (not user.is_admin and customer.merchant_id != user.merchant_id):
        raise NotFoundError(f"Customer {customer_id} not found", code=ErrorCode.CUSTOMER_NOT_FOUND)
    return customer


def _check_id_type(id_type: Optional[str]) -> None:
    if id_type is not None and id_type not in ID_TYPES:
        raise ValidationError(f"Invalid ID type '{id_type}'. Expected one of: {', '.join(ID_TYPES)}")


@router.get("/")
async def get_customers(
    merchant_id: Optional[int] = Query(None, description="Merchant (admins may omit to list all)"),
    is_active: Optional[bool] = Query(None, description="Filter by active status"),
    search: Optional[str] = Query(None, description="Search by name, phone or email"),
    limit: int = Query(50, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    user: TokenUser = Depends(get_current_user)
):
    try:
        scope = resolve_merchant_scope(user, merchant_id, required=False)
        customers, total = CustomerRepository().find_all(
            merchant_id=scope,
            is_active=is_active,
            search=search,
            limit=limit,
            offset=offset
        )

        return {
            "status": "success",
            "total": total,
            "limit": limit,
            "offset": offset,
            "count": len(customers),
            "data": [customer.to_dict() for customer in customers]
        }

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching customers: {str(e)}")


@router.get("/by-phone")
async def get_customer_by_phone(
    phone: str = Query(..., min_length=1),
    merchant_id: Optional[int] = Query(None, description="Merchant (required for admins)"),
    user: TokenUser = Depends(get_current_user)
):
    try:
        scope = resolve_merchant_scope(user, merchant_id)
        customer = CustomerRepository().find_by_phone(scope, phone.strip())
        if customer is None:
            raise NotFoundError(f"No customer with phone {phone}", code=ErrorCode.CUSTOMER_NOT_FOUND)
        return {"status": "success", "data": customer.to_dict()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching customer: {str(e)}")


@router.get("/{customer_id}")
async def get_customer(customer_id: int, user: TokenUser = Depends(get_current_user)):
    try:
        return {"status": "success", "data": _get_customer(customer_id, user).to_dict()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching customer: {str(e)}")


@router.post("/", status_code=201)
async def create_customer(
    data: CustomerCreate,
    merchant_id: Optional[int] = Query(None, description="Merchant (required for admins)"),
    user: TokenUser = Depends(get_current_user)
):
    try:
        scope = resolve_merchant_scope(user, merchant_id)
        _check_id_type(data.id_type)

        repo = CustomerRepository()
        if data.phone and repo.find_by_phone(scope, data.phone.strip()):
            raise ConflictError(f"A customer with phone {data.phone} already exists")

        SubscriptionService().ensure_can_perform(scope, "create")
        PlanLimitService().enforce(scope, "customers")

        customer = repo.create(scope, data)
        logger.info(f"Customer {customer.id} created for merchant {scope}")
        return {"status": "success", "data": customer.to_dict()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error creating customer: {str(e)}")


@router.put("/{customer_id}")
async def update_customer(customer_id: int, data: CustomerUpdate,
                          user: TokenUser = Depends(get_current_user)):
    try:
        customer = _get_customer(customer_id, user)
        _check_id_type(data.id_type)
        SubscriptionService().ensure_can_perform(customer.merchant_id, "update")

        updated = CustomerRepository().update(customer_id, data)
        return {"status": "success", "data": updated.to_dict()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error updating customer: {str(e)}")


@router.delete("/{customer_id}")
async def deactivate_customer(customer_id: int, user: TokenUser = Depends(require_role("OUTLET_ADMIN"))):
    try:
        customer = _get_customer(customer_id, user)
        SubscriptionService().ensure_can_perform(customer.merchant_id, "delete")
        CustomerRepository().deactivate(customer_id)
        return {"status": "success", "message": f"Customer {customer_id} deactivated"}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error deactivating customer: {str(e)}")
