"""
Products API Endpoints
Catalog, categories and per-outlet stock

Author: TM3
Date: 2026-03-08
"""
from fastapi import APIRouter, HTTPException, Query, Body, Depends
from typing import Optional
from datetime import date
import logging

from rentalshop.core.auth import TokenUser, get_current_user, require_role, resolve_merchant_scope
from rentalshop.core.errors import RentalShopError, NotFoundError, ValidationError, ErrorCode
from rentalshop.domain.product import ProductCreate, ProductUpdate, StockAdjustment, PRICING_TYPES
from rentalshop.repositories.product_repository import ProductRepository, CategoryRepository
from rentalshop.repositories.merchant_repository import OutletRepository
from rentalshop.services.plan_limit_service import PlanLimitService
from rentalshop.services.subscription_service import SubscriptionService
from rentalshop.services.product_availability_service import ProductAvailabilityService

logger = logging.getLogger(__name__)
router = APIRouter()


def _get_product(product_id: int, user: TokenUser):
    product = ProductRepository().find_by_id(product_id)
    if product is None or (not user.is_admin and product.merchant_id != user.merchant_id):
        raise NotFoundError(f"Product {product_id} not found", code=ErrorCode.PRODUCT_NOT_FOUND)
    return product


def _merchant_outlet(outlet_id: Optional[int], merchant_id: int):
    """Given outlet (must belong to the merchant) or the merchant's default outlet"""
    repo = OutletRepository()
    if outlet_id is None:
        return repo.find_default(merchant_id)
    outlet = repo.find_by_id(outlet_id)
    if outlet is None or outlet.merchant_id != merchant_id:
        raise NotFoundError(f"Outlet {outlet_id} not found", code=ErrorCode.OUTLET_NOT_FOUND)
    return outlet


@router.get("/")
async def get_products(
    merchant_id: Optional[int] = Query(None, description="Merchant (admins may omit to list all)"),
    category_id: Optional[int] = Query(None, description="Filter by category"),
    outlet_id: Optional[int] = Query(None, description="Only products stocked at this outlet"),
    is_active: Optional[bool] = Query(None, description="Filter by active status"),
    search: Optional[str] = Query(None, description="Search by name or barcode"),
    limit: int = Query(100, ge=1, le=5000),
    offset: int = Query(0, ge=0),
    user: TokenUser = Depends(get_current_user)
):
    """Get products with optional filters"""
    try:
        scope = resolve_merchant_scope(user, merchant_id, required=False)
        products, total = ProductRepository().find_all(
            merchant_id=scope,
            category_id=category_id,
            outlet_id=outlet_id,
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
            "count": len(products),
            "data": [product.to_dict() for product in products]
        }

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching products: {str(e)}")


@router.get("/categories")
async def get_categories(
    merchant_id: Optional[int] = Query(None, description="Merchant (required for admins)"),
    user: TokenUser = Depends(get_current_user)
):
    try:
        scope = resolve_merchant_scope(user, merchant_id)
        categories = CategoryRepository().find_all(scope)
        return {"status": "success", "count": len(categories), "data": categories}

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching categories: {str(e)}")


@router.post("/categories", status_code=201)
async def create_category(
    name: str = Body(..., embed=True, min_length=1),
    merchant_id: Optional[int] = Query(None, description="Merchant (required for admins)"),
    user: TokenUser = Depends(require_role("OUTLET_ADMIN"))
):
    try:
        scope = resolve_merchant_scope(user, merchant_id)
        category_id = CategoryRepository().find_or_create(scope, name.strip())
        return {"status": "success", "data": {"id": category_id, "name": name.strip()}}

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error creating category: {str(e)}")


@router.get("/availability")
async def get_product_availability(
    product_id: int = Query(..., description="Product to check"),
    day: date = Query(..., alias="date", description="Day to check (YYYY-MM-DD)"),
    outlet_id: Optional[int] = Query(None, description="Outlet (required for admins)"),
    user: TokenUser = Depends(get_current_user)
):
    """Stock, rented, reserved and available units of a product on one day"""
    try:
        if user.is_admin:
            if outlet_id is None:
                raise ValidationError("outlet_id is required for admins")
            merchant_scope = None
        elif user.outlet_id is not None:
            outlet_id = user.outlet_id
            merchant_scope = user.merchant_id
        else:
            outlet = _merchant_outlet(outlet_id, user.merchant_id)
            if outlet is None:
                raise NotFoundError("Merchant has no outlet", code=ErrorCode.OUTLET_NOT_FOUND)
            outlet_id = outlet.id
            merchant_scope = user.merchant_id

        result = ProductAvailabilityService().check(product_id, outlet_id, day, merchant_id=merchant_scope)
        return {"status": "success", "data": result}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error checking availability: {str(e)}")


@router.get("/{product_id}")
async def get_product(product_id: int, user: TokenUser = Depends(get_current_user)):
    try:
        return {"status": "success", "data": _get_product(product_id, user).to_dict()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching product: {str(e)}")


@router.post("/", status_code=201)
async def create_product(
    data: ProductCreate,
    merchant_id: Optional[int] = Query(None, description="Merchant (required for admins)"),
    user: TokenUser = Depends(require_role("OUTLET_ADMIN"))
):
    """
    Create a product with its initial stock.

    Stock goes to the given outlet, or the merchant's default outlet;
    products without a category land in the default category.
    """
    try:
        scope = resolve_merchant_scope(user, merchant_id)
        if data.pricing_type not in PRICING_TYPES:
            raise ValidationError(f"Invalid pricing type '{data.pricing_type}'")

        SubscriptionService().ensure_can_perform(scope, "create")
        PlanLimitService().enforce(scope, "products")

        outlet = _merchant_outlet(data.outlet_id, scope)
        category_id = data.category_id or CategoryRepository().find_or_create_default(scope)

        product = ProductRepository().create(scope, data, category_id, outlet.id if outlet else None)
        logger.info(f"Product {product.id} created for merchant {scope}")
        return {"status": "success", "data": product.to_dict()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error creating product: {str(e)}")


@router.put("/{product_id}")
async def update_product(product_id: int, data: ProductUpdate,
                         user: TokenUser = Depends(require_role("OUTLET_ADMIN"))):
    try:
        product = _get_product(product_id, user)
        if data.pricing_type is not None and data.pricing_type not in PRICING_TYPES:
            raise ValidationError(f"Invalid pricing type '{data.pricing_type}'")
        SubscriptionService().ensure_can_perform(product.merchant_id, "update")

        updated = ProductRepository().update(product_id, data)
        return {"status": "success", "data": updated.to_dict()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error updating product: {str(e)}")


@router.delete("/{product_id}")
async def deactivate_product(product_id: int, user: TokenUser = Depends(require_role("OUTLET_ADMIN"))):
    try:
        product = _get_product(product_id, user)
        SubscriptionService().ensure_can_perform(product.merchant_id, "delete")
        ProductRepository().deactivate(product_id)
        return {"status": "success", "message": f"Product {product_id} deactivated"}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error deactivating product: {str(e)}")


@router.post("/{product_id}/stock")
async def adjust_stock(product_id: int, adjustment: StockAdjustment,
                       user: TokenUser = Depends(require_role("OUTLET_ADMIN"))):
    """Apply stock/renting deltas at one outlet; available is recomputed"""
    try:
        product = _get_product(product_id, user)
        _merchant_outlet(adjustment.outlet_id, product.merchant_id)
        SubscriptionService().ensure_can_perform(product.merchant_id, "update")

        stock = ProductRepository().adjust_stock(
            product_id,
            adjustment.outlet_id,
            stock_delta=adjustment.stock_delta,
            renting_delta=adjustment.renting_delta
        )
        return {"status": "success", "data": stock.model_dump()}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error adjusting stock: {str(e)}")
