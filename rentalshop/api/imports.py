"""
Import API Endpoints
Bulk customers/products from CSV or Excel, and admin JSON data imports
"""
from fastapi import APIRouter, UploadFile, File, Form, HTTPException, Query, Depends
from fastapi.responses import StreamingResponse
from typing import Optional
from datetime import datetime
import logging

from rentalshop.core.auth import TokenUser, require_admin, require_role, resolve_merchant_scope
from rentalshop.core.errors import RentalShopError
from rentalshop.services.import_service import ImportService, build_template
from rentalshop.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)
router = APIRouter()

SPREADSHEET_EXTENSIONS = ('.csv', '.xlsx', '.xls')


def _check_spreadsheet(file: UploadFile) -> None:
    if not (file.filename or "").lower().endswith(SPREADSHEET_EXTENSIONS):
        raise HTTPException(
            status_code=400,
            detail="File must be CSV or Excel (.csv, .xlsx or .xls)"
        )


@router.post("/json")
async def import_json(
    file: UploadFile = File(..., description="JSON export (.json, max 10MB)"),
    merchant_id: int = Form(...),
    entity_type: Optional[str] = Form(None),
    validate_only: bool = Form(False),
    user: TokenUser = Depends(require_admin)
):
    """
    Import customers, products or orders from a JSON export (ADMIN only)

    The entity comes from entity_type, the single key under "data",
    or the file name (customers*.json, products*.json, orders*.json).
    """
    try:
        contents = await file.read()
        result = ImportService().import_json(
            merchant_id,
            contents,
            file.filename,
            entity_type=entity_type,
            validate_only=validate_only
        )
        logger.info(f"JSON import {file.filename} for merchant {merchant_id} by {user.email}")
        return {"status": "success", "data": result}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error importing JSON file: {str(e)}")


@router.get("/{entity}/template")
async def download_template(entity: str, user: TokenUser = Depends(require_role("OUTLET_ADMIN"))):
    """Excel template with the importable columns for customers or products"""
    try:
        excel_file = build_template(entity)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        filename = f"{entity}_import_template_{timestamp}.xlsx"

        return StreamingResponse(
            excel_file,
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers={
                "Content-Disposition": f"attachment; filename={filename}"
            }
        )

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error generating template: {str(e)}")


@router.post("/{entity}/preview")
async def preview_import(
    entity: str,
    file: UploadFile = File(...),
    user: TokenUser = Depends(require_role("OUTLET_ADMIN"))
):
    """
    Validate an upload WITHOUT writing anything

    Returns row counts, duplicates, errors and the first valid rows.
    """
    try:
        _check_spreadsheet(file)
        contents = await file.read()

        preview = ImportService().preview(contents, file.filename, entity)
        return {"status": "success", "data": preview}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error reading file: {str(e)}")


@router.post("/{entity}")
async def import_file(
    entity: str,
    file: UploadFile = File(...),
    merchant_id: Optional[int] = Query(None, description="Merchant (required for admins)"),
    user: TokenUser = Depends(require_role("OUTLET_ADMIN"))
):
    """Create the valid, non-duplicate rows of an upload"""
    try:
        _check_spreadsheet(file)
        scope = resolve_merchant_scope(user, merchant_id)
        SubscriptionService().ensure_can_perform(scope, "create")

        contents = await file.read()
        results = ImportService().import_file(scope, contents, file.filename, entity)
        return {"status": "success", "data": results}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error processing file: {str(e)}")
