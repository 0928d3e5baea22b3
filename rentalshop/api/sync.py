"""
Legacy Sync API Endpoints
Import customers, products and orders from the legacy rental POS

Callable by admins or by a scheduler holding X-Sync-Key. Every POST takes
an optional body with endpoint, token and entities; missing values fall
back to LEGACY_API_URL / LEGACY_API_TOKEN and all entities.

Author: TM3
Date: 2026-03-11
"""
from fastapi import APIRouter, HTTPException, Query, Body, Depends
from fastapi.encoders import jsonable_encoder
from fastapi.responses import StreamingResponse
from typing import Optional
from datetime import datetime
import io
import json
import logging

from rentalshop.core.auth import TokenUser, require_admin_or_sync_key
from rentalshop.core.errors import RentalShopError
from rentalshop.domain.sync import LegacySyncOptions, LegacyExportRequest
from rentalshop.repositories.sync_repository import SyncRepository
from rentalshop.services.legacy_sync_service import LegacySyncService, build_connector

logger = logging.getLogger(__name__)
router = APIRouter()


def _sync_service(options: Optional[LegacySyncOptions]) -> LegacySyncService:
    """Service bound to the request's endpoint/token when either is given"""
    if options is not None and (options.endpoint or options.token):
        return LegacySyncService(connector=build_connector(options.endpoint, options.token))
    return LegacySyncService()


@router.post("/test-connection")
async def test_connection(
    options: Optional[LegacySyncOptions] = Body(None),
    caller: Optional[TokenUser] = Depends(require_admin_or_sync_key)
):
    """Fetch customers once and report whether the legacy server answers"""
    try:
        connector = build_connector(options.endpoint, options.token) if options else build_connector()
        result = await connector.test_connection()
        return {
            "status": "success" if result["success"] else "error",
            "data": result,
            "logs": connector.get_logs()
        }

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error testing legacy connection: {str(e)}")


@router.post("/preview")
async def preview_sync(
    merchant_id: int = Query(..., description="Merchant to import into"),
    options: Optional[LegacySyncOptions] = Body(None),
    caller: Optional[TokenUser] = Depends(require_admin_or_sync_key)
):
    """Counts and first transformed samples of each entity, nothing is written"""
    try:
        entities = options.entities if options else None
        result = await _sync_service(options).preview(merchant_id, entities=entities)
        return {"status": "success", "data": result}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error previewing legacy sync: {str(e)}")


@router.post("/execute")
async def execute_sync(
    merchant_id: int = Query(..., description="Merchant to import into"),
    validate_images: bool = Query(False, description="Drop product image URLs that do not resolve"),
    options: Optional[LegacySyncOptions] = Body(None),
    caller: Optional[TokenUser] = Depends(require_admin_or_sync_key)
):
    """
    Run the sync in a new session

    On an unexpected failure everything created in the session is
    deleted and the session is marked FAILED.
    """
    try:
        entities = options.entities if options else None
        logger.info(f"Legacy sync for merchant {merchant_id} requested by "
                    f"{caller.email if caller else 'sync key'}")
        result = await _sync_service(options).execute(
            merchant_id, entities=entities, validate_images=validate_images
        )
        return {"status": "success", "data": result}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error executing legacy sync: {str(e)}")


@router.post("/export")
async def export_legacy_data(
    export_request: Optional[LegacyExportRequest] = Body(None),
    caller: Optional[TokenUser] = Depends(require_admin_or_sync_key)
):
    """
    Transformed legacy data as JSON, nothing is written

    With download=true the export is returned as a file attachment.
    """
    try:
        export_request = export_request or LegacyExportRequest()
        result = await _sync_service(export_request).export(
            export_request.entities, preview=export_request.preview
        )

        if not export_request.download:
            return {"status": "success", "data": result}

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        filename = f"legacy_export_{'_'.join(result['entities'])}_{timestamp}.json"
        content = json.dumps(jsonable_encoder(result), ensure_ascii=False, indent=2).encode("utf-8")

        return StreamingResponse(
            io.BytesIO(content),
            media_type="application/json",
            headers={
                "Content-Disposition": f"attachment; filename={filename}"
            }
        )

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error exporting legacy data: {str(e)}")


@router.get("/sessions")
async def get_sync_sessions(
    merchant_id: Optional[int] = Query(None, description="Filter by merchant"),
    limit: int = Query(20, ge=1, le=200),
    caller: Optional[TokenUser] = Depends(require_admin_or_sync_key)
):
    try:
        sessions = SyncRepository().find_sessions(merchant_id=merchant_id, limit=limit)
        return {
            "status": "success",
            "count": len(sessions),
            "data": [session.model_dump() for session in sessions]
        }

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching sync sessions: {str(e)}")


@router.get("/sessions/{session_id}")
async def get_sync_session(session_id: int, caller: Optional[TokenUser] = Depends(require_admin_or_sync_key)):
    try:
        session = LegacySyncService().get_session(session_id)
        records = SyncRepository().find_records(session_id)
        return {
            "status": "success",
            "data": {
                **session.model_dump(),
                "records": [record.model_dump() for record in records]
            }
        }

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching sync session: {str(e)}")


@router.post("/sessions/{session_id}/rollback")
async def rollback_sync_session(session_id: int, caller: Optional[TokenUser] = Depends(require_admin_or_sync_key)):
    """Delete every record the session created (orders, then products, then customers)"""
    try:
        result = LegacySyncService().rollback(session_id)
        return {"status": "success", "data": result}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error rolling back sync session: {str(e)}")


@router.post("/sessions/{session_id}/resume")
async def resume_sync_session(
    session_id: int,
    validate_images: bool = Query(False, description="Drop product image URLs that do not resolve"),
    options: Optional[LegacySyncOptions] = Body(None),
    caller: Optional[TokenUser] = Depends(require_admin_or_sync_key)
):
    """
    Continue a FAILED or PARTIALLY_COMPLETED session

    Records the session already created are skipped. The endpoint stored
    with the session is used unless the body gives another one.
    """
    try:
        result = await LegacySyncService().resume(
            session_id,
            validate_images=validate_images,
            endpoint=options.endpoint if options else None,
            token=options.token if options else None,
        )
        return {"status": "success", "data": result}

    except HTTPException:
        raise
    except RentalShopError as e:
        raise e.to_http_exception()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error resuming sync session: {str(e)}")
