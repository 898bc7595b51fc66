"""Widget analytics events"""
from fastapi import APIRouter, HTTPException, Depends, Query
from fastapi.responses import JSONResponse
from typing import Optional
import logging

from chatbuddy.database import get_storage
from chatbuddy.models.event import EventCreateRequest
from chatbuddy.services.sanitize import sanitize_metadata, sanitize_microsite
from chatbuddy.storage.base import Storage, StorageError, parse_datetime, parse_end_date

logger = logging.getLogger(__name__)
router = APIRouter()

MAX_EVENT_TYPE_LENGTH = 100


@router.post("", status_code=202)
async def record_event(request: EventCreateRequest, storage: Storage = Depends(get_storage)):
    """
    Record a widget event (public, no auth)

    Always answers 202, even when the event is dropped.
    """
    event_type = str(request.type or "").strip()[:MAX_EVENT_TYPE_LENGTH]
    if not event_type:
        return JSONResponse(status_code=202, content={"accepted": False})

    try:
        storage.record_event({
            "type": event_type,
            "project_id": str(request.project_id or "").strip()[:255] or None,
            "microsite": sanitize_microsite(request.microsite),
            "payload": sanitize_metadata(request.payload) or {},
            "location": request.location if isinstance(request.location, dict) else None,
        })
    except StorageError as e:
        logger.error(f"Failed to record event {event_type}: {e}")
        return JSONResponse(status_code=202, content={"accepted": False})

    return {"accepted": True}


@router.get("/summary")
async def event_summary(storage: Storage = Depends(get_storage)):
    try:
        return storage.event_summary()
    except StorageError as e:
        logger.error(f"Failed to summarize events: {e}")
        raise HTTPException(status_code=500, detail="Failed to summarize events")


@router.get("")
async def list_events(
    type: Optional[str] = None,
    project_id: Optional[str] = Query(default=None, alias="projectId"),
    microsite: Optional[str] = None,
    start_date: Optional[str] = Query(default=None, alias="startDate"),
    end_date: Optional[str] = Query(default=None, alias="endDate"),
    limit: Optional[str] = "100",
    skip: Optional[str] = "0",
    storage: Storage = Depends(get_storage),
):
    try:
        items = storage.list_events(
            type=type or None,
            project_id=project_id or None,
            microsite=microsite or None,
            start_date=parse_datetime(start_date),
            end_date=parse_end_date(end_date),
            limit=limit,
            skip=skip,
        )
        return {"items": items}
    except StorageError as e:
        logger.error(f"Failed to list events: {e}")
        raise HTTPException(status_code=500, detail="Failed to list events")
