"""Chat session listing"""
from fastapi import APIRouter, HTTPException, Depends, Query
from typing import Optional
import logging

from chatbuddy.database import get_storage
from chatbuddy.models.lead import PaginatedResponse
from chatbuddy.storage.base import Storage, StorageError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=PaginatedResponse)
async def list_chat_sessions(
    microsite: Optional[str] = None,
    lead_id: Optional[str] = Query(default=None, alias="leadId"),
    project_id: Optional[str] = Query(default=None, alias="projectId"),
    limit: Optional[str] = "50",
    skip: Optional[str] = "0",
    storage: Storage = Depends(get_storage),
):
    try:
        items, total = storage.list_chat_sessions(
            microsite=microsite or None,
            lead_id=lead_id or None,
            project_id=project_id or None,
            limit=limit,
            skip=skip,
        )
        return {"items": items, "total": total}
    except StorageError as e:
        logger.error(f"Failed to list chat sessions: {e}")
        raise HTTPException(status_code=500, detail="Failed to list chat sessions")
