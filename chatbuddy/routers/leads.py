"""Lead capture and listing endpoints"""
from fastapi import APIRouter, HTTPException, Depends, Query
from typing import Any, Dict, Optional
import logging

from chatbuddy.database import get_storage
from chatbuddy.middleware.rate_limit import rate_limit
from chatbuddy.models.lead import LeadCreateRequest, LeadCreateResponse, PaginatedResponse
from chatbuddy.services.bhk import normalize_bhk_preference
from chatbuddy.services.phone import normalize_phone
from chatbuddy.services.sanitize import sanitize_conversation, sanitize_metadata, sanitize_microsite
from chatbuddy.storage.base import Storage, StorageError, parse_datetime, parse_end_date

logger = logging.getLogger(__name__)
router = APIRouter()


def _phone_metadata(metadata: Optional[Dict[str, Any]], phone_result) -> Dict[str, Any]:
    """Fill phone country fields the client did not send"""
    merged = dict(metadata or {})
    country = phone_result.country
    for key, value in (
        ("phoneCountry", country.name),
        ("phoneCountryCode", country.country_code),
        ("phoneDialCode", country.code),
        ("phoneSubscriber", phone_result.subscriber),
    ):
        if merged.get(key) is None:
            merged[key] = value
    return merged


def _lead_location(metadata: Optional[Dict[str, Any]], fallback: Optional[Dict[str, Any]]):
    if metadata:
        if isinstance(metadata.get("location"), dict):
            return metadata["location"]
        visitor = metadata.get("visitor")
        if isinstance(visitor, dict) and isinstance(visitor.get("location"), dict):
            return visitor["location"]
    return fallback


@router.post("", status_code=201, response_model=LeadCreateResponse, dependencies=[Depends(rate_limit("leads"))])
async def create_lead(request: LeadCreateRequest, storage: Storage = Depends(get_storage)):
    """Create a lead from the widget, plus its chat session and lead_submitted event"""
    microsite = sanitize_microsite(request.microsite)
    if not microsite:
        raise HTTPException(status_code=400, detail="Missing or invalid microsite")

    metadata = sanitize_metadata(request.metadata)
    conversation = sanitize_conversation(request.conversation)

    preference = normalize_bhk_preference(request.bhk, request.bhk_type)
    if preference is None:
        raise HTTPException(status_code=400, detail="Invalid or missing BHK preference")

    raw_phone = str(request.phone).strip() if request.phone is not None else ""
    phone = None
    if raw_phone:
        phone_result = normalize_phone(raw_phone)
        if phone_result.error:
            raise HTTPException(status_code=400, detail=phone_result.error)
        phone = phone_result.value
        metadata = _phone_metadata(metadata, phone_result)

    location = _lead_location(metadata, request.location)

    try:
        lead = storage.create_lead({
            "phone": phone,
            "bhk": preference.numeric,
            "bhk_type": preference.type,
            "microsite": microsite,
            "metadata": metadata,
            "conversation": conversation,
            "location": location,
        })
    except StorageError as e:
        logger.error(f"Failed to create lead: {e}")
        raise HTTPException(status_code=500, detail="Failed to create lead")

    try:
        storage.create_chat_session({
            "microsite": microsite,
            "project_id": (metadata or {}).get("projectId"),
            "lead_id": lead["id"],
            "phone": phone or raw_phone or None,
            "bhk_type": preference.type,
            "conversation": conversation,
            "metadata": metadata,
            "location": location,
        })
    except StorageError as e:
        logger.error(f"Failed to store chat session for lead {lead['id']}: {e}")

    payload = {"leadId": lead["id"], "bhkType": preference.type}
    if preference.numeric is not None:
        payload["bhk"] = preference.numeric

    try:
        storage.record_event({
            "type": "lead_submitted",
            "project_id": microsite,
            "microsite": microsite,
            "payload": payload,
            "location": location,
        })
    except StorageError as e:
        logger.error(f"Failed to record lead_submitted event for lead {lead['id']}: {e}")

    logger.info(f"Lead {lead['id']} created for {microsite} ({preference.type})")
    return {"message": "Lead created", "lead": lead}


@router.get("", response_model=PaginatedResponse)
async def list_leads(
    microsite: Optional[str] = None,
    search: Optional[str] = None,
    status: Optional[str] = None,
    start_date: Optional[str] = Query(default=None, alias="startDate"),
    end_date: Optional[str] = Query(default=None, alias="endDate"),
    limit: Optional[str] = "50",
    skip: Optional[str] = "0",
    storage: Storage = Depends(get_storage),
):
    """List leads, newest first"""
    try:
        items, total = storage.list_leads(
            microsite=microsite or None,
            search=search or None,
            start_date=parse_datetime(start_date),
            end_date=parse_end_date(end_date),
            status=status or None,
            limit=limit,
            skip=skip,
        )
        return {"items": items, "total": total}
    except StorageError as e:
        logger.error(f"Failed to fetch leads: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch leads")
