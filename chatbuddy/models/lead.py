"""Lead and chat-session Pydantic models"""
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any


class LeadCreateRequest(BaseModel):
    """
    Lead submitted by the widget (public, no auth)

    Fields are loosely typed; the route normalizes and rejects them with
    400s of its own.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    phone: Optional[Any] = None
    bhk: Optional[Any] = None
    bhk_type: Optional[Any] = Field(
        default=None, validation_alias=AliasChoices("bhkType", "bhk_type")
    )
    microsite: Optional[Any] = None
    metadata: Optional[Any] = None
    conversation: Optional[Any] = None
    location: Optional[Dict[str, Any]] = None


class LeadCreateResponse(BaseModel):
    message: str
    lead: Dict[str, Any]


class PaginatedResponse(BaseModel):
    items: List[Dict[str, Any]]
    total: int
