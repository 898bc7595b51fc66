"""Analytics event Pydantic models"""
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from typing import Optional, Any


class EventCreateRequest(BaseModel):
    """Widget analytics event (public, no auth); fields are checked by the route"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: Optional[Any] = None
    project_id: Optional[Any] = Field(default=None, validation_alias=AliasChoices("projectId", "project_id"))
    microsite: Optional[Any] = None
    payload: Optional[Any] = None
    location: Optional[Any] = None
