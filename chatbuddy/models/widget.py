"""Widget config Pydantic models"""
from pydantic import BaseModel
from typing import Optional


class ApiKeyStatus(BaseModel):
    configured: bool
    keyLength: int
    message: str
    hint: Optional[str] = None
