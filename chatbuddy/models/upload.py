"""Upload Pydantic models"""
from pydantic import BaseModel


class UploadResponse(BaseModel):
    success: bool
    url: str
    filename: str
    originalName: str
    size: int
