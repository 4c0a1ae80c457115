# services/activation/schemas.py
from typing import Optional

from pydantic import BaseModel, ConfigDict


class AccessRequest(BaseModel):
    """Body of ``POST /api/request``"""
    device_id: str
    model: str
    android_version: str
    sdk_version: int


class CodeVerificationRequest(AccessRequest):
    """Body of ``POST /api/verify``"""
    code: str


class AccessResponse(BaseModel):
    """Reply to a request or code verification"""
    model_config = ConfigDict(extra="ignore")

    success: bool = True
    approved: bool = False
    message: Optional[str] = None


class StatusResponse(BaseModel):
    """Reply to ``GET /api/status``"""
    model_config = ConfigDict(extra="ignore")

    approved: bool = False
    pending: bool = False
    rejected: bool = False
    paused: bool = False
    message: Optional[str] = None
