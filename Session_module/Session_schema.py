"""
Wire schemas for page tracking, session end and session analytics.
Keys are camelCase on the wire; snake_case is accepted on input too.
"""
from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Optional, List
from datetime import datetime

from Login_module.Utils.datetime_utils import to_ist
from .session_enums import SessionEndReason


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


# Request schemas
class PageViewStartRequest(CamelModel):
    session_token: str = Field(..., min_length=1, max_length=255)
    page_path: str = Field(..., min_length=1, max_length=500)
    page_title: Optional[str] = Field(None, max_length=255)
    referrer: Optional[str] = Field(None, max_length=500)

    class Config:
        json_schema_extra = {
            "example": {
                "sessionToken": "session_1718000000000_k3j9x2a1b",
                "pagePath": "/leads",
                "pageTitle": "Leads",
                "referrer": "/"
            }
        }


class PageViewEndRequest(CamelModel):
    page_view_id: int
    exit_time: Optional[datetime] = None
    duration: Optional[int] = Field(None, ge=0, description="Client-side estimate, recomputed by the server")
    scroll_depth: Optional[float] = 0
    interactions: Optional[int] = Field(0, ge=0)
    token: Optional[str] = Field(None, description="Credential for transports that cannot set headers")


class PageViewUpdateRequest(CamelModel):
    page_view_id: int
    interactions: Optional[int] = Field(None, ge=0)
    action: Optional[str] = Field(None, max_length=100)


class SessionEndRequest(CamelModel):
    reason: SessionEndReason
    timestamp: Optional[datetime] = None
    session_duration: Optional[int] = None
    token: Optional[str] = None
    session_token: Optional[str] = None

    @field_validator("session_duration")
    @classmethod
    def non_negative_duration(cls, v):
        if v is not None and v < 0:
            return 0
        return v


# Response schemas
class MessageResponse(BaseModel):
    status: str = "success"
    message: str


class PageViewStartResponse(CamelModel):
    page_view_id: int
    session_id: int


class PageViewOut(CamelModel):
    id: int
    session_id: int
    user_id: int
    page_path: str
    page_title: Optional[str] = None
    entry_time: datetime
    exit_time: Optional[datetime] = None
    duration: Optional[int] = None
    scroll_depth: float = 0
    interactions: int = 0
    referrer: Optional[str] = None
    last_action: Optional[str] = None

    @field_validator("entry_time", "exit_time")
    @classmethod
    def as_ist(cls, v):
        return to_ist(v)


class SessionOut(CamelModel):
    id: int
    user_id: int
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    session_token: str
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: Optional[int] = None
    total_pages: int = 0
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    browser_name: Optional[str] = None
    device_type: Optional[str] = None
    operating_system: Optional[str] = None
    end_reason: Optional[str] = None
    page_views: List[PageViewOut] = []

    @field_validator("start_time", "end_time")
    @classmethod
    def as_ist(cls, v):
        return to_ist(v)
