from pydantic import BaseModel, EmailStr, Field
from typing import Optional


# Request schemas
class RequestOTPRequest(BaseModel):
    email: EmailStr = Field(..., description="Registered user email")

    class Config:
        json_schema_extra = {
            "example": {
                "email": "user@example.com"
            }
        }


class VerifyOTPRequest(BaseModel):
    email: EmailStr = Field(..., description="Registered user email")
    otp: str = Field(..., min_length=1, max_length=12, description="Code received by email")

    class Config:
        json_schema_extra = {
            "example": {
                "email": "user@example.com",
                "otp": "123456"
            }
        }


# Response schemas
class MessageResponse(BaseModel):
    status: str = "success"
    message: str


class AuthUser(BaseModel):
    id: int
    email: str
    name: Optional[str] = None
    role: str


class VerifyOTPResponse(BaseModel):
    status: str = "success"
    message: str
    token: str
    token_type: str = "Bearer"
    expires_in: int
    user: AuthUser
