from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional
from datetime import datetime, date

from ..utils.sanitization import sanitize_text
from .booking_draft import Gender


class TravelerProfileCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    date_of_birth: date
    gender: Gender
    email: Optional[EmailStr] = None
    phone_country_code: Optional[str] = Field(None, max_length=8)
    phone_number: Optional[str] = Field(None, max_length=32)
    passport_number: Optional[str] = Field(None, max_length=50)
    passport_issuing_country: Optional[str] = Field(None, min_length=2, max_length=2)
    passport_expiry_date: Optional[date] = None

    @field_validator('first_name', 'last_name', 'passport_number', mode='before')
    @classmethod
    def sanitize_text_fields(cls, v):
        return sanitize_text(v)


class TravelerProfileResponse(BaseModel):
    id: str
    first_name: str
    last_name: str
    date_of_birth: date
    gender: str
    email: Optional[str] = None
    phone_country_code: Optional[str] = None
    phone_number: Optional[str] = None
    passport_number: Optional[str] = None
    passport_issuing_country: Optional[str] = None
    passport_expiry_date: Optional[date] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
