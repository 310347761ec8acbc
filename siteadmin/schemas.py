"""
Pydantic schemas for JSON request bodies.

Fields are optional on purpose: missing values are reported by the domain
functions with the 400 envelope rather than FastAPI's 422.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel


class LoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class ServicesUpdateRequest(BaseModel):
    services: Any = None


class ServicePatchRequest(BaseModel):
    icon: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class AboutUpdateRequest(BaseModel):
    section: Optional[str] = None
    content: Any = None


class AboutUpdateAllRequest(BaseModel):
    sections: Any = None


class ContactUpdateRequest(BaseModel):
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    hours: Optional[str] = None
    mapsLink: Optional[str] = None
    whatsapp: Optional[str] = None
