from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


ClientStatus = Literal["potential", "active", "inactive", "archived"]
LeadStatus = Literal["new", "contacted", "qualified", "converted", "lost"]
LeadSource = Literal["manual", "inquiry", "referral", "website"]
InquiryType = Literal["inquiry", "quote_request", "referral"]
ServiceType = Literal[
    "cctv",
    "alarm",
    "access_control",
    "intercom",
    "cloud_storage",
    "monitoring",
    "fiber_installation",
    "maintenance",
]


class ClientCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    phone: str = Field(min_length=1, max_length=64)
    user_id: UUID | None = None
    lead_id: UUID | None = None
    account_manager_id: UUID | None = None
    company: str | None = Field(default=None, max_length=255)
    industry: str | None = Field(default=None, max_length=128)
    address: str | None = None
    status: ClientStatus = "potential"
    contract_value: Decimal | None = Field(default=None, ge=0)
    preferred_contact_method: str | None = Field(default=None, max_length=32)
    notes: str | None = None


class ClientUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, min_length=1, max_length=64)
    user_id: UUID | None = None
    account_manager_id: UUID | None = None
    company: str | None = Field(default=None, max_length=255)
    industry: str | None = Field(default=None, max_length=128)
    address: str | None = None
    status: ClientStatus | None = None
    contract_value: Decimal | None = Field(default=None, ge=0)
    preferred_contact_method: str | None = Field(default=None, max_length=32)
    notes: str | None = None


class ClientRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID | None
    lead_id: UUID | None
    account_manager_id: UUID | None
    name: str
    email: str
    phone: str
    company: str | None
    industry: str | None
    address: str | None
    status: str
    contract_value: Decimal | None
    preferred_contact_method: str | None
    notes: str | None = None
    created_at: datetime
    updated_at: datetime


class LeadCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    phone: str = Field(min_length=1, max_length=64)
    user_id: UUID | None = None
    source: LeadSource = "manual"
    company: str | None = Field(default=None, max_length=255)
    service_type: ServiceType | None = None
    address: str | None = None
    status: LeadStatus = "new"
    assigned_to_id: UUID | None = None
    notes: str | None = None
    estimated_value: Decimal | None = Field(default=None, ge=0)


class LeadUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, min_length=1, max_length=64)
    user_id: UUID | None = None
    company: str | None = Field(default=None, max_length=255)
    service_type: ServiceType | None = None
    address: str | None = None
    status: LeadStatus | None = None
    assigned_to_id: UUID | None = None
    notes: str | None = None
    estimated_value: Decimal | None = Field(default=None, ge=0)


class LeadRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID | None
    source: str
    inquiry_id: UUID | None
    name: str
    email: str
    phone: str
    company: str | None
    service_type: str | None
    address: str | None
    status: str
    assigned_to_id: UUID | None
    notes: str | None = None
    estimated_value: Decimal | None
    created_at: datetime
    updated_at: datetime


class LeadConvertRequest(BaseModel):
    account_manager_id: UUID | None = None
    status: ClientStatus = "active"


class InquiryCreate(BaseModel):
    type: InquiryType = "inquiry"
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    phone: str = Field(min_length=7, max_length=64)
    company: str | None = Field(default=None, max_length=255)
    service_type: ServiceType
    property_type: Literal["residential", "commercial", "industrial"] | None = None
    address: str = Field(min_length=1, max_length=500)
    description: str | None = Field(default=None, max_length=5000)
    urgency: Literal["low", "medium", "high", "urgent"] | None = None
    preferred_date: str | None = Field(default=None, max_length=32)
    referred_by: str | None = Field(default=None, max_length=255)


class InquiryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    type: str
    name: str
    email: str
    phone: str
    company: str | None
    service_type: str
    property_type: str | None
    address: str
    description: str | None
    urgency: str | None
    preferred_date: str | None
    referred_by: str | None
    status: str
    converted_lead_id: UUID | None
    created_at: datetime


class InquiryReceipt(BaseModel):
    id: UUID
    message: str
