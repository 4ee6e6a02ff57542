from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional
from pydantic import BaseModel, EmailStr, Field

ProspectStatus = Literal["new", "contacted", "qualified", "converted", "lost"]
SalesQuoteStatus = Literal["draft", "assigned", "sent", "accepted", "signed", "rejected"]

# Statuses that count towards earned / pending commission
SIGNED_STATUSES = ("accepted", "signed")
PENDING_STATUSES = ("sent", "assigned")
# Statuses still waiting to reach the prospect
UNSENT_STATUSES = ("draft", "assigned")


class ProspectCreate(BaseModel):
    full_name: str = Field(min_length=1)
    email: EmailStr
    phone: Optional[str] = None
    company_name: Optional[str] = None
    role: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None


class ProspectUpdate(BaseModel):
    full_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    company_name: Optional[str] = None
    role: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    status: Optional[ProspectStatus] = None


class Prospect(BaseModel):
    id: str
    sales_partner_id: str
    full_name: str
    email: str
    phone: Optional[str] = None
    company_name: Optional[str] = None
    role: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    status: ProspectStatus = "new"
    source: str = "sales_partner"
    created_at: datetime
    updated_at: Optional[datetime] = None


class SalesQuoteCreate(BaseModel):
    category_id: str
    plan_name: str
    addon_ids: List[str] = []
    prospect_id: Optional[str] = None
    custom_price: Optional[Decimal] = Field(None, ge=0)
    client_notes: Optional[str] = None
    internal_notes: Optional[str] = None


class SalesQuoteStatusUpdate(BaseModel):
    status: SalesQuoteStatus


class SalesQuote(BaseModel):
    id: str
    quote_number: Optional[str] = None
    sales_partner_id: str
    prospect_id: Optional[str] = None
    amount: Decimal
    status: SalesQuoteStatus = "draft"
    content: dict = {}
    created_at: datetime


class SalesPartner(BaseModel):
    id: str
    user_id: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    commission_rate: Optional[Decimal] = None


class SignedQuote(BaseModel):
    id: str
    client_name: str
    total_amount: Decimal
    commission_earned: Decimal
    signed_at: datetime


class SalesDashboard(BaseModel):
    prospects_count: int
    quotes_count: int
    quotes_accepted: int
    commission_rate: Decimal
    total_commission: Decimal
    pending_commission: Decimal
    recent_quotes: List[SalesQuote]
    signed_quotes: List[SignedQuote]
