from datetime import date, datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

QuoteRequestStatus = Literal["pending", "in_progress", "completed", "cancelled"]
CallBookingStatus = Literal["pending", "confirmed", "completed", "cancelled"]
ClientStage = Literal["lead", "prospect", "client", "lost"]
CallDuration = Literal[15, 30, 60]


class QuoteRequestCreate(BaseModel):
    # The public form posts camelCase keys
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    phone: Optional[str] = None
    business_type: Optional[str] = Field(None, alias="businessType")
    services: List[str] = Field(min_length=1)
    project_details: Optional[str] = Field(None, alias="projectDetails")
    budget: Optional[str] = None
    timeline: Optional[str] = None
    consent_given: bool = Field(False, alias="consentGiven")

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Le nom est obligatoire")
        return v


class QuoteRequest(BaseModel):
    id: str
    name: str
    email: str
    phone: Optional[str] = None
    business_type: Optional[str] = None
    services: List[str] = []
    project_details: Optional[str] = None
    budget: Optional[str] = None
    timeline: Optional[str] = None
    status: str = "pending"
    sales_partner_id: Optional[str] = None
    created_at: datetime


class QuoteRequestStatusUpdate(BaseModel):
    status: QuoteRequestStatus


class CallBookingCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    phone: str = Field(min_length=1)
    booking_date: date = Field(alias="bookingDate")
    time_slot: str = Field(alias="timeSlot", pattern=r"^\d{2}:\d{2}$")
    duration: CallDuration = 30
    notes: Optional[str] = None


class CallBooking(BaseModel):
    id: str
    name: str
    email: str
    phone: str
    booking_date: date
    time_slot: str
    duration: int
    notes: Optional[str] = None
    status: str = "pending"
    created_at: datetime


class CallBookingNote(BaseModel):
    call_booking_id: str
    call_outcome: Optional[str] = None
    call_summary: Optional[str] = None
    next_actions: Optional[str] = None
    internal_notes: Optional[str] = None


class CallBookingNoteUpdate(BaseModel):
    call_outcome: Optional[str] = None
    call_summary: Optional[str] = None
    next_actions: Optional[str] = None
    internal_notes: Optional[str] = None


class ClientStatus(BaseModel):
    client_email: str
    status: ClientStage = "lead"
    notes: Optional[str] = None
    updated_at: Optional[datetime] = None


class ClientStatusUpdate(BaseModel):
    status: ClientStage
    notes: Optional[str] = None


class Client(BaseModel):
    """Derived per-email aggregate of quote requests and call bookings."""
    email: str
    name: str
    phone: Optional[str] = None
    quotes: List[QuoteRequest] = []
    calls: List[CallBooking] = []
    first_contact: datetime
    last_contact: datetime
    status: ClientStage = "lead"
    status_notes: Optional[str] = None
    sales_partner_name: Optional[str] = None


class ClientStats(BaseModel):
    total_clients: int
    leads: int
    prospects: int
    clients_won: int
    lost: int
