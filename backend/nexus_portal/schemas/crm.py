from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional
from pydantic import BaseModel, EmailStr, Field, field_validator

InvoiceStatus = Literal["draft", "sent", "paid", "overdue", "cancelled"]
OpportunityStage = Literal["prospecting", "qualification", "proposal", "negotiation", "closed_won", "closed_lost"]
OpportunitySource = Literal["website", "referral", "cold_call", "linkedin", "event", "other"]
Priority = Literal["low", "medium", "high", "urgent"]
ProjectStatus = Literal["planned", "in_progress", "review", "delivered", "closed"]
TaskColumn = Literal["todo", "in_progress", "done"]

# ------------------------------------------------------------
# Invoices
# ------------------------------------------------------------

class InvoiceItemIn(BaseModel):
    description: str = Field(min_length=1)
    quantity: Decimal = Field(gt=0)
    unit_price: Decimal = Field(ge=0)


class InvoiceItem(InvoiceItemIn):
    id: Optional[str] = None
    invoice_id: Optional[str] = None
    total: Decimal
    order_index: int = 0


class InvoiceCreate(BaseModel):
    project_id: Optional[str] = None
    client_email: EmailStr
    client_name: str = Field(min_length=1)
    client_address: Optional[str] = None
    issue_date: date
    due_date: date
    tax_rate: Decimal = Field(Decimal("20"), ge=0, le=100)
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    items: List[InvoiceItemIn] = Field(min_length=1)


class InvoiceUpdate(BaseModel):
    client_name: Optional[str] = Field(None, min_length=1)
    client_address: Optional[str] = None
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    items: Optional[List[InvoiceItemIn]] = Field(None, min_length=1)

    # omitted means unchanged; an explicit null would clear a NOT NULL column
    @field_validator("client_name", "issue_date", "due_date", "tax_rate", "items")
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError("Ce champ ne peut pas être vide")
        return v


class InvoiceStatusUpdate(BaseModel):
    status: InvoiceStatus


class Invoice(BaseModel):
    id: str
    project_id: Optional[str] = None
    invoice_number: str
    client_email: str
    client_name: str
    client_address: Optional[str] = None
    issue_date: date
    due_date: date
    amount: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    status: InvoiceStatus = "draft"
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    items: List[InvoiceItem] = []

# ------------------------------------------------------------
# Opportunities
# ------------------------------------------------------------

class OpportunityCreate(BaseModel):
    quote_request_id: Optional[str] = None
    client_email: EmailStr
    client_name: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: Optional[str] = None
    probability: int = Field(10, ge=0, le=100)
    amount: Optional[Decimal] = Field(None, ge=0)
    expected_close_date: Optional[date] = None
    source: OpportunitySource = "website"
    tags: List[str] = []
    priority: Priority = "medium"
    assigned_to: Optional[str] = None


class OpportunityUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    probability: Optional[int] = Field(None, ge=0, le=100)
    amount: Optional[Decimal] = Field(None, ge=0)
    expected_close_date: Optional[date] = None
    tags: Optional[List[str]] = None
    priority: Optional[Priority] = None
    assigned_to: Optional[str] = None


class OpportunityStageUpdate(BaseModel):
    stage: OpportunityStage
    lost_reason: Optional[str] = None


class Opportunity(BaseModel):
    id: str
    quote_request_id: Optional[str] = None
    client_email: str
    client_name: str
    name: str
    description: Optional[str] = None
    stage: OpportunityStage = "prospecting"
    probability: int = 10
    amount: Optional[Decimal] = None
    expected_close_date: Optional[date] = None
    actual_close_date: Optional[date] = None
    lost_reason: Optional[str] = None
    assigned_to: Optional[str] = None
    source: OpportunitySource = "website"
    tags: List[str] = []
    priority: Priority = "medium"
    created_at: datetime
    updated_at: datetime


class PipelineStats(BaseModel):
    total_opportunities: int
    total_value: Decimal
    weighted_value: Decimal
    won_count: int
    won_value: Decimal
    lost_count: int
    avg_deal_size: Decimal
    conversion_rate: float

# ------------------------------------------------------------
# Projects
# ------------------------------------------------------------

class ProjectCreate(BaseModel):
    client_email: EmailStr
    quote_id: Optional[str] = None
    name: str = Field(min_length=1)
    description: Optional[str] = None
    start_date: Optional[date] = None
    expected_end_date: Optional[date] = None
    budget: Optional[Decimal] = Field(None, ge=0)


class ProjectUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[date] = None
    expected_end_date: Optional[date] = None
    budget: Optional[Decimal] = Field(None, ge=0)
    spent: Optional[Decimal] = Field(None, ge=0)


class ProjectStatusUpdate(BaseModel):
    status: ProjectStatus


class Project(BaseModel):
    id: str
    client_email: str
    quote_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    status: ProjectStatus = "planned"
    start_date: Optional[date] = None
    expected_end_date: Optional[date] = None
    actual_end_date: Optional[date] = None
    budget: Optional[Decimal] = None
    spent: Optional[Decimal] = None
    created_at: datetime
    updated_at: datetime

# ------------------------------------------------------------
# Tasks (kanban)
# ------------------------------------------------------------

class TaskCreate(BaseModel):
    content: str = Field(min_length=1, max_length=500)
    column_id: TaskColumn = "todo"


class TaskMove(BaseModel):
    column_id: TaskColumn


class Task(BaseModel):
    id: str
    content: str
    column_id: TaskColumn
    created_at: datetime
