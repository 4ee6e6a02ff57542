from pydantic import BaseModel, EmailStr
from typing import Optional, Literal

Role = Literal["admin", "sales", "user"]

class CurrentUser(BaseModel):
    id: str
    email: Optional[str] = None
    role: Optional[Role] = None

class MeResponse(BaseModel):
    id: str
    email: Optional[str] = None
    role: Optional[Role] = None
    landing: str

class InviteRequest(BaseModel):
    email: EmailStr
    full_name: Optional[str] = None
    role: Role = "sales"
    commission_rate: Optional[float] = None  # sales partners only

class InviteResponse(BaseModel):
    user_id: str
    email: EmailStr
    role: Role
