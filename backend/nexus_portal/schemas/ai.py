from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field

AssistantRequestType = Literal[
    "insights",
    "custom_query",
    "estimate_price",
    "enhance_text",
    "generate_client_summary",
    "draft_reply",
]

class AssistantRequest(BaseModel):
    type: AssistantRequestType
    query: Optional[str] = None
    data: Dict[str, Any] = {}


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str = Field(min_length=1, max_length=4000)


class ChatRequest(BaseModel):
    messages: List[ChatMessage] = Field(min_length=1, max_length=50)
