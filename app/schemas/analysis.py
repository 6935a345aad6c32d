from typing import Optional, Dict, Any
from datetime import datetime
from pydantic import BaseModel, Field
from .base import BaseSchema, TimestampMixin

class UserResponse(BaseSchema, TimestampMixin):
    id: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None
    language_code: Optional[str] = None

class AnalysisResponse(BaseSchema):
    id: int
    user_id: int
    input_text: Optional[str] = None
    file_url: Optional[str] = None
    status: str
    raw_openai_response: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None

class HistoryEntry(BaseModel):
    analysis_id: int
    created_at: Optional[datetime] = None
    input_text: Optional[str] = None
    file_url: Optional[str] = None
    status: str
    recommendation_text: Optional[str] = Field(None, description="First recommendation for the analysis")
