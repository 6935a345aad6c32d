from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Optional

class BaseSchema(BaseModel):
    """Read model built from ORM rows."""
    model_config = ConfigDict(from_attributes=True)

class TimestampMixin(BaseModel):
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class TelegramModel(BaseModel):
    """Bot API object. Unknown fields are ignored so new API additions do not break parsing."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)
