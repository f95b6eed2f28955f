from pydantic import BaseModel, ConfigDict
from typing import Optional, Dict, Any


class BaseResponse(BaseModel):
    success: bool
    message: str
    data: Optional[Dict[str, Any]] = None
    model_config = ConfigDict(from_attributes=True)

class PaginatedResponse(BaseResponse):
    page: int
    per_page: int
    total_items: int
    total_pages: int
