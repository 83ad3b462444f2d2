from pydantic import BaseModel, Field
from typing import Dict

class SubscriberStatsResponse(BaseModel):
    total: int
    by_protocol: Dict[str, int] = Field(default_factory=dict)
