from datetime import datetime
from typing import Literal

from pydantic import BaseModel


class LocationCreateRequest(BaseModel):
    code: str
    name: str
    kind: Literal["WAREHOUSE", "OUTLET"]


class LocationActionRequest(BaseModel):
    action: Literal["activate", "deactivate"]


class LocationResponse(BaseModel):
    id: str
    code: str
    name: str
    kind: str
    is_active: bool
    created_at: datetime


class LocationListResponse(BaseModel):
    rows: list[LocationResponse]
