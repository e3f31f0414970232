from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class DataType(str, Enum):
    CRIME = "crime"
    PLANNING = "planning"
    SPENDING = "spending"
    POSTCODE = "postcode"


class DataResponse(BaseModel):
    data: Any
    type: DataType
    cached: bool = True
    timestamp: datetime


class RefreshRequest(BaseModel):
    url: str = Field(..., min_length=1, max_length=2048)
    params: dict[str, str | int | float] = Field(default_factory=dict)


class RefreshResponse(BaseModel):
    message: str
    key: str
    data: Any


class CacheStats(BaseModel):
    count: int
    expired_count: int
    oldest: int | None = None
    newest: int | None = None
    byte_size: int
    max_size: int
    default_ttl: int
