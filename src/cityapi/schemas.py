from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class HealthStatus(BaseModel):
    status: str = Field("OK", description="Liveness indicator")


class OkResponse(BaseModel):
    ok: bool = Field(True, description="Whether the operation succeeded")
    msg: Optional[str] = Field(None, description="Optional human readable message")


class ErrorResponse(BaseModel):
    ok: bool = Field(False, description="Always false for errors")
    error: str = Field(..., description="Error message")


class CityCreate(BaseModel):
    name: str = Field(..., min_length=1, description="City name")
    country: str = Field(..., min_length=1, description="Country name or code")


class City(BaseModel):
    id: int
    name: str
    country: str
    created_at: Optional[datetime] = None
