from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

class CountryBase(BaseModel):
    name: str = Field(..., max_length=255)
    capital: Optional[str] = Field(None, max_length=255)
    region: Optional[str] = Field(None, max_length=100)
    population: int = Field(0, ge=0)
    currency_code: Optional[str] = Field(None, max_length=10)
    exchange_rate: Optional[float] = Field(None)
    estimated_gdp: Optional[float] = Field(None)
    flag_url: Optional[str] = Field(None)
    last_refreshed_at: Optional[datetime] = Field(None)

    model_config = {"from_attributes": True}


class CountryOut(CountryBase):
    id: int
    created_at: Optional[datetime] = None


class RefreshOut(BaseModel):
    message: str
    processed: int
    inserted: int
    updated: int


class StatusOut(BaseModel):
    total_countries: int
    last_refreshed_at: Optional[datetime] = None


class MessageOut(BaseModel):
    message: str
