# schemas.py
from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


Role = Literal["admin", "analyst", "viewer"]
TrendStatus = Literal["growing", "declining", "stable"]

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


# ----- Auth -----

class Token(BaseModel):
    access_token: str
    token_type: str


class TokenData(BaseModel):
    username: Optional[str] = None


class PasswordReset(CamelModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=8)


# ----- Users -----

class UserBase(CamelModel):
    username: str = Field(min_length=1)
    email: str = Field(pattern=EMAIL_PATTERN)
    name: str = Field(min_length=1)
    role: Role = "viewer"

    @field_validator("username", "email", "name", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v


class UserCreate(UserBase):
    password: str = Field(min_length=8)


class UserProvision(UserBase):
    """Admin-created account; the password is generated server side."""


class UserUpdate(CamelModel):
    username: Optional[str] = Field(default=None, min_length=1)
    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN)
    name: Optional[str] = Field(default=None, min_length=1)
    role: Optional[Role] = None
    is_active: Optional[bool] = None


class UserOut(CamelModel):
    id: int
    username: str
    email: str
    name: str
    role: Role
    is_active: bool
    created_at: datetime
    last_active_at: Optional[datetime] = None


class UserProvisioned(UserOut):
    email_sent: bool


# ----- Competitors -----

class CompetitorBase(CamelModel):
    name: str = Field(min_length=1)
    category: str = Field(min_length=1)
    price_range_min: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    price_range_max: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    market_share: Decimal = Field(ge=0, le=100, max_digits=5, decimal_places=2)
    trend_status: TrendStatus = "stable"

    @field_validator("name", "category", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v


class CompetitorCreate(CompetitorBase):
    @model_validator(mode="after")
    def _check_price_range(self):
        if self.price_range_min > self.price_range_max:
            raise ValueError("priceRangeMin must not exceed priceRangeMax")
        return self


class CompetitorUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1)
    category: Optional[str] = Field(default=None, min_length=1)
    price_range_min: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    price_range_max: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    market_share: Optional[Decimal] = Field(default=None, ge=0, le=100, max_digits=5, decimal_places=2)
    trend_status: Optional[TrendStatus] = None

    @field_validator("name", "category", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v


class CompetitorOut(CompetitorBase):
    id: int
    created_at: datetime
    updated_at: datetime
    created_by: Optional[int] = None


# ----- Pricing data -----

class PricingDataCreate(CamelModel):
    competitor_id: int
    price: Decimal = Field(ge=0, max_digits=10, decimal_places=2)


class PricingDataOut(PricingDataCreate):
    id: int
    recorded_at: datetime


# ----- Dashboard -----

class DashboardMetrics(CamelModel):
    total_competitors: int
    avg_price: float
    market_share: float
    trend_score: float


class PricingTrendPoint(CamelModel):
    date: str  # YYYY-MM-DD, UTC
    avg_price: float


# ----- Bulk upload -----

class IngestResult(CamelModel):
    records_processed: int
    total_rows: int
    errors: List[str]
    success: bool
