# models.py
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from database import Base


USER_ROLES = ("admin", "analyst", "viewer")
TREND_STATUSES = ("growing", "declining", "stable")

role_enum = Enum(*USER_ROLES, name="user_role", native_enum=False)
trend_status_enum = Enum(*TREND_STATUSES, name="trend_status", native_enum=False)


def utcnow() -> datetime:
    """Naive UTC timestamp; every datetime column is stored this way."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, index=True, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    password = Column(String, nullable=False)  # salted hash
    name = Column(String, nullable=False)
    role = Column(role_enum, nullable=False, default="viewer")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    last_active_at = Column(DateTime, default=utcnow)

    competitors = relationship("Competitor", back_populates="owner")


class Competitor(Base):
    __tablename__ = "competitors"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, index=True, nullable=False)
    category = Column(String, nullable=False)
    price_range_min = Column(Numeric(10, 2), nullable=False)
    price_range_max = Column(Numeric(10, 2), nullable=False)
    market_share = Column(Numeric(5, 2), nullable=False)
    trend_status = Column(trend_status_enum, nullable=False, default="stable")
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    owner = relationship("User", back_populates="competitors")

    # rows are removed explicitly in crud.delete_competitor
    pricing_data = relationship("PricingData", back_populates="competitor", passive_deletes="all")


class PricingData(Base):
    __tablename__ = "pricing_data"

    id = Column(Integer, primary_key=True, index=True)
    competitor_id = Column(
        Integer, ForeignKey("competitors.id", ondelete="CASCADE"), index=True, nullable=False
    )
    price = Column(Numeric(10, 2), nullable=False)
    recorded_at = Column(DateTime, index=True, nullable=False, default=utcnow)

    competitor = relationship("Competitor", back_populates="pricing_data")
