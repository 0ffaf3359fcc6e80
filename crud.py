# crud.py
"""
Create / update / delete paths for every table.

Routes and the bulk importer both go through these functions so that a CSV row
and a form submission end up as exactly the same kind of record.
"""
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from errors import NotFound, ValidationError
from models import Competitor, PricingData, User, utcnow
from schemas import CompetitorCreate, CompetitorUpdate, PricingDataCreate, UserUpdate


# ---------- Users ----------

def get_user(db: Session, user_id: int) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()


def get_users(db: Session) -> List[User]:
    return db.query(User).order_by(User.created_at.desc(), User.id.desc()).all()


def create_user(
    db: Session,
    *,
    username: str,
    email: str,
    name: str,
    role: str,
    hashed_password: str,
) -> User:
    user = User(
        username=username,
        email=email,
        name=name,
        role=role,
        password=hashed_password,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationError("Username or email already exists")
    db.refresh(user)
    return user


def update_user(db: Session, user_id: int, updates: UserUpdate) -> Optional[User]:
    user = get_user(db, user_id)
    if not user:
        return None
    for field, value in updates.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(user, field, value)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationError("Username or email already exists")
    db.refresh(user)
    return user


def set_password(db: Session, user: User, hashed_password: str) -> User:
    user.password = hashed_password
    db.commit()
    db.refresh(user)
    return user


def touch_last_active(db: Session, user: User) -> None:
    user.last_active_at = utcnow()
    db.commit()


def delete_user(db: Session, user_id: int) -> bool:
    user = get_user(db, user_id)
    if not user:
        return False
    # keep the competitors, drop the ownership link
    db.query(Competitor).filter(Competitor.created_by == user_id).update(
        {Competitor.created_by: None}, synchronize_session=False
    )
    db.delete(user)
    db.commit()
    return True


# ---------- Competitors ----------

def get_competitors(db: Session) -> List[Competitor]:
    return db.query(Competitor).order_by(Competitor.updated_at.desc(), Competitor.id.desc()).all()


def get_competitor(db: Session, competitor_id: int) -> Optional[Competitor]:
    return db.query(Competitor).filter(Competitor.id == competitor_id).first()


def find_competitor_by_name(db: Session, name: str) -> Optional[Competitor]:
    """Case-insensitive exact match; the oldest row wins when names repeat."""
    return (
        db.query(Competitor)
        .filter(func.lower(Competitor.name) == name.strip().lower())
        .order_by(Competitor.id)
        .first()
    )


def create_competitor(db: Session, competitor_in: CompetitorCreate, created_by: Optional[int]) -> Competitor:
    competitor = Competitor(**competitor_in.model_dump(), created_by=created_by)
    db.add(competitor)
    db.commit()
    db.refresh(competitor)
    return competitor


def update_competitor(db: Session, competitor_id: int, updates: CompetitorUpdate) -> Optional[Competitor]:
    competitor = get_competitor(db, competitor_id)
    if not competitor:
        return None

    changes = updates.model_dump(exclude_unset=True, exclude_none=True)
    low = changes.get("price_range_min", competitor.price_range_min)
    high = changes.get("price_range_max", competitor.price_range_max)
    if low > high:
        raise ValidationError(
            "Invalid competitor data",
            errors=[{"loc": ["body", "priceRangeMin"], "msg": "priceRangeMin must not exceed priceRangeMax"}],
        )

    for field, value in changes.items():
        setattr(competitor, field, value)
    competitor.updated_at = utcnow()
    db.commit()
    db.refresh(competitor)
    return competitor


def delete_competitor(db: Session, competitor_id: int) -> bool:
    competitor = get_competitor(db, competitor_id)
    if not competitor:
        return False
    # children first, pricing rows must never outlive their competitor
    db.query(PricingData).filter(PricingData.competitor_id == competitor_id).delete(
        synchronize_session=False
    )
    db.delete(competitor)
    db.commit()
    return True


# ---------- Pricing data ----------

def create_pricing_data(db: Session, pricing_in: PricingDataCreate) -> PricingData:
    if not get_competitor(db, pricing_in.competitor_id):
        raise NotFound("Competitor not found")
    pricing = PricingData(competitor_id=pricing_in.competitor_id, price=pricing_in.price)
    db.add(pricing)
    db.commit()
    db.refresh(pricing)
    return pricing


def get_pricing_data_by_competitor(db: Session, competitor_id: int, limit: int = 30) -> List[PricingData]:
    return (
        db.query(PricingData)
        .filter(PricingData.competitor_id == competitor_id)
        .order_by(PricingData.recorded_at.desc(), PricingData.id.desc())
        .limit(limit)
        .all()
    )
