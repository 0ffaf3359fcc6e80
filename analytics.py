# analytics.py
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional
import math

import numpy as np
import pandas as pd
from sqlalchemy import Float, case, func
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from errors import StorageUnavailable
from models import Competitor, PricingData, utcnow
from schemas import DashboardMetrics, PricingTrendPoint

NEUTRAL_TREND_SCORE = 5.0


# ---------- Small helpers ----------

def _clean_scalar(x) -> Optional[float]:
    """
    Convert x (Decimal, numpy scalar, float) to a plain Python float, or None
    if it is NaN/inf/non-numeric. Keeps every value JSON-safe.
    """
    if x is None:
        return None
    try:
        v = float(x)
    except (TypeError, ValueError):
        return None
    if math.isnan(v) or math.isinf(v):
        return None
    return v


def _or_zero(x) -> float:
    v = _clean_scalar(x)
    return 0.0 if v is None else v


def _as_naive_utc(moment: datetime) -> datetime:
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


# ---------- Trend score ----------

def compute_trend_score(growing: int, declining: int, total: int) -> float:
    """
    Balance of growing vs declining competitors on a 0-10 scale.

    5.0 when nothing is tracked or growth and decline cancel out, 10.0 when
    every competitor is growing, 0.0 when every competitor is declining.
    """
    if total <= 0:
        return NEUTRAL_TREND_SCORE
    score = ((growing - declining) / total) * 5 + 5
    # half-up, so 6.25 and 3.75 land on 6.3 and 3.8
    rounded = Decimal(str(score)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    return float(np.clip(float(rounded), 0.0, 10.0))


# ---------- Dashboard metrics ----------

def get_dashboard_metrics(db: Session) -> DashboardMetrics:
    # 2.0 keeps SQLite from integer-dividing whole-number prices
    midpoint = (Competitor.price_range_min + Competitor.price_range_max) / 2.0
    try:
        total, avg_price, share, growing, declining = db.query(
            func.count(Competitor.id),
            func.avg(midpoint, type_=Float),
            func.sum(Competitor.market_share, type_=Float),
            func.sum(case((Competitor.trend_status == "growing", 1), else_=0)),
            func.sum(case((Competitor.trend_status == "declining", 1), else_=0)),
        ).one()
    except OperationalError as exc:
        raise StorageUnavailable("Failed to fetch dashboard metrics") from exc

    total = int(total or 0)
    return DashboardMetrics(
        total_competitors=total,
        avg_price=_or_zero(avg_price),
        market_share=_or_zero(share),
        trend_score=compute_trend_score(int(growing or 0), int(declining or 0), total),
    )


# ---------- Pricing trends ----------

def get_recent_pricing_trends(
    db: Session, days: int, now: Optional[datetime] = None
) -> List[PricingTrendPoint]:
    """
    Average observed price per UTC calendar day over the last `days` days.

    Days without observations are left out, not zero-filled; the series is
    ascending by date.
    """
    base = _as_naive_utc(now or utcnow())
    # windows reaching past year 1 just mean "everything"
    days = min(days, (base - datetime.min).days)
    cutoff = base - timedelta(days=days)
    try:
        rows = (
            db.query(PricingData.recorded_at, PricingData.price)
            .filter(PricingData.recorded_at >= cutoff)
            .all()
        )
    except OperationalError as exc:
        raise StorageUnavailable("Failed to fetch pricing trends") from exc

    if not rows:
        return []

    df = pd.DataFrame(rows, columns=["recorded_at", "price"])
    df["price"] = pd.to_numeric(df["price"].map(_clean_scalar), errors="coerce")
    df = df.dropna(subset=["price"])
    df["date"] = pd.to_datetime(df["recorded_at"]).dt.strftime("%Y-%m-%d")

    daily = df.groupby("date", sort=True)["price"].mean()
    return [
        PricingTrendPoint(date=str(day), avg_price=_or_zero(avg))
        for day, avg in daily.items()
    ]
