"""Unit tests for dashboard metrics and pricing-trend aggregation."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from analytics import compute_trend_score, get_dashboard_metrics, get_recent_pricing_trends
from errors import StorageUnavailable
from models import Competitor, PricingData

NOW = datetime(2026, 3, 10, 12, 0, 0)


def _add_price(db: Session, competitor: Competitor, price: str, recorded_at: datetime) -> None:
    db.add(PricingData(competitor_id=competitor.id, price=Decimal(price), recorded_at=recorded_at))
    db.commit()


def test_trend_score_is_neutral_without_competitors() -> None:
    """No competitors should give the 5.0 midpoint."""
    assert compute_trend_score(0, 0, 0) == 5.0


@pytest.mark.parametrize(
    ("growing", "declining", "total", "expected"),
    [
        (4, 0, 4, 10.0),
        (0, 3, 3, 0.0),
        (2, 2, 5, 5.0),
        (1, 0, 3, 6.7),
        (0, 1, 3, 3.3),
        (1, 0, 4, 6.3),
        (0, 1, 4, 3.8),
    ],
)
def test_trend_score_scales_with_growth_balance(
    growing: int, declining: int, total: int, expected: float
) -> None:
    """Score should move symmetrically away from 5 and stay inside [0, 10]."""
    score = compute_trend_score(growing, declining, total)

    assert score == expected
    assert 0.0 <= score <= 10.0


def test_metrics_for_empty_store(db_session: Session) -> None:
    """Empty store should report zeros and a neutral trend score."""
    metrics = get_dashboard_metrics(db_session)

    assert metrics.total_competitors == 0
    assert metrics.avg_price == 0
    assert metrics.market_share == 0
    assert metrics.trend_score == 5.0


def test_metrics_average_midpoints_and_sum_share(
    db_session: Session, make_competitor: Callable[..., Competitor]
) -> None:
    """avgPrice is the mean of range midpoints; market share is summed."""
    make_competitor("A", "10.00", "20.00", "15.50", "growing")
    make_competitor("B", "20.00", "41.00", "60.25", "growing")
    make_competitor("C", "0.00", "9.00", "30.00", "declining")

    metrics = get_dashboard_metrics(db_session)

    assert metrics.total_competitors == 3
    assert metrics.avg_price == pytest.approx((15.0 + 30.5 + 4.5) / 3)
    assert metrics.market_share == pytest.approx(105.75)
    assert metrics.trend_score == 6.7


def test_metrics_all_declining_scores_zero(
    db_session: Session, make_competitor: Callable[..., Competitor]
) -> None:
    """Every competitor declining should pin the score at 0."""
    make_competitor("A", trend_status="declining")
    make_competitor("B", trend_status="declining")

    assert get_dashboard_metrics(db_session).trend_score == 0.0


def test_metrics_wrap_storage_failures(monkeypatch: pytest.MonkeyPatch, db_session: Session) -> None:
    """A dead store should surface as StorageUnavailable."""

    def _broken_query(*args: object, **kwargs: object) -> None:
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    monkeypatch.setattr(db_session, "query", _broken_query)

    with pytest.raises(StorageUnavailable):
        get_dashboard_metrics(db_session)


def test_pricing_trends_group_by_day_ascending(
    db_session: Session, make_competitor: Callable[..., Competitor]
) -> None:
    """Observations are averaged per UTC day across competitors, oldest first."""
    acme = make_competitor("Acme")
    beta = make_competitor("Beta")
    _add_price(db_session, acme, "30.00", datetime(2026, 3, 5, 9, 0))
    _add_price(db_session, acme, "10.00", datetime(2026, 3, 1, 10, 0))
    _add_price(db_session, beta, "20.00", datetime(2026, 3, 1, 23, 59))
    _add_price(db_session, beta, "1000.00", datetime(2025, 1, 1, 0, 0))

    trends = get_recent_pricing_trends(db_session, days=30, now=NOW)

    assert [(p.date, p.avg_price) for p in trends] == [
        ("2026-03-01", pytest.approx(15.0)),
        ("2026-03-05", pytest.approx(30.0)),
    ]


def test_pricing_trends_skip_days_without_observations(
    db_session: Session, make_competitor: Callable[..., Competitor]
) -> None:
    """Sparse series: no zero-filled days in between."""
    acme = make_competitor("Acme")
    for offset in (1, 4, 9):
        _add_price(db_session, acme, "12.50", NOW - timedelta(days=offset))

    trends = get_recent_pricing_trends(db_session, days=180, now=NOW)
    dates = [p.date for p in trends]

    assert dates == sorted(dates)
    assert len(dates) == 3
    assert all(p.avg_price == pytest.approx(12.5) for p in trends)


def test_pricing_trends_accept_aware_now(
    db_session: Session, make_competitor: Callable[..., Competitor]
) -> None:
    """A timezone-aware `now` is converted to UTC before computing the cutoff."""
    acme = make_competitor("Acme")
    _add_price(db_session, acme, "5.00", datetime(2026, 3, 9, 0, 0))
    aware_now = datetime(2026, 3, 10, 14, 0, tzinfo=timezone(timedelta(hours=2)))

    trends = get_recent_pricing_trends(db_session, days=1, now=aware_now)

    assert [p.date for p in trends] == []
    assert [p.date for p in get_recent_pricing_trends(db_session, days=2, now=aware_now)] == [
        "2026-03-09"
    ]


def test_pricing_trends_empty_store(db_session: Session) -> None:
    """No observations gives an empty series."""
    assert get_recent_pricing_trends(db_session, days=180, now=NOW) == []


def test_pricing_trends_clamp_windows_older_than_the_calendar(
    db_session: Session, make_competitor: Callable[..., Competitor]
) -> None:
    """A window reaching past year 1 covers every observation."""
    acme = make_competitor("Acme")
    _add_price(db_session, acme, "12.00", datetime(2001, 1, 1, 9, 0))

    points = get_recent_pricing_trends(db_session, 1_000_000, now=NOW)

    assert [(p.date, p.avg_price) for p in points] == [("2001-01-01", 12.0)]
