"""Pytest configuration: in-memory SQLite store and an authenticated test client."""

from __future__ import annotations

import os
import sys
from decimal import Decimal
from pathlib import Path
from typing import Callable, Dict, Iterator

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# must be set before database.py builds its engine
os.environ["DATABASE_URL"] = "sqlite://"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from auth import create_access_token, get_db, get_password_hash  # noqa: E402
from database import Base  # noqa: E402
from main import app  # noqa: E402
from models import Competitor, User  # noqa: E402

DEFAULT_PASSWORD = "password123"


@pytest.fixture()
def session_factory() -> Iterator[sessionmaker]:
    """Fresh in-memory database per test, shared by every session."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture()
def db_session(session_factory: sessionmaker) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(session_factory: sessionmaker) -> Iterator[TestClient]:
    def _override_get_db() -> Iterator[Session]:
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(db_session: Session) -> Callable[..., User]:
    def _make_user(
        username: str = "viewer",
        role: str = "viewer",
        password: str = DEFAULT_PASSWORD,
        is_active: bool = True,
    ) -> User:
        user = User(
            username=username,
            email=f"{username}@example.com",
            name=username.title(),
            role=role,
            password=get_password_hash(password),
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture()
def make_competitor(db_session: Session) -> Callable[..., Competitor]:
    def _make_competitor(
        name: str = "Acme Corp",
        price_range_min: str = "10.00",
        price_range_max: str = "20.00",
        market_share: str = "5.00",
        trend_status: str = "stable",
        created_by: int | None = None,
    ) -> Competitor:
        competitor = Competitor(
            name=name,
            category="Technology",
            price_range_min=Decimal(price_range_min),
            price_range_max=Decimal(price_range_max),
            market_share=Decimal(market_share),
            trend_status=trend_status,
            created_by=created_by,
        )
        db_session.add(competitor)
        db_session.commit()
        db_session.refresh(competitor)
        return competitor

    return _make_competitor


def auth_headers(user: User) -> Dict[str, str]:
    """Bearer header for a stored user."""
    token = create_access_token({"sub": user.username})
    return {"Authorization": f"Bearer {token}"}
