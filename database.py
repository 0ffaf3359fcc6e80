# database.py
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
import os

"""
Database config: local SQLite during dev, DATABASE_URL (Postgres) in production.
All timestamps are written as naive UTC.
"""

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./competitor_dashboard.db")

# Heroku/Render style URLs still use the legacy scheme
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {},
    pool_pre_ping=True,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()
