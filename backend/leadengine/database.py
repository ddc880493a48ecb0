"""Database engine, session factory and declarative base."""

import uuid

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from leadengine.config import settings

engine = create_engine(settings.database_url, pool_size=10, max_overflow=5, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


def get_db():
    """FastAPI dependency yielding a request-scoped session."""
    session: Session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def parse_uuid(value) -> str | None:
    """Canonical string form of a UUID id column value, or None if it is not one."""
    if value is None:
        return None
    try:
        return str(uuid.UUID(str(value)))
    except ValueError:
        return None
