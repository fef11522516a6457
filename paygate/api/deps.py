"""Common dependencies for API routes."""
from __future__ import annotations

from collections.abc import Iterator

from fastapi import Request
from sqlalchemy.orm import Session

from paygate.db.session import SessionLocal
from paygate.services.rate_limiter import RateLimiter


def get_db_session() -> Iterator[Session]:
    """Yield a database session for FastAPI dependencies."""

    session: Session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def get_payme_rate_limiter(request: Request) -> RateLimiter:
    """Return the application-wide limiter guarding the merchant callback route."""
    return request.app.state.payme_rate_limiter


__all__ = ["get_db_session", "get_payme_rate_limiter"]
