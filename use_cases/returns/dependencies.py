"""FastAPI dependencies wiring request handlers to app.state."""

from typing import Iterator

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from auth import UserContext

from .analytics import ReturnsAnalyticsService
from .insight_engine import InsightEngine
from .repository import ReturnsRepository

DEFAULT_MERCHANT_ID = 1


def get_db(request: Request) -> Iterator[Session]:
    """One session per request."""
    session = request.app.state.session_factory()
    try:
        yield session
    finally:
        session.close()


def get_repository(session: Session = Depends(get_db)) -> ReturnsRepository:
    return ReturnsRepository(session)


def get_insight_engine(request: Request) -> InsightEngine:
    return request.app.state.insight_engine


def get_analytics(
    request: Request,
    repository: ReturnsRepository = Depends(get_repository),
    engine: InsightEngine = Depends(get_insight_engine),
) -> ReturnsAnalyticsService:
    return ReturnsAnalyticsService(repository, engine, request.app.state.settings.insight_threshold)


def merchant_id_for(user: UserContext) -> int:
    return int(user.merchant_id or DEFAULT_MERCHANT_ID)
