import uuid
from datetime import datetime

from fastapi import Depends, Query, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from articles_api.cache import CacheManager
from articles_api.config import settings
from articles_api.database import get_db
from articles_api.exceptions import UnauthorizedError
from articles_api.models import User
from articles_api.schemas import ArticleQuery
from articles_api.security import decode_access_token
from articles_api.services import user_service
from articles_api.services.article_service import ArticleService

bearer_scheme = HTTPBearer(auto_error=False, description="JWT access token")


def get_cache(request: Request) -> CacheManager:
    """The CacheManager opened by the application lifespan."""
    return request.app.state.cache


def get_article_service(
    db: AsyncSession = Depends(get_db),
    cache: CacheManager = Depends(get_cache),
) -> ArticleService:
    return ArticleService(db, cache)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the ``Authorization: Bearer`` token to a stored User or raise 401."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise UnauthorizedError("Authentication required")

    subject = decode_access_token(credentials.credentials)
    if subject is None:
        raise UnauthorizedError("Invalid or expired token")
    try:
        user_id = uuid.UUID(subject)
    except ValueError:
        raise UnauthorizedError("Invalid or expired token")

    user = await user_service.find_by_id(db, user_id)
    if user is None:
        raise UnauthorizedError("Invalid or expired token")
    return user


def article_query_params(
    page: int = Query(1, ge=1, description="Page number (1-based)."),
    limit: int = Query(
        settings.DEFAULT_PAGE_SIZE,
        ge=1,
        le=100,
        description="Number of articles per page (max 100).",
    ),
    author_id: uuid.UUID | None = Query(None, description="Only articles by this author."),
    published_from: datetime | None = Query(
        None, description="Inclusive lower bound on published_at (ISO 8601)."
    ),
    published_to: datetime | None = Query(
        None, description="Inclusive upper bound on published_at (ISO 8601)."
    ),
    search: str | None = Query(
        None,
        max_length=200,
        description="Case-insensitive substring of title or description.",
    ),
) -> ArticleQuery:
    """Parse the list query string into an ArticleQuery descriptor."""
    return ArticleQuery(
        page=page,
        limit=limit,
        author_id=author_id,
        published_from=published_from,
        published_to=published_to,
        search=search,
    )
