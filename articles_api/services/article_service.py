"""
Article service — business logic for the Article aggregate.

Design notes
------------
- Reads go through ``CacheManager.get_or_load``: the list view is keyed by
  the full query descriptor, the detail view by article id (see
  ``articles_api.cache_keys``).  Only JSON-ready dicts are cached.
- Writes commit before invalidating, so a miss that races the write can
  only reload the new row.  Invalidation drops the article's detail key
  and the whole list namespace; it is best effort and never fails the
  write.
- A missing article is never cached; ``find_one`` raises NotFoundError on
  both the miss and the hit path.
- Ownership is checked after the lookup: a missing article is reported as
  not found even to a caller who could not have modified it.
- The session and cache are injected at construction; the router builds
  one service per request through ``get_article_service``.
"""
import logging
import math
import uuid
from datetime import datetime, timezone

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from articles_api.cache import CacheManager
from articles_api.config import settings
from articles_api.exceptions import ForbiddenError, NotFoundError
from articles_api.models import Article, User
from articles_api.schemas import ArticleCreate, ArticleQuery, ArticleUpdate
from articles_api.services.user_service import user_to_dict

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _isoformat(value: datetime | None) -> str | None:
    if value is None:
        return None
    # SQLite hands back naive datetimes; everything is stored as UTC.
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def article_to_dict(article: Article) -> dict:
    """Serialise an Article (with its author, when loaded) to a plain dict."""
    return {
        "id": str(article.id),
        "title": article.title,
        "description": article.description,
        "published_at": _isoformat(article.published_at),
        "author_id": str(article.author_id),
        "author": user_to_dict(article.author) if article.author is not None else None,
        "created_at": _isoformat(article.created_at),
        "updated_at": _isoformat(article.updated_at),
    }


def _filters(query: ArticleQuery) -> list:
    conditions = []
    if query.author_id is not None:
        conditions.append(Article.author_id == query.author_id)
    if query.published_from is not None:
        conditions.append(Article.published_at >= query.published_from)
    if query.published_to is not None:
        conditions.append(Article.published_at <= query.published_to)
    if query.search and query.search.strip():
        term = query.search.strip()
        conditions.append(
            or_(
                Article.title.icontains(term, autoescape=True),
                Article.description.icontains(term, autoescape=True),
            )
        )
    return conditions


def normalize_query(query: ArticleQuery) -> ArticleQuery:
    """Clamp page/limit to their allowed ranges (``MAX_PAGE_SIZE`` may be below 100)."""
    page = max(1, query.page)
    limit = min(max(1, query.limit), settings.MAX_PAGE_SIZE)
    if page == query.page and limit == query.limit:
        return query
    return query.model_copy(update={"page": page, "limit": limit})


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class ArticleService:
    def __init__(self, db: AsyncSession, cache: CacheManager) -> None:
        self.db = db
        self.cache = cache

    # -- reads -------------------------------------------------------------

    async def find_all(self, query: ArticleQuery) -> dict:
        """
        Return one page of articles, newest ``published_at`` first.

        Two SQL statements are issued on a cache miss: a COUNT with the
        same filters, and the page itself with the author joined in.
        """
        query = normalize_query(query)
        key = self.cache.keys.list(query)
        return await self.cache.get_or_load(key, lambda: self._load_page(query))

    async def find_one(self, article_id: uuid.UUID) -> dict:
        key = self.cache.keys.detail(article_id)
        data = await self.cache.get_or_load(key, lambda: self._load_one(article_id))
        if data is None:
            logger.warning("Article not found: %s", article_id)
            raise NotFoundError(f"Article with ID {article_id} not found")
        return data

    # -- writes ------------------------------------------------------------

    async def create(self, data: ArticleCreate, author: User) -> dict:
        logger.info("Creating article %r for author %s", data.title, author.id)
        article = Article(
            title=data.title,
            description=data.description,
            published_at=data.published_at,
            author=author,
        )
        self.db.add(article)
        await self.db.commit()

        await self.cache.invalidate_article(article.id)
        logger.info("Article created: %s", article.id)
        return article_to_dict(article)

    async def update(self, article_id: uuid.UUID, data: ArticleUpdate, user: User) -> dict:
        """
        Apply the fields present in *data* to the article and return it.

        Fields omitted from the payload (or sent as null) are left untouched.
        """
        article = await self._get_for_write(article_id, user, "update")
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        logger.info("Updating article %s (%s)", article_id, ", ".join(sorted(changes)) or "no changes")
        for field, value in changes.items():
            setattr(article, field, value)
        await self.db.commit()

        await self.cache.invalidate_article(article_id)
        return article_to_dict(article)

    async def remove(self, article_id: uuid.UUID, user: User) -> None:
        article = await self._get_for_write(article_id, user, "delete")
        await self.db.delete(article)
        await self.db.commit()

        await self.cache.invalidate_article(article_id)
        logger.info("Article deleted: %s", article_id)

    # -- store access ------------------------------------------------------

    async def _get_row(self, article_id: uuid.UUID) -> Article | None:
        q = (
            select(Article)
            .where(Article.id == article_id)
            .options(joinedload(Article.author))
        )
        result = await self.db.execute(q)
        return result.unique().scalar_one_or_none()

    async def _get_for_write(self, article_id: uuid.UUID, user: User, action: str) -> Article:
        # Always read the store, never the cache, before a write.
        article = await self._get_row(article_id)
        if article is None:
            raise NotFoundError(f"Article with ID {article_id} not found")
        if article.author_id != user.id:
            logger.warning(
                "Unauthorized %s attempt on article %s by user %s (author %s)",
                action, article_id, user.id, article.author_id,
            )
            raise ForbiddenError(f"You can only {action} your own articles")
        return article

    async def _load_one(self, article_id: uuid.UUID) -> dict | None:
        article = await self._get_row(article_id)
        return article_to_dict(article) if article is not None else None

    async def _load_page(self, query: ArticleQuery) -> dict:
        conditions = _filters(query)

        count_q = select(func.count()).select_from(Article).where(*conditions)
        total: int = (await self.db.execute(count_q)).scalar_one()

        rows_q = (
            select(Article)
            .where(*conditions)
            .options(joinedload(Article.author))
            .order_by(Article.published_at.desc(), Article.id)
            .offset((query.page - 1) * query.limit)
            .limit(query.limit)
        )
        result = await self.db.execute(rows_q)
        articles = result.unique().scalars().all()

        return {
            "items": [article_to_dict(a) for a in articles],
            "total": total,
            "page": query.page,
            "limit": query.limit,
            "pages": math.ceil(total / query.limit) if total > 0 else 0,
            "has_next": query.page * query.limit < total,
            "has_prev": query.page > 1,
        }
