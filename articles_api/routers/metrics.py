from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from articles_api.cache import CacheManager
from articles_api.database import get_db
from articles_api.dependencies import get_cache
from articles_api.models import Article, User
from articles_api.schemas import MetricsResponse

router = APIRouter(prefix="/api/v1/metrics", tags=["metrics"])


@router.get("", response_model=MetricsResponse)
async def get_metrics(
    db: AsyncSession = Depends(get_db),
    cache: CacheManager = Depends(get_cache),
):
    total_articles = (await db.execute(select(func.count()).select_from(Article))).scalar_one()
    total_users = (await db.execute(select(func.count()).select_from(User))).scalar_one()

    return MetricsResponse(
        total_articles=total_articles,
        total_users=total_users,
        cache_info=cache.stats,
    )
