"""
Direct service-layer tests — ArticleService against SQLite and the
in-memory Redis double, without HTTP in between.

Most tests check cache consistency: what is in the store after a read,
and that every write leaves no stale detail or list entry behind.
"""
import json
import logging
import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from articles_api.cache import CacheManager
from articles_api.exceptions import ForbiddenError, NotFoundError
from articles_api.schemas import ArticleCreate, ArticleQuery, ArticleUpdate
from articles_api.services.article_service import ArticleService, normalize_query

from conftest import FailingRedis, KeyValueOnlyRedis


def _new(title: str, day: int = 15, description: str = "A sufficiently long description.") -> ArticleCreate:
    return ArticleCreate(
        title=title,
        description=description,
        published_at=datetime(2025, 1, day, 10, tzinfo=timezone.utc),
    )


@pytest.fixture
def service(db_session: AsyncSession, cache: CacheManager) -> ArticleService:
    return ArticleService(db_session, cache)


# ---------------------------------------------------------------------------
# create / find_one
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_returns_article_with_author(service, make_user):
    author = await make_user()
    created = await service.create(_new("First Article"), author)

    assert created["title"] == "First Article"
    assert created["author_id"] == str(author.id)
    assert created["author"]["email"] == "author@example.com"
    assert "password" not in created["author"]
    assert created["published_at"].startswith("2025-01-15T10:00:00")
    assert created["created_at"] is not None
    assert created["updated_at"] is not None


@pytest.mark.asyncio
async def test_find_one_populates_detail_cache(service, make_user, cache, redis_client):
    author = await make_user()
    created = await service.create(_new("Cached Article"), author)

    detail = await service.find_one(uuid.UUID(created["id"]))

    key = cache.keys.detail(created["id"])
    assert detail["title"] == "Cached Article"
    assert json.loads(redis_client.store[key])["id"] == created["id"]
    assert redis_client.ttls[key] == 3600


@pytest.mark.asyncio
async def test_find_one_serves_from_cache_on_hit(service, make_user, cache, redis_client):
    author = await make_user()
    created = await service.create(_new("Original"), author)
    await service.find_one(uuid.UUID(created["id"]))

    # A cached entry is served as-is until a write invalidates it.
    key = cache.keys.detail(created["id"])
    planted = json.loads(redis_client.store[key])
    planted["title"] = "From cache"
    redis_client.store[key] = json.dumps(planted)

    assert (await service.find_one(uuid.UUID(created["id"])))["title"] == "From cache"


@pytest.mark.asyncio
async def test_find_one_missing_raises_and_caches_nothing(service, redis_client):
    missing = uuid.uuid4()

    with pytest.raises(NotFoundError):
        await service.find_one(missing)
    with pytest.raises(NotFoundError):
        await service.find_one(missing)

    assert redis_client.store == {}


@pytest.mark.asyncio
async def test_find_one_after_remove_raises_even_if_previously_cached(service, make_user):
    author = await make_user()
    created = await service.create(_new("Short Lived"), author)
    article_id = uuid.UUID(created["id"])
    await service.find_one(article_id)  # populate the hit path

    await service.remove(article_id, author)

    with pytest.raises(NotFoundError):
        await service.find_one(article_id)


# ---------------------------------------------------------------------------
# find_all
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_find_all_empty(service):
    result = await service.find_all(ArticleQuery())
    assert result["items"] == []
    assert result["total"] == 0
    assert result["pages"] == 0
    assert result["has_next"] is False
    assert result["has_prev"] is False


@pytest.mark.asyncio
async def test_date_range_and_pagination_scenario(service, make_user):
    author = await make_user()
    for day in (10, 12, 14):
        await service.create(_new(f"Article {day}", day=day), author)

    in_range = await service.find_all(ArticleQuery(
        published_from=datetime(2025, 1, 11, tzinfo=timezone.utc),
        published_to=datetime(2025, 1, 13, tzinfo=timezone.utc),
    ))
    assert in_range["total"] == 1
    assert [a["title"] for a in in_range["items"]] == ["Article 12"]

    first_page = await service.find_all(ArticleQuery(page=1, limit=2))
    assert len(first_page["items"]) == 2
    assert first_page["total"] == 3
    assert first_page["pages"] == 2
    assert first_page["has_next"] is True
    assert first_page["has_prev"] is False
    # Newest first
    assert [a["title"] for a in first_page["items"]] == ["Article 14", "Article 12"]

    second_page = await service.find_all(ArticleQuery(page=2, limit=2))
    assert [a["title"] for a in second_page["items"]] == ["Article 10"]
    assert second_page["has_next"] is False
    assert second_page["has_prev"] is True


@pytest.mark.asyncio
async def test_range_bounds_are_inclusive(service, make_user):
    author = await make_user()
    await service.create(_new("Edge", day=12), author)

    exact = datetime(2025, 1, 12, 10, tzinfo=timezone.utc)
    result = await service.find_all(ArticleQuery(published_from=exact, published_to=exact))
    assert result["total"] == 1


@pytest.mark.asyncio
async def test_only_one_bound(service, make_user):
    author = await make_user()
    for day in (10, 12, 14):
        await service.create(_new(f"Article {day}", day=day), author)

    after = await service.find_all(ArticleQuery(published_from=datetime(2025, 1, 12, tzinfo=timezone.utc)))
    before = await service.find_all(ArticleQuery(published_to=datetime(2025, 1, 12, tzinfo=timezone.utc)))
    assert after["total"] == 2
    assert [a["title"] for a in before["items"]] == ["Article 10"]


@pytest.mark.asyncio
async def test_filter_by_author(service, make_user):
    alice = await make_user("alice@example.com")
    bob = await make_user("bob@example.com")
    await service.create(_new("By Alice"), alice)
    await service.create(_new("By Bob"), bob)

    result = await service.find_all(ArticleQuery(author_id=bob.id))
    assert [a["title"] for a in result["items"]] == ["By Bob"]


@pytest.mark.asyncio
async def test_search_is_case_insensitive_over_title_and_description(service, make_user):
    author = await make_user()
    await service.create(_new("Intro to NestJS"), author)
    await service.create(_new("Other", description="Building APIs with nestjs and friends."), author)
    await service.create(_new("Unrelated", description="Nothing to see in this text."), author)

    result = await service.find_all(ArticleQuery(search="NESTJS"))
    assert {a["title"] for a in result["items"]} == {"Intro to NestJS", "Other"}


@pytest.mark.asyncio
async def test_search_treats_wildcards_literally(service, make_user):
    author = await make_user()
    await service.create(_new("100% coverage"), author)
    await service.create(_new("1000 tests"), author)

    result = await service.find_all(ArticleQuery(search="100%"))
    assert [a["title"] for a in result["items"]] == ["100% coverage"]


def test_normalize_query_clamps_to_max_page_size(monkeypatch):
    from articles_api.services import article_service

    monkeypatch.setattr(article_service.settings, "MAX_PAGE_SIZE", 50)
    query = normalize_query(ArticleQuery(limit=80))
    assert query.limit == 50
    assert normalize_query(ArticleQuery(limit=20)).limit == 20


# ---------------------------------------------------------------------------
# Invalidation on write
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_invalidates_cached_lists(service, make_user, cache, redis_client):
    author = await make_user()
    await service.create(_new("Before"), author)
    before = await service.find_all(ArticleQuery())
    assert before["total"] == 1
    assert cache.keys.list(ArticleQuery()) in redis_client.store

    created = await service.create(_new("After", day=20), author)

    after = await service.find_all(ArticleQuery())
    assert after["total"] == 2
    assert after["items"][0]["id"] == created["id"]
    assert (await service.find_one(uuid.UUID(created["id"])))["title"] == "After"


@pytest.mark.asyncio
async def test_update_by_author_is_visible_immediately(service, make_user, cache, redis_client):
    author = await make_user()
    created = await service.create(_new("Old Title"), author)
    article_id = uuid.UUID(created["id"])
    await service.find_one(article_id)
    await service.find_all(ArticleQuery())

    updated = await service.update(article_id, ArticleUpdate(title="New Title"), author)

    assert updated["title"] == "New Title"
    assert updated["description"] == created["description"]
    # Invalidated, not re-populated
    assert cache.keys.detail(article_id) not in redis_client.store
    assert cache.keys.list(ArticleQuery()) not in redis_client.store
    assert (await service.find_one(article_id))["title"] == "New Title"
    assert (await service.find_all(ArticleQuery()))["items"][0]["title"] == "New Title"


@pytest.mark.asyncio
async def test_update_applies_only_supplied_fields(service, make_user):
    author = await make_user()
    created = await service.create(_new("Keep Title", day=10), author)

    updated = await service.update(
        uuid.UUID(created["id"]),
        ArticleUpdate(published_at=datetime(2025, 2, 1, tzinfo=timezone.utc), title=None),
        author,
    )
    assert updated["title"] == "Keep Title"
    assert updated["published_at"].startswith("2025-02-01")


@pytest.mark.asyncio
async def test_remove_invalidates_lists(service, make_user):
    author = await make_user()
    created = await service.create(_new("Doomed"), author)
    assert (await service.find_all(ArticleQuery()))["total"] == 1

    await service.remove(uuid.UUID(created["id"]), author)

    assert (await service.find_all(ArticleQuery()))["total"] == 0


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_non_author_update_is_forbidden_and_changes_nothing(service, make_user, cache, redis_client):
    author = await make_user("owner@example.com")
    intruder = await make_user("intruder@example.com")
    created = await service.create(_new("Owned"), author)
    article_id = uuid.UUID(created["id"])
    await service.find_one(article_id)
    await service.find_all(ArticleQuery())
    cached_before = dict(redis_client.store)

    with pytest.raises(ForbiddenError):
        await service.update(article_id, ArticleUpdate(title="Hijacked"), intruder)

    assert redis_client.store == cached_before
    assert (await service.find_one(article_id))["title"] == "Owned"


@pytest.mark.asyncio
async def test_non_author_remove_is_forbidden_and_changes_nothing(service, make_user, redis_client):
    author = await make_user("owner@example.com")
    intruder = await make_user("intruder@example.com")
    created = await service.create(_new("Owned"), author)
    article_id = uuid.UUID(created["id"])
    await service.find_one(article_id)
    cached_before = dict(redis_client.store)

    with pytest.raises(ForbiddenError):
        await service.remove(article_id, intruder)

    assert redis_client.store == cached_before
    assert (await service.find_all(ArticleQuery()))["total"] == 1


@pytest.mark.asyncio
async def test_missing_article_is_not_found_even_for_non_author(service, make_user):
    stranger = await make_user()
    with pytest.raises(NotFoundError):
        await service.update(uuid.uuid4(), ArticleUpdate(title="Ghost"), stranger)
    with pytest.raises(NotFoundError):
        await service.remove(uuid.uuid4(), stranger)


# ---------------------------------------------------------------------------
# Degraded cache stores
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_writes_succeed_when_store_cannot_enumerate_keys(db_session, make_user, caplog):
    client = KeyValueOnlyRedis()
    service = ArticleService(db_session, CacheManager(client=client))
    author = await make_user()
    created = await service.create(_new("First"), author)
    await service.find_one(uuid.UUID(created["id"]))

    with caplog.at_level(logging.WARNING, logger="articles_api.cache"):
        updated = await service.update(uuid.UUID(created["id"]), ArticleUpdate(title="Renamed"), author)

    assert updated["title"] == "Renamed"
    # Detail key still invalidated; list invalidation skipped with a warning.
    assert (await service.find_one(uuid.UUID(created["id"])))["title"] == "Renamed"
    assert "key enumeration unavailable" in caplog.text


@pytest.mark.asyncio
async def test_service_works_when_cache_store_is_down(db_session, make_user):
    service = ArticleService(db_session, CacheManager(client=FailingRedis()))
    author = await make_user()

    created = await service.create(_new("Resilient"), author)
    article_id = uuid.UUID(created["id"])
    assert (await service.find_one(article_id))["title"] == "Resilient"
    assert (await service.find_all(ArticleQuery()))["total"] == 1
    await service.update(article_id, ArticleUpdate(title="Still Resilient"), author)
    await service.remove(article_id, author)

    with pytest.raises(NotFoundError):
        await service.find_one(article_id)
