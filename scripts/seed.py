"""Populate the articles database with demo users and articles.

Every seeded user can log in with ``--password`` (default ``Password123!``).
The Redis list cache is flushed afterwards so stale pages are not served.
"""
import argparse
import asyncio
import random
import time
from datetime import datetime, timedelta, timezone

from articles_api.cache import CacheManager
from articles_api.config import settings
from articles_api.database import Base, async_session, engine
from articles_api.models import Article, User
from articles_api.security import get_password_hash

TOPICS = ["python", "fastapi", "postgresql", "redis", "docker", "kubernetes",
          "typescript", "aws", "devops", "testing", "performance", "security"]


async def seed(users: int, articles: int, password: str, reset: bool) -> None:
    print(f"Seeding: {users} users, {articles} articles")
    start = time.perf_counter()

    async with engine.begin() as conn:
        if reset:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    # One hash for everyone; bcrypt is deliberately slow.
    hashed = get_password_hash(password)

    async with async_session() as session:
        authors = []
        for i in range(users):
            user = User(
                email=f"user_{i:04d}@example.com",
                password=hashed,
                first_name="User",
                last_name=f"{i:04d}",
            )
            session.add(user)
            authors.append(user)
        await session.flush()
        print(f"  Created {len(authors)} users")

        now = datetime.now(timezone.utc)
        batch_size = 500
        for batch_start in range(0, articles, batch_size):
            batch_end = min(batch_start + batch_size, articles)
            for i in range(batch_start, batch_end):
                topic = random.choice(TOPICS)
                session.add(Article(
                    title=f"Article {i}: working with {topic}",
                    description=f"Notes on running {topic} in production, part {i}. " * 5,
                    published_at=now - timedelta(days=random.randint(0, 365)),
                    author_id=random.choice(authors).id,
                ))
            await session.flush()
            print(f"  Batch {batch_start}-{batch_end}: articles created")

        await session.commit()

    cache = CacheManager()
    await cache.connect(settings.REDIS_URL)
    await cache.invalidate_article_lists()
    await cache.disconnect()

    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")


def main():
    parser = argparse.ArgumentParser(description="Seed the articles database")
    parser.add_argument("--users", type=int, default=10, help="Number of users (default 10)")
    parser.add_argument("--articles", type=int, default=100, help="Number of articles (default 100)")
    parser.add_argument("--password", default="Password123!", help="Password for every seeded user")
    parser.add_argument("--reset", action="store_true", help="Drop and recreate all tables first")
    args = parser.parse_args()
    asyncio.run(seed(args.users, args.articles, args.password, args.reset))


if __name__ == "__main__":
    main()
