import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from articles_api import __version__
from articles_api.cache import CacheManager
from articles_api.config import settings
from articles_api.database import engine
from articles_api.exceptions import register_exception_handlers
from articles_api.middleware import RequestTimingMiddleware
from articles_api.routers import articles, auth, metrics

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: the app keeps serving from the database if Redis is down.
    cache = CacheManager()
    await cache.connect(settings.REDIS_URL)
    app.state.cache = cache
    logger.info("Articles API started (env=%s)", settings.APP_ENV)
    yield
    # Shutdown
    await cache.disconnect()
    await engine.dispose()


app = FastAPI(
    title="Articles API",
    description="REST API for articles management with JWT authentication and a Redis read-through cache",
    version=__version__,
    lifespan=lifespan,
    docs_url="/api/docs",
    openapi_url="/api/openapi.json",
)

register_exception_handlers(app)

# Middleware
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(RequestTimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(auth.router)
app.include_router(articles.router)
app.include_router(metrics.router)


@app.get("/health")
async def health():
    return {"status": "healthy", "version": __version__}
