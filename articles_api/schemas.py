import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


def as_utc(value: datetime | None) -> datetime | None:
    """Normalise *value* to an aware UTC datetime (naive input is taken as UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# --- User / Auth ---

class RegisterRequest(BaseModel):
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=8, max_length=72)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)


class LoginRequest(BaseModel):
    email: str = Field(max_length=255)
    password: str


class UserResponse(BaseModel):
    id: uuid.UUID
    email: str
    first_name: str
    last_name: str
    model_config = ConfigDict(from_attributes=True)


class AuthResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


# --- Article ---

class ArticleCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=10, max_length=10000)
    published_at: datetime

    @field_validator("published_at")
    @classmethod
    def normalize_published_at(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)


class ArticleUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = Field(None, min_length=10, max_length=10000)
    published_at: datetime | None = None

    @field_validator("published_at")
    @classmethod
    def normalize_published_at(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)


class ArticleResponse(BaseModel):
    id: uuid.UUID
    title: str
    description: str
    published_at: datetime
    author_id: uuid.UUID
    author: UserResponse | None = None
    created_at: datetime
    updated_at: datetime


class ArticleQuery(BaseModel):
    """
    Query descriptor for the article list.

    Doubles as the input of the list cache key, so every field that
    changes the result set must live here.
    """

    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)
    author_id: uuid.UUID | None = None
    published_from: datetime | None = None
    published_to: datetime | None = None
    search: str | None = Field(None, max_length=200)

    @field_validator("published_from", "published_to")
    @classmethod
    def normalize_range(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)


# --- Pagination ---

class PaginatedArticles(BaseModel):
    items: list[ArticleResponse]
    total: int
    page: int
    limit: int
    pages: int
    has_next: bool
    has_prev: bool


# --- Errors ---

class ErrorResponse(BaseModel):
    status_code: int
    timestamp: str
    path: str
    message: str | list


# --- Metrics ---

class MetricsResponse(BaseModel):
    total_articles: int
    total_users: int
    cache_info: dict = {}
