import uuid

from fastapi import APIRouter, Depends, Response, status

from articles_api.dependencies import article_query_params, get_article_service, get_current_user
from articles_api.models import User
from articles_api.schemas import (
    ArticleCreate,
    ArticleQuery,
    ArticleResponse,
    ArticleUpdate,
    ErrorResponse,
    PaginatedArticles,
)
from articles_api.services.article_service import ArticleService

router = APIRouter(prefix="/api/v1/articles", tags=["articles"])

_AUTH_ERRORS = {401: {"model": ErrorResponse, "description": "Authentication required"}}
_OWNER_ERRORS = {
    **_AUTH_ERRORS,
    403: {"model": ErrorResponse, "description": "Not the author of this article"},
    404: {"model": ErrorResponse, "description": "Article not found"},
}


@router.post("", status_code=201, response_model=ArticleResponse, responses=_AUTH_ERRORS)
async def create_article(
    data: ArticleCreate,
    user: User = Depends(get_current_user),
    service: ArticleService = Depends(get_article_service),
):
    return await service.create(data, user)


@router.get("", response_model=PaginatedArticles)
async def list_articles(
    query: ArticleQuery = Depends(article_query_params),
    service: ArticleService = Depends(get_article_service),
):
    return await service.find_all(query)


@router.get(
    "/{article_id}",
    response_model=ArticleResponse,
    responses={404: {"model": ErrorResponse, "description": "Article not found"}},
)
async def get_article(article_id: uuid.UUID, service: ArticleService = Depends(get_article_service)):
    return await service.find_one(article_id)


@router.patch("/{article_id}", response_model=ArticleResponse, responses=_OWNER_ERRORS)
async def update_article(
    article_id: uuid.UUID,
    data: ArticleUpdate,
    user: User = Depends(get_current_user),
    service: ArticleService = Depends(get_article_service),
):
    return await service.update(article_id, data, user)


@router.delete("/{article_id}", status_code=204, responses=_OWNER_ERRORS)
async def delete_article(
    article_id: uuid.UUID,
    user: User = Depends(get_current_user),
    service: ArticleService = Depends(get_article_service),
):
    await service.remove(article_id, user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
