from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from articles_api.database import get_db
from articles_api.schemas import AuthResponse, ErrorResponse, LoginRequest, RegisterRequest
from articles_api.services import auth_service

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


@router.post(
    "/register",
    status_code=201,
    response_model=AuthResponse,
    responses={409: {"model": ErrorResponse, "description": "Email already exists"}},
)
async def register(data: RegisterRequest, db: AsyncSession = Depends(get_db)):
    return await auth_service.register(db, data)


@router.post(
    "/login",
    response_model=AuthResponse,
    responses={401: {"model": ErrorResponse, "description": "Invalid credentials"}},
)
async def login(data: LoginRequest, db: AsyncSession = Depends(get_db)):
    return await auth_service.login(db, data)
