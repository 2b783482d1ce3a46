"""
Auth service — registration and login, both answering with a JWT.
"""
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from articles_api.exceptions import ConflictError, UnauthorizedError
from articles_api.models import User
from articles_api.schemas import LoginRequest, RegisterRequest
from articles_api.security import create_access_token
from articles_api.services import user_service

logger = logging.getLogger(__name__)


def _token_response(user: User) -> dict:
    return {
        "access_token": create_access_token(str(user.id), user.email),
        "token_type": "bearer",
        "user": user_service.user_to_dict(user),
    }


async def register(db: AsyncSession, data: RegisterRequest) -> dict:
    """
    Create an account and return an access token for it.

    Raises ConflictError when the email is taken, both on the explicit
    lookup and when a concurrent registration wins the unique constraint.
    """
    if await user_service.find_by_email(db, data.email) is not None:
        raise ConflictError("Email already exists")

    try:
        user = await user_service.create_user(
            db, data.email, data.password, data.first_name, data.last_name
        )
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Email already exists")

    logger.info("Registered user %s", user.id)
    return _token_response(user)


async def login(db: AsyncSession, data: LoginRequest) -> dict:
    user = await user_service.find_by_email(db, data.email)
    if user is None or not user_service.validate_password(user, data.password):
        raise UnauthorizedError("Invalid credentials")
    return _token_response(user)
