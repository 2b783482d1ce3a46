"""
User service — persistence for the User aggregate.

Users are not cached: they are read once per authenticated request by
primary key and on login by email, both indexed lookups.
"""
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from articles_api.models import User
from articles_api.security import get_password_hash, verify_password


def user_to_dict(user: User) -> dict:
    """Serialise a User to the public shape (the password hash is never included)."""
    return {
        "id": str(user.id),
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
    }


async def create_user(
    db: AsyncSession,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
) -> User:
    """Persist a new user with a bcrypt-hashed password."""
    user = User(
        email=email,
        password=get_password_hash(password),
        first_name=first_name,
        last_name=last_name,
    )
    db.add(user)
    await db.flush()
    return user


async def find_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def find_by_id(db: AsyncSession, user_id: uuid.UUID) -> User | None:
    return await db.get(User, user_id)


def validate_password(user: User, password: str) -> bool:
    return verify_password(password, user.password)
