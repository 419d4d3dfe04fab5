"""Account passwords and the signed session cookie."""
import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone

import jwt
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from eop_assistant.config import JWT_EXPIRES_DAYS, JWT_SECRET
from eop_assistant.models import User

logger = logging.getLogger(__name__)

COOKIE_NAME = "token"
_ALGORITHM = "HS256"
_PBKDF2_ITERATIONS = 260_000


class InvalidTokenError(Exception):
    pass


class UserExistsError(Exception):
    pass


def hash_password(password: str, *, iterations: int = _PBKDF2_ITERATIONS) -> str:
    """Return ``pbkdf2_sha256$<iterations>$<salt>$<hex digest>``."""
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), iterations)
    return f"pbkdf2_sha256${iterations}${salt}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        scheme, iterations, salt, expected = stored.split("$", 3)
        if scheme != "pbkdf2_sha256":
            return False
        digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), int(iterations))
    except (ValueError, TypeError):
        return False
    return hmac.compare_digest(digest.hex(), expected)


def issue_token(email: str, user_id: str, *, secret: str = JWT_SECRET, expires_days: int = JWT_EXPIRES_DAYS) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "email": email,
        "userId": user_id,
        "iat": now,
        "exp": now + timedelta(days=expires_days),
    }
    return jwt.encode(payload, secret, algorithm=_ALGORITHM)


def decode_token(token: str, *, secret: str = JWT_SECRET) -> dict:
    try:
        return jwt.decode(token, secret, algorithms=[_ALGORITHM])
    except jwt.PyJWTError as e:
        raise InvalidTokenError(str(e)) from e


def normalize_email(email: str) -> str:
    return email.strip().lower()


async def find_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == normalize_email(email)))
    return result.scalar_one_or_none()


async def create_user(db: AsyncSession, email: str, password: str) -> User:
    """Create an account; the unique email column decides races."""
    if await find_user_by_email(db, email) is not None:
        raise UserExistsError(email)
    user = User(email=normalize_email(email), password_hash=hash_password(password))
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise UserExistsError(email) from None
    logger.info("Created user %s", user.email)
    return user


async def authenticate(db: AsyncSession, email: str, password: str) -> User | None:
    user = await find_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        return None
    return user
