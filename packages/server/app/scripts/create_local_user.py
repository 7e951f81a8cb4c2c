"""
Script to create (or find) a local user and print a bearer token for it.

    python -m app.scripts.create_local_user --email dev@example.com --name "Dev User"
"""

import argparse
import asyncio
from datetime import timedelta
from typing import Optional

import structlog
from sqlalchemy import func
from sqlmodel import select

from app.core.auth import create_jwt
from app.core.config import get_settings
from app.core.database import engine, get_session_context
from app.core.log_config import configure_logging
from app.models.user import User

settings = get_settings()
log = structlog.get_logger()


async def create_user(email: str, full_name: Optional[str], expire_minutes: int) -> str:
    email = email.strip().lower()
    async with get_session_context() as session:
        result = await session.execute(select(User).where(func.lower(User.email) == email))
        user = result.scalars().first()
        if user is None:
            user = User(email=email, full_name=full_name, username=email.split("@", 1)[0])
            session.add(user)
            await session.flush()
            log.info("user.created", user_id=str(user.id), email=email)
        else:
            log.info("user.exists", user_id=str(user.id), email=email)
        user_id = user.id

    await engine.dispose()
    return create_jwt(user_id, expires_delta=timedelta(minutes=expire_minutes))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create a local user and print a bearer token.")
    parser.add_argument("--email", required=True, help="Email address for the user")
    parser.add_argument("--name", default=None, help="Full name for the user")
    parser.add_argument(
        "--expire-minutes",
        type=int,
        default=settings.jwt_expire_minutes,
        help="Token lifetime in minutes",
    )
    args = parser.parse_args()

    configure_logging(settings.log_level, "text")
    token = asyncio.run(create_user(args.email, args.name, args.expire_minutes))
    print(token)
