"""User service — accounts, credentials, and Google sign-in.

Users are created by registration, by their first Google sign-in, or by
the demo seeder, and are never deleted. Username and email are unique;
a clash is reported as UserExistsError and becomes a 409.
"""

import re
from typing import Optional

import structlog
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fourme.auth.google import GoogleUser
from fourme.auth.password import hash_password, verify_password
from fourme.db.models import User

logger = structlog.get_logger()

DEMO_USERNAME = "demo"
DEMO_EMAIL = "demo@example.com"
DEMO_PASSWORD = "password"


class UserExistsError(Exception):
    """Username or email is already taken."""


class UserService:
    """Business logic for user accounts."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: int) -> Optional[User]:
        return await self.db.get(User, user_id)

    async def register(self, username: str, email: str, password: str) -> User:
        taken = await self.db.scalar(
            select(User.id).where(or_(User.username == username, User.email == email))
        )
        if taken is not None:
            raise UserExistsError("Username or email already exists")

        user = User(
            username=username,
            email=email,
            password_hash=hash_password(password),
        )
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError as e:
            # Lost a race with a concurrent registration.
            await self.db.rollback()
            raise UserExistsError("Username or email already exists") from e

        await self.db.refresh(user)
        logger.info("user.registered", user_id=user.id)
        return user

    async def authenticate(self, username: str, password: str) -> Optional[User]:
        """The user if the password matches. Google-only accounts never match."""
        result = await self.db.execute(select(User).where(User.username == username))
        user = result.scalars().first()
        if not user or not user.password_hash:
            return None
        if not verify_password(password, user.password_hash):
            return None
        return user

    # ─── Google ──────────────────────────────────────────

    async def sign_in_with_google(self, profile: GoogleUser) -> User:
        """Find the user for a Google profile, linking or creating as needed.

        Lookup order: google_id, then email (an existing password account
        gets the Google id attached), then a brand-new account.
        """
        result = await self.db.execute(
            select(User).where(User.google_id == profile.id)
        )
        user = result.scalars().first()
        if user:
            return user

        result = await self.db.execute(select(User).where(User.email == profile.email))
        user = result.scalars().first()
        if user:
            user.google_id = profile.id
            if profile.picture and not user.avatar_url:
                user.avatar_url = profile.picture
            await self.db.commit()
            await self.db.refresh(user)
            logger.info("user.google_linked", user_id=user.id)
            return user

        user = User(
            username=await self._free_username(profile),
            email=profile.email,
            google_id=profile.id,
            avatar_url=profile.picture,
        )
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError as e:
            # A concurrent first sign-in may have created the same account.
            await self.db.rollback()
            result = await self.db.execute(
                select(User).where(
                    or_(User.google_id == profile.id, User.email == profile.email)
                )
            )
            winner = result.scalars().first()
            if winner and winner.google_id == profile.id:
                return winner
            raise UserExistsError("Username or email already exists") from e

        await self.db.refresh(user)
        logger.info("user.google_created", user_id=user.id)
        return user

    async def _free_username(self, profile: GoogleUser) -> str:
        base = re.sub(r"[^a-z0-9_]+", "", profile.email.split("@")[0].lower())
        base = (base or "user")[:40].ljust(3, "0")
        candidate, n = base, 1
        while await self.db.scalar(select(User.id).where(User.username == candidate)):
            n += 1
            candidate = f"{base}{n}"
        return candidate

    # ─── Demo data ───────────────────────────────────────

    async def ensure_demo_user(self) -> tuple[User, bool]:
        """Create the demo/password account if missing. Returns (user, created)."""
        result = await self.db.execute(select(User).where(User.username == DEMO_USERNAME))
        user = result.scalars().first()
        if user:
            return user, False
        return await self.register(DEMO_USERNAME, DEMO_EMAIL, DEMO_PASSWORD), True
