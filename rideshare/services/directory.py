"""
Directory lookups used to decorate ride responses with participant info.

The directory is a separate relational store.  A failing lookup never fails
the ride operation: every requested id still gets a profile, named
``Unknown`` when nothing could be found.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rideshare.infrastructure.database import directory_session_factory
from rideshare.infrastructure.repositories import UserRepository

logger = logging.getLogger(__name__)

UNKNOWN_NAME = "Unknown"


@dataclass(frozen=True)
class Profile:
    id: str
    name: str = UNKNOWN_NAME
    email: Optional[str] = None
    phone: Optional[str] = None
    department: Optional[str] = None
    year: Optional[str] = None


class DirectoryService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = directory_session_factory,
    ):
        self.session_factory = session_factory

    async def profiles(self, user_ids: Iterable[str]) -> dict[str, Profile]:
        ids = set(user_ids)
        if not ids:
            return {}

        try:
            async with self.session_factory() as session:
                users = await UserRepository(session).get_many(ids)
        except (SQLAlchemyError, OSError):
            logger.warning(
                "Directory lookup failed for %d user(s); using placeholders",
                len(ids),
                exc_info=True,
            )
            users = []

        found = {
            u.id: Profile(
                id=u.id,
                name=u.name or UNKNOWN_NAME,
                email=u.email,
                phone=u.phone,
                department=u.department,
                year=u.year,
            )
            for u in users
        }
        return {uid: found.get(uid, Profile(id=uid)) for uid in ids}
