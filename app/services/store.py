"""
app/services/store.py – persistent store for users and itineraries.

Thin repository classes over SQLAlchemy sessions. Ownership is *not* enforced
here; callers compare ``Itinerary.user_id`` with the requester so that
"not found" can be reported before "access denied".
"""
from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, sessionmaker

from app.db import Itinerary, User
from app.models import ItinerarySort

logger = logging.getLogger(__name__)

_SORT_ORDER = {
    ItinerarySort.CREATED_AT: (Itinerary.created_at.desc(), Itinerary.id),
    ItinerarySort.START_DATE: (Itinerary.start_date.asc(), Itinerary.id),
    ItinerarySort.TITLE: (Itinerary.title.asc(), Itinerary.id),
}


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


class ItineraryStore:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._sessions = session_factory

    def create(self, owner_id: str, data: dict[str, Any]) -> Itinerary:
        with self._sessions() as session:
            itinerary = Itinerary(user_id=owner_id, **data)
            session.add(itinerary)
            session.commit()
            session.refresh(itinerary)
            _ = itinerary.owner
            logger.info("Itinerary created", extra={"itinerary_id": itinerary.id, "owner_id": owner_id})
            return itinerary

    def get(self, itinerary_id: str) -> Optional[Itinerary]:
        with self._sessions() as session:
            return session.get(Itinerary, itinerary_id)

    def list_for_owner(
        self,
        owner_id: str,
        *,
        destination: Optional[str] = None,
        sort: ItinerarySort = ItinerarySort.CREATED_AT,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Itinerary], int]:
        """Return one page of the owner's itineraries plus the unpaged total."""
        conditions = [Itinerary.user_id == owner_id]
        if destination:
            conditions.append(
                func.lower(Itinerary.destination).contains(destination.lower(), autoescape=True)
            )

        with self._sessions() as session:
            total = session.scalar(select(func.count()).select_from(Itinerary).where(*conditions)) or 0
            stmt = (
                select(Itinerary)
                .where(*conditions)
                .order_by(*_SORT_ORDER[sort])
                .offset((page - 1) * limit)
                .limit(limit)
            )
            items = list(session.scalars(stmt).unique())
            return items, total

    def update(self, itinerary_id: str, changes: dict[str, Any]) -> Optional[Itinerary]:
        with self._sessions() as session:
            itinerary = session.get(Itinerary, itinerary_id)
            if itinerary is None:
                return None
            for field, value in changes.items():
                setattr(itinerary, field, value)
            session.commit()
            session.refresh(itinerary)
            _ = itinerary.owner
            return itinerary

    def delete(self, itinerary_id: str) -> bool:
        with self._sessions() as session:
            itinerary = session.get(Itinerary, itinerary_id)
            if itinerary is None:
                return False
            session.delete(itinerary)
            session.commit()
            return True


class UserStore:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._sessions = session_factory

    def create(
        self,
        *,
        username: str,
        email: str,
        password_hash: str,
        first_name: str,
        last_name: str,
    ) -> User:
        with self._sessions() as session:
            user = User(
                username=username,
                email=email,
                password_hash=password_hash,
                first_name=first_name,
                last_name=last_name,
            )
            session.add(user)
            session.commit()
            session.refresh(user)
            return user

    def get(self, user_id: str) -> Optional[User]:
        with self._sessions() as session:
            return session.get(User, user_id)

    def find_by_identifier(self, identifier: str) -> Optional[User]:
        """Look a user up by email (case-insensitive) or exact username."""
        with self._sessions() as session:
            stmt = select(User).where(
                or_(User.email == identifier.lower(), User.username == identifier)
            )
            return session.scalars(stmt).first()

    def exists(self, *, username: str, email: str) -> bool:
        with self._sessions() as session:
            stmt = select(User.id).where(or_(User.email == email.lower(), User.username == username))
            return session.scalars(stmt).first() is not None

    def touch_last_login(self, user_id: str) -> Optional[User]:
        with self._sessions() as session:
            user = session.get(User, user_id)
            if user is None:
                return None
            user.last_login = datetime.now(timezone.utc)
            session.commit()
            session.refresh(user)
            return user
