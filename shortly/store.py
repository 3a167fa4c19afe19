"""Persistent store for short links and their click history.

The store is the source of truth. Each operation opens its own session from
the process-scoped session factory, so background click writes never share
a request's session.

Flow Diagram: create()
=======================
::
    ┌─────────────┐
    │ INSERT      │
    │ short_links │
    └──────┬──────┘
    UNIQUE │ violation?
    ┌──────┴──────┐
    │ NO          │ YES
    ▼             ▼
┌─────────┐  ┌──────────────┐
│ return  │  │ rollback,    │
│ link    │  │ ConflictError│
└─────────┘  └──────────────┘

Key Behaviours
===============
- Uniqueness of codes/slugs is enforced by the unique constraint; the
  availability check only produces friendlier errors.
- Lookups for redirects only return active, non-expired links.
- Click recording increments click_count in SQL and appends the event in
  one transaction.
- Deleting a link deletes its click history first, so the behaviour does
  not depend on the backend enforcing ON DELETE CASCADE.
- purge_expired() is the passive expiry primitive driven by the sweeper;
  the redirect path never deletes.
- Transport failures surface as UpstreamUnavailableError.
"""

import datetime
import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager

from sqlalchemy import Select, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shortly.exceptions import ConflictError, UpstreamUnavailableError
from shortly.models import ClickEvent, ShortLink, utcnow
from shortly.user_agent import ClientInfo

__all__ = ["LinkStore"]

logger = logging.getLogger("shortly.store")

TRANSPORT_ERRORS = (OperationalError, InterfaceError, OSError)


def _active(now: datetime.datetime) -> tuple:
    return (
        ShortLink.is_active.is_(True),
        or_(ShortLink.expires_at.is_(None), ShortLink.expires_at > now),
    )


class LinkStore:
    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = sessions

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._sessions() as session:
                yield session
        except TRANSPORT_ERRORS as exc:
            logger.error(f"Persistent store unavailable: {exc}")
            raise UpstreamUnavailableError("Persistent store unavailable") from exc

    async def create(
        self,
        short_code: str,
        original_url: str,
        owner_id: str,
        custom_slug: str | None = None,
        expires_at: datetime.datetime | None = None,
    ) -> ShortLink:
        link = ShortLink(
            short_code=short_code,
            original_url=original_url,
            custom_slug=custom_slug,
            owner_id=owner_id,
            is_active=True,
            click_count=0,
            expires_at=expires_at,
        )
        async with self._session() as session:
            session.add(link)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                logger.warning(f"Unique constraint rejected short code: {short_code}")
                raise ConflictError(f"Short code '{short_code}' is already in use") from exc
        return link

    async def code_exists(self, value: str) -> bool:
        stmt = (
            select(ShortLink.id)
            .where(or_(ShortLink.short_code == value, ShortLink.custom_slug == value))
            .limit(1)
        )
        async with self._session() as session:
            return await session.scalar(stmt) is not None

    async def find_active(self, code: str, now: datetime.datetime | None = None) -> ShortLink | None:
        stmt = select(ShortLink).where(ShortLink.short_code == code, *_active(now or utcnow()))
        async with self._session() as session:
            return await session.scalar(stmt)

    async def get_owned(self, code: str, owner_id: str) -> ShortLink | None:
        stmt = select(ShortLink).where(ShortLink.short_code == code, ShortLink.owner_id == owner_id)
        async with self._session() as session:
            return await session.scalar(stmt)

    async def record_click(
        self,
        code: str,
        client: ClientInfo,
        ip: str | None = None,
        user_agent: str | None = None,
        referer: str | None = None,
        at: datetime.datetime | None = None,
        link_id: int | None = None,
    ) -> bool:
        """Increment the link's counter and append a ClickEvent.

        Returns False when no active link matches (deleted or expired in
        the meantime); nothing is written in that case.
        """
        at = at or utcnow()
        async with self._session() as session:
            if link_id is None:
                link_id = await session.scalar(
                    select(ShortLink.id).where(ShortLink.short_code == code, *_active(at))
                )
                if link_id is None:
                    return False

            await session.execute(
                update(ShortLink)
                .where(ShortLink.id == link_id)
                .values(click_count=ShortLink.click_count + 1)
            )
            session.add(
                ClickEvent(
                    link_id=link_id,
                    timestamp=at,
                    ip=ip,
                    user_agent=user_agent,
                    referer=referer,
                    device=client.device,
                    browser=client.browser,
                    os=client.os,
                )
            )
            await session.commit()
        return True

    async def delete(self, code: str, owner_id: str) -> bool:
        stmt = select(ShortLink.id, ShortLink.short_code).where(
            ShortLink.short_code == code, ShortLink.owner_id == owner_id
        )
        return bool(await self._delete_selected(stmt))

    async def purge_owner(self, owner_id: str) -> list[str]:
        stmt = select(ShortLink.id, ShortLink.short_code).where(ShortLink.owner_id == owner_id)
        return await self._delete_selected(stmt)

    async def purge_expired(
        self, now: datetime.datetime | None = None, batch_size: int = 500
    ) -> list[str]:
        stmt = (
            select(ShortLink.id, ShortLink.short_code)
            .where(ShortLink.expires_at.is_not(None), ShortLink.expires_at <= (now or utcnow()))
            .order_by(ShortLink.expires_at)
            .limit(batch_size)
        )
        return await self._delete_selected(stmt)

    async def _delete_selected(self, stmt: Select) -> list[str]:
        async with self._session() as session:
            rows = (await session.execute(stmt)).all()
            if not rows:
                return []
            ids = [row.id for row in rows]
            await session.execute(delete(ClickEvent).where(ClickEvent.link_id.in_(ids)))
            await session.execute(delete(ShortLink).where(ShortLink.id.in_(ids)))
            await session.commit()
        return [row.short_code for row in rows]

    async def list_for_owner(
        self, owner_id: str, page: int = 1, limit: int = 10
    ) -> tuple[Sequence[ShortLink], int]:
        offset = (page - 1) * limit
        async with self._session() as session:
            total = await session.scalar(
                select(func.count()).select_from(ShortLink).where(ShortLink.owner_id == owner_id)
            )
            result = await session.scalars(
                select(ShortLink)
                .where(ShortLink.owner_id == owner_id)
                .order_by(ShortLink.created_at.desc(), ShortLink.id.desc())
                .offset(offset)
                .limit(limit)
            )
            return result.all(), int(total or 0)

    async def click_history(self, link_id: int) -> Sequence[ClickEvent]:
        stmt = (
            select(ClickEvent)
            .where(ClickEvent.link_id == link_id)
            .order_by(ClickEvent.timestamp, ClickEvent.id)
        )
        async with self._session() as session:
            return (await session.scalars(stmt)).all()
