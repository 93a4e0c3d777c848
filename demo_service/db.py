"""Bookings database access over a bounded SQLAlchemy asyncio pool.

The pool is created once at startup and shared by reference with every
request.  It enforces three limits:

  max connections      pool_size, no overflow
  acquire timeout      pool_timeout; a waiter past it gets DatabaseError
  idle recycle         pool_recycle plus pre-ping on checkout
"""

from __future__ import annotations

import logging
from typing import Union

from sqlalchemy import (
    Column,
    DateTime,
    MetaData,
    Numeric,
    Table,
    Text,
    select,
    text,
)
from sqlalchemy.engine import URL
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool

from demo_service.errors import DatabaseError, StartupError
from demo_service.models import Booking

log = logging.getLogger("demo_service.db")

TOP_BOOKINGS_LIMIT = 10

metadata = MetaData()

# Owned by the external database; described here only so queries are typed.
bookings = Table(
    "bookings",
    metadata,
    Column("book_ref", Text, primary_key=True),
    Column("book_date", DateTime(timezone=True), nullable=False),
    Column("total_amount", Numeric(10, 2), nullable=False),
)


def create_pool(
    url: Union[str, URL],
    max_size: int = 5,
    idle_timeout: float = 60.0,
    acquire_timeout: float = 5.0,
) -> AsyncEngine:
    """Create the process-wide engine. No connection is opened yet."""
    return create_async_engine(
        url,
        poolclass=AsyncAdaptedQueuePool,
        pool_size=max_size,
        max_overflow=0,
        pool_timeout=acquire_timeout,
        pool_recycle=idle_timeout,
        pool_pre_ping=True,
    )


async def verify_pool(engine: AsyncEngine) -> None:
    """Open one connection so a bad DSN or dead server fails at startup."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        raise StartupError(f"Database unreachable: {e}") from e
    log.info("Database pool ready (%s)", engine.url.render_as_string(hide_password=True))


class BookingRepository:
    """Read-only queries against the ``bookings`` table."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def top_by_total(self, limit: int = TOP_BOOKINGS_LIMIT) -> list[Booking]:
        """Bookings with the largest totals, highest first.

        Ties keep whatever order the database returns them in.
        """
        stmt = (
            select(bookings.c.book_ref, bookings.c.book_date, bookings.c.total_amount)
            .order_by(bookings.c.total_amount.desc())
            .limit(limit)
        )
        try:
            async with self._engine.connect() as conn:
                result = await conn.execute(stmt)
                rows = result.all()
        except (SQLAlchemyError, OSError) as e:
            raise DatabaseError(f"top_by_total failed: {e}") from e

        return [
            Booking(id=row.book_ref, date=row.book_date, total=row.total_amount)
            for row in rows
        ]
