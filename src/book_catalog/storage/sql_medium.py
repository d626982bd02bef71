"""
SQL Key-Value Medium

SQLAlchemy-backed implementation of ``KeyValueMedium``. Each key is one row in
the ``kv_entry`` table. Writes issued inside ``atomic()`` share a single
transaction, which is what lets the chunked store replace a chunk set and its
index without a reader ever seeing a mix of old and new chunks.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from threading import local
from typing import Iterator, Optional, Set

from sqlalchemy import String, Text, DateTime, create_engine, delete, select, func
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from .medium import KeyValueMedium


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class KeyValueEntry(Base):
    """
    A single key-value pair.
    """
    __tablename__ = "kv_entry"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class SqlMedium(KeyValueMedium):
    """
    Key-value medium persisted through SQLAlchemy.

    Parameters
    ----------
    engine : Engine
        SQLAlchemy engine. Tables are created on construction.
    max_value_size : Optional[int]
        Per-value ceiling in characters; None means unbounded.
    """

    def __init__(self, engine: Engine, max_value_size: Optional[int] = None) -> None:
        super().__init__(max_value_size)
        self._engine = engine
        self._session_factory = sessionmaker(
            bind=engine,
            expire_on_commit=False,
            autoflush=False,
        )
        self._local = local()
        Base.metadata.create_all(engine)

    @classmethod
    def from_url(cls, url: str, max_value_size: Optional[int] = None) -> "SqlMedium":
        """Build a medium from a database URL, creating a SQLite file's directory."""
        parsed = make_url(url)
        if parsed.get_backend_name() == "sqlite" and parsed.database not in (None, "", ":memory:"):
            Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)
        return cls(create_engine(url, pool_pre_ping=True), max_value_size)

    # ------------------------------------------------------------------
    # Session handling
    # ------------------------------------------------------------------

    @property
    def _active(self) -> Optional[Session]:
        # Open transaction of the current thread, if any
        return getattr(self._local, "session", None)

    @_active.setter
    def _active(self, session: Optional[Session]) -> None:
        self._local.session = session

    @contextmanager
    def _session(self) -> Iterator[Session]:
        # Inside atomic() every operation joins the open transaction.
        if self._active is not None:
            yield self._active
            return

        with self._session_factory() as session:
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise

    @contextmanager
    def atomic(self) -> Iterator[None]:
        if self._active is not None:
            yield
            return

        with self._session_factory() as session:
            self._active = session
            try:
                yield
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                self._active = None

    # ------------------------------------------------------------------
    # KeyValueMedium
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[str]:
        with self._session() as session:
            return session.execute(
                select(KeyValueEntry.value).where(KeyValueEntry.key == key)
            ).scalar_one_or_none()

    def set(self, key: str, value: str) -> None:
        self._check_size(key, value)
        with self._session() as session:
            entry = session.get(KeyValueEntry, key)
            if entry is None:
                session.add(KeyValueEntry(key=key, value=value))
            else:
                entry.value = value
            session.flush()

    def remove(self, key: str) -> None:
        with self._session() as session:
            session.execute(delete(KeyValueEntry).where(KeyValueEntry.key == key))

    def keys(self) -> Set[str]:
        with self._session() as session:
            return set(session.execute(select(KeyValueEntry.key)).scalars().all())
