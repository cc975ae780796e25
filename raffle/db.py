from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional, Tuple

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from .errors import ConcurrentUpdate
from .models import Base, StateEntry
from .storage import Record


def create_session_factory(database_url: str) -> Tuple[Engine, sessionmaker]:
    engine = create_engine(database_url, future=True, echo=False, pool_pre_ping=True)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    return engine, factory


@contextmanager
def session_scope(factory: sessionmaker) -> Iterator[Session]:
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


class _SessionView:
    def __init__(self, session: Session) -> None:
        self._session = session

    def load(self, key: str) -> Optional[Record]:
        entry = self._session.get(StateEntry, key, with_for_update=True)
        return entry.get_value() if entry else None

    def save(self, key: str, value: Record) -> None:
        entry = self._session.get(StateEntry, key)
        if entry is None:
            entry = StateEntry(key=key)
            self._session.add(entry)
        entry.set_value(value)
        self._session.flush()

    def iter_prefix(self, prefix: str) -> Iterator[Tuple[str, Record]]:
        query = (
            self._session.query(StateEntry)
            .filter(StateEntry.key.startswith(prefix, autoescape=True))
            .order_by(StateEntry.key)
        )
        for entry in query.all():
            yield entry.key, entry.get_value()


class SqlStore:
    """State store backed by the ``state_entries`` table; one session per transaction.

    Rows read for an operation are locked where the database supports it, and
    every write checks the row version, so two processes updating the same round
    cannot silently overwrite each other: the later commit fails with
    :class:`ConcurrentUpdate` and nothing it wrote is kept.
    """

    def __init__(self, database_url: str) -> None:
        self.engine, self._factory = create_session_factory(database_url)
        Base.metadata.create_all(self.engine)

    @contextmanager
    def transaction(self) -> Iterator[_SessionView]:
        try:
            with session_scope(self._factory) as session:
                yield _SessionView(session)
        except (StaleDataError, IntegrityError) as exc:
            raise ConcurrentUpdate("State changed concurrently; retry the operation") from exc
