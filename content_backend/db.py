"""
Document store abstraction over SQLAlchemy and an in-memory test implementation.

Documents are JSON objects grouped by collection. Each one carries a float
sort key supplied by the caller and an insertion sequence number used to
break ties between identical sort keys.
"""

from __future__ import annotations

import copy
import itertools
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Protocol

from sqlalchemy import JSON, Column, Float, Integer, String, create_engine, select, text
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from content_backend.errors import StoreUnavailable


class DbClient(Protocol):
    """Interface for document storage."""

    def is_ready(self) -> bool:
        ...

    def insert(self, collection: str, doc: dict, sort_at: float) -> dict:
        ...

    def find_all(self, collection: str) -> list[dict]:
        """Return every document, newest sort key first."""
        ...

    def find_by_id(self, collection: str, doc_id: str) -> Optional[dict]:
        ...

    def update(
        self,
        collection: str,
        doc_id: str,
        fields: dict,
        sort_at: Optional[float] = None,
    ) -> Optional[dict]:
        ...

    def delete(self, collection: str, doc_id: str) -> bool:
        ...

    def close(self) -> None:
        ...


@dataclass
class _StoredDoc:
    seq: int
    sort_at: float
    doc: dict


class InMemoryDbClient:
    """Simple in-memory document store for development and tests."""

    def __init__(self):
        self.collections: Dict[str, Dict[str, _StoredDoc]] = {}
        self.ready = True
        self._seq = itertools.count(1)

    def is_ready(self) -> bool:
        return self.ready

    def _collection(self, name: str) -> Dict[str, _StoredDoc]:
        return self.collections.setdefault(name, {})

    def insert(self, collection: str, doc: dict, sort_at: float) -> dict:
        stored = copy.deepcopy(doc)
        self._collection(collection)[stored["_id"]] = _StoredDoc(
            seq=next(self._seq), sort_at=sort_at, doc=stored
        )
        return copy.deepcopy(stored)

    def find_all(self, collection: str) -> list[dict]:
        items = sorted(
            self._collection(collection).values(),
            key=lambda item: (item.sort_at, item.seq),
            reverse=True,
        )
        return [copy.deepcopy(item.doc) for item in items]

    def find_by_id(self, collection: str, doc_id: str) -> Optional[dict]:
        item = self._collection(collection).get(doc_id)
        return copy.deepcopy(item.doc) if item else None

    def update(
        self,
        collection: str,
        doc_id: str,
        fields: dict,
        sort_at: Optional[float] = None,
    ) -> Optional[dict]:
        item = self._collection(collection).get(doc_id)
        if not item:
            return None
        item.doc.update(copy.deepcopy(fields))
        if sort_at is not None:
            item.sort_at = sort_at
        return copy.deepcopy(item.doc)

    def delete(self, collection: str, doc_id: str) -> bool:
        return self._collection(collection).pop(doc_id, None) is not None

    def close(self) -> None:
        self.ready = False

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.collections.clear()
        self.ready = True


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )

    def connect(self) -> None:
        """Create tables; raises when the database cannot be reached."""
        with self._session():
            Base.metadata.create_all(self.engine)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with self.Session() as session:
                yield session
        except OperationalError as exc:
            raise StoreUnavailable(details=str(exc.orig or exc)) from exc
        except DBAPIError as exc:
            if exc.connection_invalidated:
                raise StoreUnavailable(details=str(exc.orig or exc)) from exc
            raise

    def is_ready(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            return False
        return True

    def _row(self, session: Session, collection: str, doc_id: str) -> Optional["DocumentRow"]:
        stmt = select(DocumentRow).where(
            DocumentRow.collection == collection, DocumentRow.doc_id == doc_id
        )
        return session.execute(stmt).scalar_one_or_none()

    def insert(self, collection: str, doc: dict, sort_at: float) -> dict:
        with self._session() as session:
            row = DocumentRow(
                doc_id=doc["_id"],
                collection=collection,
                sort_at=sort_at,
                data=copy.deepcopy(doc),
            )
            session.add(row)
            session.commit()
            return copy.deepcopy(row.data)

    def find_all(self, collection: str) -> list[dict]:
        with self._session() as session:
            stmt = (
                select(DocumentRow)
                .where(DocumentRow.collection == collection)
                .order_by(DocumentRow.sort_at.desc(), DocumentRow.seq.desc())
            )
            return [copy.deepcopy(row.data) for row in session.execute(stmt).scalars()]

    def find_by_id(self, collection: str, doc_id: str) -> Optional[dict]:
        with self._session() as session:
            row = self._row(session, collection, doc_id)
            return copy.deepcopy(row.data) if row else None

    def update(
        self,
        collection: str,
        doc_id: str,
        fields: dict,
        sort_at: Optional[float] = None,
    ) -> Optional[dict]:
        with self._session() as session:
            row = self._row(session, collection, doc_id)
            if not row:
                return None
            # Reassign so the JSON column registers the change.
            row.data = {**row.data, **copy.deepcopy(fields)}
            if sort_at is not None:
                row.sort_at = sort_at
            session.commit()
            return copy.deepcopy(row.data)

    def delete(self, collection: str, doc_id: str) -> bool:
        with self._session() as session:
            row = self._row(session, collection, doc_id)
            if not row:
                return False
            session.delete(row)
            session.commit()
            return True

    def close(self) -> None:
        self.engine.dispose()


Base = declarative_base()


class DocumentRow(Base):
    __tablename__ = "documents"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    doc_id = Column(String, nullable=False, unique=True, index=True)
    collection = Column(String, nullable=False, index=True)
    sort_at = Column(Float, nullable=False, index=True)
    data = Column(JSON, nullable=False)
