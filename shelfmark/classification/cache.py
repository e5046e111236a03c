"""
Classification Cache

Per-ISBN store of previously assigned classifications, backed by
SQLAlchemy (SQLite for development/tests, PostgreSQL in production).

Writes are insert-if-absent: an existing row, verified or not, is never
overwritten by the cascade. Only a cataloger marks rows verified.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from loguru import logger
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Index,
    String,
    Text,
    create_engine,
    or_,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool


Base = declarative_base()


class ClassificationSource(str, Enum):
    MANUAL = "manual"
    AI = "ai"
    OPENLIBRARY = "openlibrary"
    LOCAL_CACHE = "local_cache"


# Title tokens shorter than this, or in STOPWORDS, are not used for retrieval
MIN_TOKEN_LENGTH = 3
STOPWORDS = frozenset({
    "the", "and", "for", "with", "from", "into", "that", "this", "your", "our",
    "dan", "yang", "untuk", "dari", "dengan", "pada", "dalam", "atau", "ke",
})

# Rows read per round trip while scanning for similar titles
SIMILAR_BATCH_SIZE = 50


class ClassificationCacheModel(Base):
    """SQLAlchemy model for cached classifications."""

    __tablename__ = "classification_cache"

    isbn = Column(String(13), primary_key=True)
    title = Column(String(500), nullable=False, default="")
    authors = Column(String(1000))  # semicolon-joined
    ddc = Column(String(50))
    lcc = Column(String(100))
    call_number = Column(String(100))
    subjects = Column(Text)  # semicolon-joined
    source = Column(String(20), nullable=False, default=ClassificationSource.AI.value)
    verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_classification_title", "title"),
    )


@dataclass
class ClassificationCacheEntry:
    """Data class for cache rows."""

    isbn: str
    title: str = ""
    authors: Optional[str] = None
    ddc: Optional[str] = None
    lcc: Optional[str] = None
    call_number: Optional[str] = None
    subjects: Optional[str] = None
    source: ClassificationSource = ClassificationSource.AI
    verified: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, model: ClassificationCacheModel) -> "ClassificationCacheEntry":
        return cls(
            isbn=model.isbn,
            title=model.title or "",
            authors=model.authors,
            ddc=model.ddc,
            lcc=model.lcc,
            call_number=model.call_number,
            subjects=model.subjects,
            source=ClassificationSource(model.source),
            verified=bool(model.verified),
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def to_dict(self) -> dict:
        return {
            "isbn": self.isbn,
            "title": self.title,
            "authors": self.authors,
            "ddc": self.ddc,
            "lcc": self.lcc,
            "call_number": self.call_number,
            "subjects": self.subjects,
            "source": self.source.value,
            "verified": self.verified,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


def title_tokens(title: Optional[str]) -> list[str]:
    """Lower-cased retrieval tokens of a title, in order, without duplicates."""
    tokens: list[str] = []
    for token in re.findall(r"\w+", (title or "").lower()):
        if len(token) >= MIN_TOKEN_LENGTH and token not in STOPWORDS and token not in tokens:
            tokens.append(token)
    return tokens


class ClassificationCacheRepository:
    """
    Repository for the classification cache.

    Usage:
        repo = ClassificationCacheRepository("sqlite:///shelfmark.db")
        repo.insert_if_absent(ClassificationCacheEntry(isbn="9780684835396", ddc="650.1"))
        entry = repo.get("9780684835396")
    """

    def __init__(self, database_url: Optional[str] = None):
        """
        Initialize repository.

        Args:
            database_url: SQLAlchemy database URL; in-memory SQLite if omitted
        """
        if database_url:
            # Strip async drivers for sync engine
            self.database_url = database_url.replace("+aiosqlite", "").replace("+asyncpg", "")
        else:
            self.database_url = "sqlite:///:memory:"

        if self.database_url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, otherwise every session sees an empty database
            self.engine = create_engine(
                self.database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(self.database_url, echo=False)

        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine)

        logger.info(f"ClassificationCacheRepository initialized: {self.database_url[:50]}...")

    def get_session(self) -> Session:
        """Get database session."""
        return self.SessionLocal()

    def get(self, isbn: str) -> Optional[ClassificationCacheEntry]:
        with self.get_session() as session:
            row = session.get(ClassificationCacheModel, isbn)
            if row:
                return ClassificationCacheEntry.from_model(row)
            return None

    def insert_if_absent(self, entry: ClassificationCacheEntry) -> bool:
        """
        Insert a row unless one already exists for the ISBN.

        Returns:
            True if the row was inserted
        """
        with self.get_session() as session:
            if session.get(ClassificationCacheModel, entry.isbn) is not None:
                logger.debug(f"Classification cache row for {entry.isbn} already exists; keeping it")
                return False

            now = datetime.utcnow()
            session.add(ClassificationCacheModel(
                isbn=entry.isbn,
                title=entry.title or "",
                authors=entry.authors,
                ddc=entry.ddc,
                lcc=entry.lcc,
                call_number=entry.call_number,
                subjects=entry.subjects,
                source=ClassificationSource(entry.source).value,
                verified=entry.verified,
                created_at=now,
                updated_at=now,
            ))
            try:
                session.commit()
            except IntegrityError:
                # Lost an insert race to a concurrent writer
                session.rollback()
                return False

        logger.info(f"Cached classification for {entry.isbn} (source={ClassificationSource(entry.source).value})")
        return True

    def find_similar(self, title: Optional[str], limit: int = 3, exclude_isbn: Optional[str] = None) -> list[ClassificationCacheEntry]:
        """
        Rows whose title shares a retrieval token with ``title``.

        Verified rows come first, then the most recent.
        """
        tokens = title_tokens(title)
        if not tokens or limit <= 0:
            return []

        with self.get_session() as session:
            query = session.query(ClassificationCacheModel).filter(
                or_(*[ClassificationCacheModel.title.ilike(f"%{token}%") for token in tokens])
            )
            if exclude_isbn:
                query = query.filter(ClassificationCacheModel.isbn != exclude_isbn)

            query = query.order_by(
                ClassificationCacheModel.verified.desc(),
                ClassificationCacheModel.created_at.desc(),
            )

            # ilike matches substrings; keep only whole-token overlaps.
            # Rows are streamed in batches and reading stops at ``limit``.
            wanted = set(tokens)
            results: list[ClassificationCacheEntry] = []
            for row in query.yield_per(SIMILAR_BATCH_SIZE):
                if wanted & set(title_tokens(row.title)):
                    results.append(ClassificationCacheEntry.from_model(row))
                    if len(results) >= limit:
                        break
            return results

    def mark_verified(self, isbn: str, **corrections: Optional[str]) -> Optional[ClassificationCacheEntry]:
        """
        Mark a row verified, optionally correcting its fields.

        Returns:
            Updated entry or None if no row exists
        """
        with self.get_session() as session:
            row = session.get(ClassificationCacheModel, isbn)
            if row is None:
                return None

            for key, value in corrections.items():
                if key in ("ddc", "lcc", "call_number", "subjects", "title", "authors"):
                    setattr(row, key, value)

            row.verified = True
            row.updated_at = datetime.utcnow()
            session.commit()
            session.refresh(row)

            logger.info(f"Classification for {isbn} marked verified")
            return ClassificationCacheEntry.from_model(row)

    def count(self) -> int:
        with self.get_session() as session:
            return session.query(ClassificationCacheModel).count()
