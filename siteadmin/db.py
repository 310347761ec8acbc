"""
Relational store: SQLAlchemy rows and the engine/session handle.

The ``Store`` is constructed explicitly (at app startup or in tests) and
passed to whoever needs it; it owns the connection pool until ``dispose``.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    event,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from siteadmin.errors import StorageError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def iso_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    # SQLite hands timestamps back naive.
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


Base = declarative_base()


class AdminUserRow(Base):
    __tablename__ = "admin_users"

    id = Column(Integer, primary_key=True)
    username = Column(String(50), unique=True, nullable=False)
    email = Column(String(100), unique=True, nullable=False)
    password = Column(String(255), nullable=False)
    full_name = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    def public_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "full_name": self.full_name,
        }


class GalleryProjectRow(Base):
    __tablename__ = "gallery_projects"

    id = Column(Integer, primary_key=True)
    title = Column(String(255), nullable=False)
    subtitle = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    vehicle_type = Column(String(100), nullable=True)
    service_type = Column(String(100), nullable=True)
    duration = Column(String(50), nullable=True)
    completed_date = Column(String(50), nullable=True)
    display_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    images = relationship(
        "GalleryImageRow",
        back_populates="project",
        order_by="GalleryImageRow.image_order",
        cascade="all, delete-orphan",
    )

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "subtitle": self.subtitle,
            "description": self.description,
            "vehicle_type": self.vehicle_type,
            "service_type": self.service_type,
            "duration": self.duration,
            "completed_date": self.completed_date,
            "display_order": self.display_order,
            "is_active": self.is_active,
            "created_at": iso_timestamp(self.created_at),
            "updated_at": iso_timestamp(self.updated_at),
        }


class GalleryImageRow(Base):
    __tablename__ = "gallery_images"

    id = Column(Integer, primary_key=True)
    project_id = Column(
        Integer,
        ForeignKey("gallery_projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    image_url = Column(String(500), nullable=False)
    image_order = Column(Integer, nullable=False, default=0)
    is_primary = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    project = relationship("GalleryProjectRow", back_populates="images")

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "image_url": self.image_url,
            "image_order": self.image_order,
            "is_primary": self.is_primary,
        }


class HeroSlideRow(Base):
    __tablename__ = "hero_slides"

    id = Column(Integer, primary_key=True)
    title = Column(String(100), nullable=True)
    subtitle = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    image_url = Column(String(500), nullable=True)
    button_text = Column(String(50), nullable=True)
    button_link = Column(String(255), nullable=True)
    slide_order = Column(Integer, nullable=False, unique=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "subtitle": self.subtitle,
            "description": self.description,
            "image_url": self.image_url,
            "button_text": self.button_text,
            "button_link": self.button_link,
            "slide_order": self.slide_order,
            "is_active": self.is_active,
            "updated_at": iso_timestamp(self.updated_at),
        }


class ServiceRow(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True)
    icon = Column(String(50), nullable=False)
    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=False)
    service_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "icon": self.icon,
            "title": self.title,
            "description": self.description,
            "service_order": self.service_order,
            "is_active": self.is_active,
            "updated_at": iso_timestamp(self.updated_at),
        }


class AboutContentRow(Base):
    __tablename__ = "about_content"

    id = Column(Integer, primary_key=True)
    section = Column(String(50), unique=True, nullable=False)
    content = Column(JSON, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class ContactInfoRow(Base):
    __tablename__ = "contact_info"

    id = Column(Integer, primary_key=True)
    address = Column(Text, nullable=False)
    phone = Column(String(30), nullable=False)
    email = Column(String(100), nullable=False)
    working_hours = Column(String(100), nullable=False)
    maps_link = Column(Text, nullable=True)
    whatsapp_link = Column(String(255), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


def normalize_database_url(url: str) -> str:
    """Hosted Postgres hands out ``postgres://`` URLs; route them to psycopg 3."""
    for scheme in ("postgres://", "postgresql://"):
        if url.startswith(scheme):
            return "postgresql+psycopg://" + url[len(scheme):]
    return url


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Store:
    """
    SQLAlchemy-backed relational store. Accepts any SQLAlchemy URL (Postgres in
    production, SQLite for tests and local runs).

    Lifecycle: construct once at process start, share across requests, call
    ``dispose()`` at shutdown to drain the pool.
    """

    def __init__(
        self,
        database_url: str,
        *,
        pool_size: int = 20,
        pool_timeout: float = 5.0,
        pool_recycle: int = 1800,
    ):
        if not database_url:
            raise ValueError("database_url is required for Store")
        database_url = normalize_database_url(database_url)
        self.database_url = database_url

        if database_url.startswith("sqlite"):
            kwargs: dict = {"connect_args": {"check_same_thread": False}}
            if ":memory:" in database_url or database_url.rstrip("/") in (
                "sqlite:",
                "sqlite+pysqlite:",
            ):
                # One shared connection, otherwise each checkout sees an empty database.
                kwargs["poolclass"] = StaticPool
        else:
            kwargs = {
                "pool_size": pool_size,
                "max_overflow": 0,
                "pool_timeout": pool_timeout,
                "pool_recycle": pool_recycle,
                "pool_pre_ping": True,
            }
        self.engine = create_engine(database_url, future=True, **kwargs)
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)

        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        self.init_schema()

    def init_schema(self) -> None:
        Base.metadata.create_all(self.engine)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Borrow a connection for one transaction.

        Commits when the block exits cleanly; any exception rolls back before it
        propagates. Database faults surface as ``StorageError``.
        """
        session = self.Session()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("Transaction rolled back: %s", exc)
            raise StorageError("Database operation failed", error=str(exc)) from exc
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Read-only unit of work; nothing is committed."""
        session = self.Session()
        try:
            yield session
        except SQLAlchemyError as exc:
            raise StorageError("Database query failed", error=str(exc)) from exc
        finally:
            session.close()

    def ping(self) -> datetime:
        with self.session() as session:
            session.execute(select(1))
        return _utcnow()

    def dispose(self) -> None:
        self.engine.dispose()
