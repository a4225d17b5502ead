"""Relational storage for authors and posts."""

from __future__ import annotations

from sqlalchemy import ForeignKey, create_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, relationship, sessionmaker


class Base(DeclarativeBase):
    """Declarative base for the blog tables."""


class AuthorRecord(Base):
    __tablename__ = "authors"

    id: Mapped[str] = mapped_column(primary_key=True)
    nickname: Mapped[str] = mapped_column(default="")
    avatar: Mapped[str] = mapped_column(default="")


class PostRecord(Base):
    __tablename__ = "posts"

    id: Mapped[str] = mapped_column(primary_key=True)
    author_id: Mapped[str] = mapped_column(ForeignKey("authors.id", ondelete="CASCADE"))
    author: Mapped[AuthorRecord] = relationship(lazy="joined")
    body: Mapped[str] = mapped_column(default="")
    created_at: Mapped[str] = mapped_column(default="")


def init_database(url: str) -> sessionmaker[Session]:
    """Connect to ``url``, create missing tables and return a session factory."""
    engine = create_engine(url)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)