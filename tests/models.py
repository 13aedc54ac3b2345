"""Entities and payload classes shared by the Goldfinch test suite."""

from dataclasses import dataclass, field
from threading import Lock
from typing import Any

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from goldfinch.orm.types import SerializedState


class Base(DeclarativeBase):
    pass


class Author(Base):
    __tablename__ = "author"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100))
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    books: Mapped[list["Book"]] = relationship(back_populates="author", cascade="all, delete-orphan")


class Book(Base):
    __tablename__ = "book"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(200))
    author_id: Mapped[int] = mapped_column(ForeignKey("author.id"))

    author: Mapped[Author] = relationship(back_populates="books")

    def validate(self) -> list[str]:
        if self.title is not None and not self.title.strip():
            return ["title must not be empty"]
        return []


class Enrollment(Base):
    __tablename__ = "enrollment"

    student_id: Mapped[str] = mapped_column(String(32), primary_key=True)
    course_id: Mapped[str] = mapped_column(String(32), primary_key=True)
    grade: Mapped[str | None] = mapped_column(String(2), nullable=True)


class WebSession(Base):
    __tablename__ = "web_session"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    payload: Mapped[Any] = mapped_column(SerializedState(), nullable=True)


class PlainRecord:
    """A class with an id attribute that is not mapped."""

    def __init__(self, record_id: int):
        self.record_id = record_id


@dataclass
class CartItem:
    sku: str
    quantity: int


@dataclass
class CartState:
    user: str
    items: list[CartItem] = field(default_factory=list)
    attributes: dict[str, Any] = field(default_factory=dict)


class LockedState:
    """Holds a lock, which cannot be pickled."""

    def __init__(self):
        self.lock = Lock()


class TransientState:
    """Picklable in principle, but opted out of serialization."""

    __serializable__ = False

    def __init__(self, value: int):
        self.value = value
