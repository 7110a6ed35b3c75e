"""SQLAlchemy declarative base shared by all ORM records."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass
