"""
Archetype Backend - User SQLAlchemy Model
===========================================

What:  ORM model for the `users` table.
Who:   SqlUserRepository (reads/writes) and Alembic (migrations).

Table Design:
    - Integer identity primary key (matches the public /users/{id} routes)
    - email unique: the repository maps the unique violation to `conflict`
    - created_at / updated_at stored with time zone, always UTC
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from archetype.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRecord(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    def __repr__(self) -> str:
        return f"<UserRecord(id={self.id}, email='{self.email}')>"
