"""Read-only models for the external auth tables.

The auth service owns these tables and issues sessions. This service only
reads them: AuthSession to validate bearer tokens, AuthUser to resolve the
actor's role and, during booking, a patient's basic profile.
"""

from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from careteam.database import Base


class AuthUser(Base):
    """User account with its platform role."""

    __tablename__ = "user"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    emailVerified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    role: Mapped[str] = mapped_column(Text, nullable=False, default="patient")
    dateOfBirth: Mapped[date | None] = mapped_column(Date, nullable=True)
    gender: Mapped[str | None] = mapped_column(Text, nullable=True)
    createdAt: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updatedAt: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class AuthSession(Base):
    """Bearer-token session issued by the auth service."""

    __tablename__ = "session"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    expiresAt: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    token: Mapped[str] = mapped_column(Text, unique=True, index=True)
    createdAt: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updatedAt: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    userId: Mapped[str] = mapped_column(Text, nullable=False, index=True)
