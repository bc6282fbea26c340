"""
SQLAlchemy ORM models for connections, connect sessions and provider credentials.

Column types are backend-neutral so the same models run on PostgreSQL
(asyncpg) in production and SQLite (aiosqlite) in tests.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase

SESSION_PENDING = "pending"
SESSION_COMPLETED = "completed"
SESSION_EXPIRED = "expired"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Connection(Base):
    """Established OAuth grant for one (provider, external connection id) pair."""

    __tablename__ = "connections"
    __table_args__ = (
        UniqueConstraint("provider_key", "connection_id", name="connections_provider_connection_idx"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    provider_key = Column(String(50), nullable=False)
    connection_id = Column(String(200), nullable=False)
    access_token_enc = Column(Text, nullable=False)
    refresh_token_enc = Column(Text)
    token_expires_at = Column(DateTime(timezone=True))
    scopes = Column(Text)
    raw_credentials = Column(Text)  # encrypted full token response
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class ConnectSession(Base):
    """Short-lived record of one in-progress authorization attempt."""

    __tablename__ = "connect_sessions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    token = Column(String(128), unique=True, nullable=False)
    provider_key = Column(String(50), nullable=False)
    connection_id = Column(String(200), nullable=False)
    state = Column(String(128), unique=True, nullable=False)
    code_verifier = Column(String(128))
    status = Column(
        Enum(SESSION_PENDING, SESSION_COMPLETED, SESSION_EXPIRED, name="session_status"),
        nullable=False,
        default=SESSION_PENDING,
    )
    redirect_uri = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=False)


class ProviderCredential(Base):
    """Deployer-supplied OAuth app registration, one row per provider."""

    __tablename__ = "provider_credentials"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    provider_key = Column(String(50), unique=True, nullable=False)
    client_id = Column(String(200), nullable=False)
    client_secret_enc = Column(Text, nullable=False)
    scopes = Column(Text)
    enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
