"""
SQLAlchemy Database Models

Stores:
- Users (credential and OAuth sign-ins share one table)
- OAuth account links, unique per (provider, provider_account_id)
- Session records for the database-backed session store
"""
from sqlalchemy import Column, String, DateTime, Text, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime
import uuid

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """Application user."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    email = Column(String(320), unique=True, nullable=False)
    name = Column(String(200), nullable=False)
    password_hash = Column(String(200), nullable=True)  # NULL for OAuth-only users
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    oauth_accounts = relationship("OAuthAccount", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email})>"


class OAuthAccount(Base):
    """
    Link between a user and an external provider identity.

    Keyed by (provider, provider_account_id) so a returning identity maps to
    the same user even after the email changes at the provider.
    """
    __tablename__ = "oauth_accounts"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    provider = Column(String(32), nullable=False)
    provider_account_id = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="oauth_accounts")

    __table_args__ = (
        UniqueConstraint('provider', 'provider_account_id', name='uq_oauth_accounts_provider_account'),
        Index('ix_oauth_accounts_user_id', 'user_id'),
    )


class SessionRecord(Base):
    """Key/value row with expiry, used by the database session backend."""
    __tablename__ = "session_records"

    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)
    expires_at = Column(DateTime, nullable=False)  # Rows past this are treated as absent

    __table_args__ = (
        Index('ix_session_records_expires_at', 'expires_at'),
    )
