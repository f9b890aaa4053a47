"""
User repository: identity resolution for sign-ins.
"""
from typing import Optional
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from expense_tracker.core.auth.providers import CanonicalProfile
from expense_tracker.core.database.models import OAuthAccount, User

logger = logging.getLogger(__name__)


class UserRepository:
    """Users and their OAuth account links."""

    def __init__(self, db: Session):
        self.db = db

    def get_user(self, user_id: str) -> Optional[User]:
        return self.db.get(User, user_id)

    def find_by_email(self, email: str) -> Optional[User]:
        stmt = select(User).where(User.email == email.lower())
        return self.db.execute(stmt).scalar_one_or_none()

    def find_account(self, provider: str, provider_account_id: str) -> Optional[OAuthAccount]:
        stmt = select(OAuthAccount).where(
            OAuthAccount.provider == provider,
            OAuthAccount.provider_account_id == provider_account_id,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def create_user(self, email: str, name: str, password_hash: Optional[str] = None) -> User:
        """
        Create and commit a user.

        Raises:
            IntegrityError: If the email is already registered
        """
        user = User(email=email.lower(), name=name, password_hash=password_hash)
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise
        self.db.refresh(user)
        logger.info(f"Created user {user.id}")
        return user

    def get_or_create_user(self, email: str, name: str) -> User:
        """Find a user by email, creating one if absent. Safe against a concurrent insert."""
        existing = self.find_by_email(email)
        if existing:
            return existing

        try:
            return self.create_user(email=email, name=name)
        except IntegrityError:
            # Race condition: another request created the user
            existing = self.find_by_email(email)
            if existing:
                return existing
            raise

    def link_account(self, user: User, provider: str, provider_account_id: str) -> OAuthAccount:
        """
        Upsert the (provider, provider_account_id) link.

        Create-if-absent, otherwise no-op: an existing link keeps pointing at
        its original user.
        """
        existing = self.find_account(provider, provider_account_id)
        if existing:
            return existing

        account = OAuthAccount(
            user_id=user.id,
            provider=provider,
            provider_account_id=provider_account_id,
        )
        self.db.add(account)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self.find_account(provider, provider_account_id)
            if existing:
                return existing
            raise
        logger.info(f"Linked {provider} account to user {user.id}")
        return account

    def resolve_or_create_user(self, profile: CanonicalProfile, provider: str) -> User:
        """
        Map an external identity onto an internal user.

        The account link wins over the email, so a provider-side email change
        still lands on the same user. Every step is idempotent, so a retry
        after a partial failure reuses what the first attempt wrote.
        """
        account = self.find_account(provider, profile.id)
        if account:
            user = self.get_user(account.user_id)
            if user:
                return user

        user = self.get_or_create_user(email=profile.email, name=profile.name)
        self.link_account(user, provider, profile.id)
        return user
