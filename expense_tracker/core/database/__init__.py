"""Database module"""
from .models import Base, User, OAuthAccount, SessionRecord
from .connection import get_db, init_db, get_session_factory
from .repository import UserRepository

__all__ = [
    'Base',
    'User',
    'OAuthAccount',
    'SessionRecord',
    'get_db',
    'init_db',
    'get_session_factory',
    'UserRepository',
]
