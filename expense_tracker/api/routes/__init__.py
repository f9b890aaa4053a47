"""
API Routes
"""
from expense_tracker.api.routes import auth, oauth, pages

__all__ = ["auth", "oauth", "pages"]
