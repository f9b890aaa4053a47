"""
Authenticated landing routes.
"""
from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse

from expense_tracker.api.dependencies import get_current_user
from expense_tracker.api.schemas import UserResponse
from expense_tracker.core.database import User

router = APIRouter(tags=["pages"])


@router.get("/")
async def root(user: User = Depends(get_current_user)):
    """The request gate normally handles this; kept for callers that bypass it."""
    return RedirectResponse(url=f"/{user.id}", status_code=307)


@router.get("/{user_id}", response_model=UserResponse)
async def landing(user_id: str, user: User = Depends(get_current_user)):
    """User-scoped landing route."""
    if user_id != user.id:
        return RedirectResponse(url=f"/{user.id}", status_code=307)
    return user
