"""Authentication API routes."""

from fastapi import APIRouter, Depends, status

from app.core.dependencies import get_current_user
from app.auth.models import UserCreate, UserLogin, UserResponse, TokenResponse
from app.auth.service import AuthService

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(user_data: UserCreate):
    """
    Register a new user account with email/password.

    Returns access token and user info on success.
    """
    return await AuthService.register(user_data)


@router.post("/login", response_model=TokenResponse)
async def login(credentials: UserLogin):
    """
    Login with email and password.

    Returns access token and user info on success.
    """
    return await AuthService.login(credentials.email, credentials.password)


@router.get("/me", response_model=UserResponse)
async def get_profile(current_user: dict = Depends(get_current_user)):
    """Get current user's profile."""
    return await AuthService.get_user_by_id(current_user["id"])
