from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api.responses import dump, success
from app.db.session import get_db
from app.dependencies.auth import get_current_user, get_token_service
from app.models.user import User
from app.schemas.auth import LoginRequest, PasswordChange, ProfileUpdate, RegisterRequest, UserResponse
from app.services.account_service import AccountService
from app.services.chain_engine import ChainEngine
from app.utils.auth import TokenService

router = APIRouter()


def get_account_service(
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
) -> AccountService:
    return AccountService(db, tokens)


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(
    data: RegisterRequest,
    accounts: AccountService = Depends(get_account_service)
):
    """Create an account and return it with a fresh token."""
    user, token = accounts.register(data)
    return success(
        {"user": dump(UserResponse.from_user(user)), "token": token},
        message="Registration successful"
    )


@router.post("/login")
def login(
    data: LoginRequest,
    accounts: AccountService = Depends(get_account_service)
):
    user, token = accounts.login(data.email, data.password)
    return success(
        {"user": dump(UserResponse.from_user(user)), "token": token},
        message="Login successful"
    )


@router.get("/me")
def get_me(user: User = Depends(get_current_user)):
    """Get current user profile"""
    return success({"user": dump(UserResponse.from_user(user))})


@router.put("/me")
def update_me(
    data: ProfileUpdate,
    user: User = Depends(get_current_user),
    accounts: AccountService = Depends(get_account_service)
):
    """Update name, username, bio or avatar"""
    user = accounts.update_profile(user, data)
    return success({"user": dump(UserResponse.from_user(user))}, message="Profile updated")


@router.put("/password")
def change_password(
    data: PasswordChange,
    user: User = Depends(get_current_user),
    accounts: AccountService = Depends(get_account_service)
):
    token = accounts.change_password(user, data)
    return success({"token": token}, message="Password updated")


@router.get("/stats")
def get_stats(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Engagement totals across all of the caller's chains"""
    stats = ChainEngine(db).aggregate_user_stats(user)
    return success({"stats": dump(stats)})
