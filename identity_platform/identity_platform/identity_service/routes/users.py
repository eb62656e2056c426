from typing import List

from fastapi import APIRouter, Depends, status

from ..dependencies import get_current_user, get_user_service
from ..errors import ForbiddenError
from ..models import User
from ..schemas import UserCreate, UserResponse, UserUpdate
from ..users import UserService

router = APIRouter(prefix="/user", tags=["users"])


def ensure_self(user_id: str, current_user: User) -> None:
    if current_user.id != user_id:
        raise ForbiddenError("You can only modify your own account")


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(payload: UserCreate, service: UserService = Depends(get_user_service)):
    """Register a new account. A verification code is emailed to it."""
    return service.create(payload)


@router.get("", response_model=List[UserResponse])
def list_users(
    service: UserService = Depends(get_user_service),
    _: User = Depends(get_current_user),
):
    return service.find_all()


@router.get("/me", response_model=UserResponse)
def read_current_user(current_user: User = Depends(get_current_user)):
    return current_user


@router.get("/{user_id}", response_model=UserResponse)
def get_user(
    user_id: str,
    service: UserService = Depends(get_user_service),
    _: User = Depends(get_current_user),
):
    return service.find_one(user_id)


@router.patch("/{user_id}", response_model=UserResponse)
def update_user(
    user_id: str,
    payload: UserUpdate,
    service: UserService = Depends(get_user_service),
    current_user: User = Depends(get_current_user),
):
    ensure_self(user_id, current_user)
    return service.update(user_id, payload)


@router.delete("/{user_id}", response_model=UserResponse)
def delete_user(
    user_id: str,
    service: UserService = Depends(get_user_service),
    current_user: User = Depends(get_current_user),
):
    ensure_self(user_id, current_user)
    return service.remove(user_id)
