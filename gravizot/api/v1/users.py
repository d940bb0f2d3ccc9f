"""User profile routes"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from gravizot.core.database import get_db
from gravizot.schemas.response import ErrorResponse
from gravizot.schemas.user import ProfileUpdate, UserEnvelope, UserResponse
from gravizot.services.user_service import user_service
from gravizot.api.deps import get_current_user
from gravizot.models.user import User

router = APIRouter(responses={401: {"model": ErrorResponse}})


@router.get("/me", response_model=UserEnvelope)
def get_my_profile(
    current_user: User = Depends(get_current_user)
):
    """
    Get current user profile

    Args:
        current_user: Current authenticated user

    Returns:
        User profile
    """
    return UserEnvelope(user=UserResponse.model_validate(current_user))


@router.put("/me", response_model=UserEnvelope)
def update_my_profile(
    changes: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Update current user profile

    Args:
        changes: Profile fields to change
        current_user: Current authenticated user
        db: Database session

    Returns:
        Updated user profile
    """
    user = user_service.update_profile(db, current_user.id, changes)
    return UserEnvelope(user=UserResponse.model_validate(user))
