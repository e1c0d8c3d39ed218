from fastapi import APIRouter, Depends
from sqlmodel import Session

from .. import models, serializers
from ..auth import get_current_user, require
from ..database import get_session
from ..permissions import Capability
from ..schemas import AdminUserUpdateIn, AssignCoachIn, AvatarIn, ProfileUpdateIn
from ..services import UserService

router = APIRouter(prefix="/users", tags=["users"])


@router.get("")
def list_users(session: Session = Depends(get_session), _admin: models.User = Depends(require(Capability.MANAGE_USERS))):
    return {"users": UserService(session).list_with_coach()}


@router.get("/me")
def my_profile(user: models.User = Depends(get_current_user)):
    return {"user": serializers.user_out(user)}


@router.patch("/me/profile")
def update_my_profile(payload: ProfileUpdateIn, user: models.User = Depends(get_current_user),
                      session: Session = Depends(get_session)):
    user = UserService(session).update_profile(user, payload)
    return {"user": serializers.user_out(user)}


@router.patch("/me/avatar")
def update_my_avatar(payload: AvatarIn, user: models.User = Depends(get_current_user),
                     session: Session = Depends(get_session)):
    user = UserService(session).set_avatar(user, payload.avatar)
    return {"user": serializers.user_out(user)}


@router.patch("/{user_id}")
def update_user(
    user_id: str,
    payload: AdminUserUpdateIn,
    session: Session = Depends(get_session),
    _admin: models.User = Depends(require(Capability.MANAGE_USERS)),
):
    user = UserService(session).admin_update(user_id, payload)
    return {"user": serializers.user_out(user)}


@router.post("/{user_id}/assign-coach")
def assign_coach(
    user_id: str,
    payload: AssignCoachIn,
    session: Session = Depends(get_session),
    _admin: models.User = Depends(require(Capability.MANAGE_USERS)),
):
    memoire = UserService(session).assign_coach(user_id, payload.coach_id)
    return {"message": "coach assigned", "memoire": serializers.memoire_out(memoire)}
