"""Registration, login and token endpoints."""

from fastapi import APIRouter, Depends, Request
from sqlmodel import Session

from .. import models, serializers
from ..auth import get_current_user
from ..config import Settings
from ..database import get_session
from ..dependencies import client_ip, get_settings
from ..schemas import ChangePasswordIn, LoginIn, RefreshIn, RegisterIn, TokenOut
from ..services import AuthService

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", status_code=201)
def register(payload: RegisterIn, session: Session = Depends(get_session), settings: Settings = Depends(get_settings)):
    svc = AuthService(session, settings)
    user = svc.register(payload)
    return {"user": serializers.user_out(user), **svc.tokens_for(user)}


@router.post("/login")
def login(payload: LoginIn, request: Request, session: Session = Depends(get_session),
          settings: Settings = Depends(get_settings)):
    svc = AuthService(session, settings)
    user = svc.login(payload.email, payload.password, ip=client_ip(request))
    return {"user": serializers.user_out(user), **svc.tokens_for(user)}


@router.post("/refresh", response_model=TokenOut)
def refresh(payload: RefreshIn, session: Session = Depends(get_session), settings: Settings = Depends(get_settings)):
    return AuthService(session, settings).refresh(payload.refresh_token)


@router.get("/me")
def me(user: models.User = Depends(get_current_user)):
    return {"user": serializers.user_out(user)}


@router.post("/change-password")
def change_password(
    payload: ChangePasswordIn,
    user: models.User = Depends(get_current_user),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
):
    AuthService(session, settings).change_password(user, payload.current_password, payload.new_password)
    return {"message": "password updated"}
