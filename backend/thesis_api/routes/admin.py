from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from .. import models, serializers
from ..auth import require
from ..database import get_session
from ..permissions import Capability
from ..services import AdminService
from ..subscriptions import SubscriptionEngine

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/stats")
def stats(session: Session = Depends(get_session),
          _admin: models.User = Depends(require(Capability.VIEW_ADMIN_DASHBOARD))):
    return AdminService(session).stats()


@router.get("/logs")
def logs(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    session: Session = Depends(get_session),
    _admin: models.User = Depends(require(Capability.VIEW_ADMIN_DASHBOARD)),
):
    return AdminService(session).logs(page, limit)


@router.get("/subscriptions")
def all_subscriptions(session: Session = Depends(get_session),
                      _admin: models.User = Depends(require(Capability.MANAGE_SUBSCRIPTIONS))):
    subs = SubscriptionEngine(session).list_all()
    return {"subscriptions": [serializers.subscription_out(s, with_payments=True, with_user=True) for s in subs]}
