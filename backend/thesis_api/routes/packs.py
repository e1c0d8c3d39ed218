"""Pack catalogue and subscription lifecycle endpoints.

Static paths (`/subscribe`, `/pay`, `/my-subscriptions`,
`/subscriptions/...`) are declared before `/{pack_id}` ones so they are
never captured as pack identifiers.
"""

from fastapi import APIRouter, Depends
from sqlmodel import Session

from .. import models, serializers
from ..auth import require
from ..database import get_session
from ..permissions import Capability
from ..schemas import (
    ConfirmedPaymentIn,
    PackIn,
    PackUpdateIn,
    PaymentNotificationIn,
    SubscribeIn,
    SubscriptionStatusIn,
)
from ..subscriptions import PackService, SubscriptionEngine

router = APIRouter(prefix="/packs", tags=["packs"])


@router.get("")
def list_packs(session: Session = Depends(get_session)):
    return {"packs": [serializers.pack_out(p) for p in PackService(session).list_active()]}


@router.post("", status_code=201)
def create_pack(payload: PackIn, session: Session = Depends(get_session),
                _admin: models.User = Depends(require(Capability.MANAGE_PACKS))):
    return {"pack": serializers.pack_out(PackService(session).create(payload))}


@router.post("/subscribe", status_code=201)
def subscribe(payload: SubscribeIn, session: Session = Depends(get_session),
              user: models.User = Depends(require(Capability.SUBSCRIBE))):
    sub = SubscriptionEngine(session).subscribe(user, payload.pack_id)
    return {"subscription": serializers.subscription_out(sub)}


@router.get("/my-subscriptions")
def my_subscriptions(session: Session = Depends(get_session),
                     user: models.User = Depends(require(Capability.SUBSCRIBE))):
    subs = SubscriptionEngine(session).list_for_user(user.id)
    return {"subscriptions": [serializers.subscription_out(s, with_payments=True) for s in subs]}


@router.post("/pay")
def notify_payment(payload: PaymentNotificationIn, session: Session = Depends(get_session),
                   user: models.User = Depends(require(Capability.NOTIFY_PAYMENT))):
    sub = SubscriptionEngine(session).notify_payment(user, payload.method, payload.reference, payload.amount)
    session.refresh(sub)
    return {"message": "payment recorded, awaiting confirmation",
            "subscription": serializers.subscription_out(sub, with_payments=True)}


@router.patch("/subscriptions/{subscription_id}/payment")
def record_confirmed_payment(
    subscription_id: str,
    payload: ConfirmedPaymentIn,
    session: Session = Depends(get_session),
    _admin: models.User = Depends(require(Capability.CONFIRM_PAYMENTS)),
):
    sub = SubscriptionEngine(session).record_confirmed_payment(subscription_id, payload.amount)
    return {"subscription": serializers.subscription_out(sub, with_payments=True, with_user=True)}


@router.patch("/subscriptions/{subscription_id}/status")
def close_subscription(
    subscription_id: str,
    payload: SubscriptionStatusIn,
    session: Session = Depends(get_session),
    _admin: models.User = Depends(require(Capability.MANAGE_SUBSCRIPTIONS)),
):
    sub = SubscriptionEngine(session).close(subscription_id, models.SubscriptionStatus(payload.status))
    return {"subscription": serializers.subscription_out(sub)}


@router.patch("/{pack_id}")
def update_pack(pack_id: str, payload: PackUpdateIn, session: Session = Depends(get_session),
                _admin: models.User = Depends(require(Capability.MANAGE_PACKS))):
    return {"pack": serializers.pack_out(PackService(session).update(pack_id, payload))}


@router.patch("/{subscription_id}/activate")
def activate_subscription(
    subscription_id: str,
    session: Session = Depends(get_session),
    _admin: models.User = Depends(require(Capability.MANAGE_SUBSCRIPTIONS)),
):
    """Force-activate a subscription; the path segment is a subscription id."""
    sub = SubscriptionEngine(session).activate(subscription_id)
    return {"subscription": serializers.subscription_out(sub)}
