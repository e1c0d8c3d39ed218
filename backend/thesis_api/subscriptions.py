"""Pack catalogue and the subscription lifecycle engine.

A user's subscription moves through these states:

    PENDING --(payment claim >= installment1)--> PARTIAL   (provisional)
    PENDING/PARTIAL/DEACTIVATED --(confirmed payments)--> PARTIAL | ACTIVE
    any live --(newer subscription or sibling activation)--> DEACTIVATED
    any --(admin)--> CANCELLED | EXPIRED

At most one subscription per user is "live" (status outside
`TERMINAL_STATUSES`). Every operation below runs in a single transaction
that first locks all of the user's subscription rows, so the
deactivate-siblings, update-target and append-ledger steps commit
together or not at all, and concurrent calls for one user serialize.

`amount_paid` is a cache. Confirmed payments recompute it from the
CONFIRMED rows of the ledger, which also replaces any provisional figure
written by `notify_payment`.
"""

import logging
from contextlib import contextmanager
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from . import models, repositories
from .errors import AppError, InvalidStateError, NotFoundError, StorageError, ValidationFailedError
from .models import PaymentStatus, SubscriptionStatus, TERMINAL_STATUSES
from .schemas import PackIn, PackUpdateIn, check_installments

logger = logging.getLogger("thesis_api.subscriptions")

# Statuses a student may still pay towards; DEACTIVATED lets a student
# resume paying for a superseded pack.
ACTIONABLE_STATUSES = (
    SubscriptionStatus.PENDING,
    SubscriptionStatus.PARTIAL,
    SubscriptionStatus.DEACTIVATED,
)

CLOSING_STATUSES = (SubscriptionStatus.CANCELLED, SubscriptionStatus.EXPIRED)

MANUAL_METHOD = "MANUAL"


def is_live(status: SubscriptionStatus) -> bool:
    return SubscriptionStatus(status) not in TERMINAL_STATUSES


def next_status(current: SubscriptionStatus, amount_paid: int, price: int) -> SubscriptionStatus:
    """Status implied by a confirmed cumulative `amount_paid`.

    ACTIVE is never downgraded, so payments past the price (or after a
    forced activation) keep the subscription active.
    """
    if amount_paid >= price:
        return SubscriptionStatus.ACTIVE
    if current == SubscriptionStatus.ACTIVE:
        return SubscriptionStatus.ACTIVE
    if amount_paid > 0:
        return SubscriptionStatus.PARTIAL
    return current


class SubscriptionEngine:
    """Owns every state transition of `Subscription` rows."""

    def __init__(self, session: Session):
        self.session = session
        self.subs = repositories.SubscriptionRepository(session)
        self.payments = repositories.PaymentRepository(session)
        self.packs = repositories.PackRepository(session)
        self.activity = repositories.ActivityLogRepository(session)

    @contextmanager
    def _transaction(self, operation: str):
        try:
            yield
            self.session.commit()
        except AppError:
            self.session.rollback()
            raise
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("%s could not be committed; rolled back", operation)
            raise StorageError(f"{operation} could not be completed; please retry") from exc

    def _locked_subscription(self, subscription_id: str):
        """Return (target, all rows of its owner) with the owner's rows locked."""
        owner_id = self.subs.owner_id(subscription_id)
        if owner_id is None:
            raise NotFoundError("subscription not found")
        rows = self.subs.lock_for_user(owner_id)
        target = next((s for s in rows if s.id == subscription_id), None)
        if target is None:
            raise NotFoundError("subscription not found")
        return target, rows

    def _deactivate_live(self, rows: Iterable[models.Subscription], keep_id: Optional[str] = None) -> int:
        count = 0
        for sub in rows:
            if sub.id == keep_id or not is_live(sub.status):
                continue
            sub.status = SubscriptionStatus.DEACTIVATED
            self.subs.add(sub)
            count += 1
        return count

    def _log(self, user_id: str, action: str, details: str):
        self.activity.add(models.ActivityLog(user_id=user_id, action=action, details=details))

    def subscribe(self, user: models.User, pack_id: str) -> models.Subscription:
        """Start a PENDING subscription to an active pack.

        Every live subscription the user already holds is DEACTIVATED.
        """
        with self._transaction("subscribe"):
            pack = self.packs.get(pack_id)
            if not pack or not pack.is_active:
                raise NotFoundError("pack not found or inactive")
            rows = self.subs.lock_for_user(user.id)
            superseded = self._deactivate_live(rows)
            sub = models.Subscription(
                user_id=user.id,
                pack_id=pack.id,
                status=SubscriptionStatus.PENDING,
                amount_paid=0,
            )
            self.subs.add(sub)
            self._log(user.id, "SUBSCRIBE", f"pack={pack.id}")
        logger.info("user %s subscribed to pack %s (subscription %s, %d superseded)",
                    user.id, pack_id, sub.id, superseded)
        self.session.refresh(sub)
        return sub

    def notify_payment(self, user: models.User, method: str, reference: Optional[str], amount: int) -> models.Subscription:
        """Record a student's payment claim against their actionable subscription.

        The claim is appended to the ledger as PENDING. A first claim
        covering `installment1` of a two-tranche pack moves a PENDING
        subscription to PARTIAL right away; that amount is provisional
        until an admin confirms a payment.
        """
        if amount <= 0:
            raise ValidationFailedError("amount must be positive")
        with self._transaction("notify_payment"):
            rows = self.subs.lock_for_user(user.id)
            target = next((s for s in rows if s.status in ACTIONABLE_STATUSES), None)
            if target is None:
                raise NotFoundError("no pending subscription found")
            self.payments.append(models.Payment(
                subscription_id=target.id,
                amount=amount,
                method=method,
                reference=reference,
                status=PaymentStatus.PENDING,
            ))
            pack = target.pack
            if (
                target.status == SubscriptionStatus.PENDING
                and pack.installment1
                and amount >= pack.installment1
            ):
                target.status = SubscriptionStatus.PARTIAL
                target.amount_paid = amount
                self.subs.add(target)
            self._log(user.id, "PAYMENT_NOTIFIED", f"subscription={target.id} amount={amount} method={method}")
        logger.info("payment claim of %s recorded for subscription %s", amount, target.id)
        return target

    def record_confirmed_payment(self, subscription_id: str, amount: int) -> models.Subscription:
        """Confirm `amount` received for a subscription and recompute its state."""
        if amount <= 0:
            raise ValidationFailedError("amount must be positive")
        with self._transaction("record_confirmed_payment"):
            sub, rows = self._locked_subscription(subscription_id)
            if sub.status in CLOSING_STATUSES:
                raise InvalidStateError(f"subscription is {sub.status.value}; payments can no longer be recorded")
            price = sub.pack.price
            new_amount_paid = self.payments.confirmed_total(sub.id) + amount
            previous = sub.status
            status = next_status(previous, new_amount_paid, price)
            if status == SubscriptionStatus.ACTIVE and previous != SubscriptionStatus.ACTIVE:
                sub.activated_at = models.utcnow()
            sub.status = status
            sub.amount_paid = new_amount_paid
            if is_live(status):
                self._deactivate_live(rows, keep_id=sub.id)
            self.payments.append(models.Payment(
                subscription_id=sub.id,
                amount=amount,
                method=MANUAL_METHOD,
                status=PaymentStatus.CONFIRMED,
            ))
            self.subs.add(sub)
            self._log(sub.user_id, "PAYMENT_CONFIRMED", f"subscription={sub.id} amount={amount} status={status.value}")
        logger.info("confirmed %s for subscription %s: %s -> %s (paid %s/%s)",
                    amount, subscription_id, previous.value, status.value, new_amount_paid, price)
        self.session.refresh(sub)
        return sub

    def activate(self, subscription_id: str) -> models.Subscription:
        """Force a subscription to ACTIVE regardless of what was paid."""
        with self._transaction("activate"):
            sub, rows = self._locked_subscription(subscription_id)
            self._deactivate_live(rows, keep_id=sub.id)
            sub.status = SubscriptionStatus.ACTIVE
            sub.activated_at = models.utcnow()
            self.subs.add(sub)
            self._log(sub.user_id, "SUBSCRIPTION_ACTIVATED", f"subscription={sub.id} forced=true")
        logger.info("subscription %s force-activated", subscription_id)
        self.session.refresh(sub)
        return sub

    def close(self, subscription_id: str, status: SubscriptionStatus) -> models.Subscription:
        """Move a subscription to CANCELLED or EXPIRED."""
        status = SubscriptionStatus(status)
        if status not in CLOSING_STATUSES:
            raise ValidationFailedError("status must be CANCELLED or EXPIRED")
        with self._transaction("close"):
            sub, _rows = self._locked_subscription(subscription_id)
            sub.status = status
            self.subs.add(sub)
            self._log(sub.user_id, "SUBSCRIPTION_CLOSED", f"subscription={sub.id} status={status.value}")
        self.session.refresh(sub)
        return sub

    def list_for_user(self, user_id: str) -> List[models.Subscription]:
        return self.subs.list_for_user(user_id)

    def list_all(self) -> List[models.Subscription]:
        return self.subs.list_all()

    def live_subscriptions(self, user_id: str) -> List[models.Subscription]:
        return self.subs.list_live_for_user(user_id)


class PackService:
    """Pack catalogue administration."""

    def __init__(self, session: Session):
        self.session = session
        self.packs = repositories.PackRepository(session)

    def list_active(self) -> List[models.Pack]:
        return self.packs.list_active()

    def create(self, payload: PackIn) -> models.Pack:
        pack = models.Pack(**payload.model_dump())
        return self.packs.save(pack)

    def update(self, pack_id: str, payload: PackUpdateIn) -> models.Pack:
        """Apply an administrative edit; the installment plan is re-validated."""
        pack = self.packs.get(pack_id)
        if not pack:
            raise NotFoundError("pack not found")
        changes = payload.model_dump(exclude_unset=True)
        # only the installments and the description may be cleared
        changes = {
            k: v for k, v in changes.items()
            if v is not None or k in ("installment1", "installment2", "description")
        }
        price = changes.get("price", pack.price)
        installment1 = changes.get("installment1", pack.installment1)
        installment2 = changes.get("installment2", pack.installment2)
        try:
            check_installments(price, installment1, installment2)
        except ValueError as e:
            raise ValidationFailedError(str(e))
        for key, value in changes.items():
            setattr(pack, key, value)
        return self.packs.save(pack)
