import threading

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from thesis_api import models
from thesis_api.database import Database
from thesis_api.errors import InvalidStateError, NotFoundError, StorageError, ValidationFailedError
from thesis_api.models import PaymentStatus, SubscriptionStatus
from thesis_api.repositories import PaymentRepository, SubscriptionRepository
from thesis_api.subscriptions import SubscriptionEngine, next_status


@pytest.fixture
def database(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'engine.db'}")
    db.create_db_and_tables()
    yield db
    db.dispose()


def _add_user(db, email="student@example.com"):
    with db.session() as s:
        user = models.User(email=email, password_hash="x", first_name="Awa", last_name="Sarr")
        s.add(user)
        s.commit()
        return user.id


def _add_pack(db, price, installment1=None, installment2=None, is_active=True):
    with db.session() as s:
        pack = models.Pack(name=f"Pack {price}", price=price, installment1=installment1,
                           installment2=installment2, is_active=is_active)
        s.add(pack)
        s.commit()
        return pack.id


def _subscribe(db, user_id, pack_id):
    with db.session() as s:
        user = s.get(models.User, user_id)
        return SubscriptionEngine(s).subscribe(user, pack_id).id


def _confirm(db, sub_id, amount):
    with db.session() as s:
        sub = SubscriptionEngine(s).record_confirmed_payment(sub_id, amount)
        return sub.status, sub.amount_paid, sub.activated_at


def _state(db, sub_id):
    with db.session() as s:
        sub = s.get(models.Subscription, sub_id)
        return sub.status, sub.amount_paid, sub.activated_at


def _live_count(db, user_id):
    with db.session() as s:
        return len(SubscriptionRepository(s).list_live_for_user(user_id))


def test_next_status_rules():
    assert next_status(SubscriptionStatus.PENDING, 0, 100) == SubscriptionStatus.PENDING
    assert next_status(SubscriptionStatus.PENDING, 10, 100) == SubscriptionStatus.PARTIAL
    assert next_status(SubscriptionStatus.PARTIAL, 100, 100) == SubscriptionStatus.ACTIVE
    assert next_status(SubscriptionStatus.ACTIVE, 10, 100) == SubscriptionStatus.ACTIVE
    assert next_status(SubscriptionStatus.DEACTIVATED, 10, 100) == SubscriptionStatus.PARTIAL


def test_full_price_reached_in_two_payments(database):
    user_id = _add_user(database)
    pack_id = _add_pack(database, 100000)
    sub_id = _subscribe(database, user_id, pack_id)
    assert _state(database, sub_id)[:2] == (SubscriptionStatus.PENDING, 0)

    status, paid, activated_at = _confirm(database, sub_id, 60000)
    assert (status, paid, activated_at) == (SubscriptionStatus.PARTIAL, 60000, None)

    status, paid, activated_at = _confirm(database, sub_id, 40000)
    assert (status, paid) == (SubscriptionStatus.ACTIVE, 100000)
    assert activated_at is not None


def test_first_installment_claim_is_provisionally_partial(database):
    user_id = _add_user(database)
    pack_id = _add_pack(database, 150000, 100000, 50000)
    sub_id = _subscribe(database, user_id, pack_id)
    with database.session() as s:
        user = s.get(models.User, user_id)
        target = SubscriptionEngine(s).notify_payment(user, "WAVE", "TX-1", 100000)
        assert target.id == sub_id
        payments = PaymentRepository(s).list_for_subscription(sub_id)
        assert [(p.amount, p.status) for p in payments] == [(100000, PaymentStatus.PENDING)]
    assert _state(database, sub_id)[:2] == (SubscriptionStatus.PARTIAL, 100000)


def test_claim_below_first_installment_leaves_subscription_pending(database):
    user_id = _add_user(database)
    pack_id = _add_pack(database, 150000, 100000, 50000)
    sub_id = _subscribe(database, user_id, pack_id)
    with database.session() as s:
        SubscriptionEngine(s).notify_payment(s.get(models.User, user_id), "OM", None, 20000)
    assert _state(database, sub_id)[:2] == (SubscriptionStatus.PENDING, 0)


def test_new_subscription_supersedes_active_one(database):
    user_id = _add_user(database)
    p1 = _add_pack(database, 50000)
    p2 = _add_pack(database, 65000)
    s1 = _subscribe(database, user_id, p1)
    _confirm(database, s1, 50000)
    assert _state(database, s1)[0] == SubscriptionStatus.ACTIVE

    s2 = _subscribe(database, user_id, p2)
    assert _state(database, s1)[0] == SubscriptionStatus.DEACTIVATED
    assert _state(database, s2)[0] == SubscriptionStatus.PENDING
    assert _live_count(database, user_id) == 1


def test_confirming_unknown_subscription_creates_no_payment(database):
    with pytest.raises(NotFoundError):
        _confirm(database, "does-not-exist", 1000)
    with database.session() as s:
        assert s.exec(select(models.Payment)).all() == []


def test_concurrent_confirmations_do_not_lose_updates(database):
    user_id = _add_user(database)
    pack_id = _add_pack(database, 50000)
    sub_id = _subscribe(database, user_id, pack_id)
    barrier = threading.Barrier(2)
    errors = []

    def worker():
        barrier.wait()
        try:
            _confirm(database, sub_id, 30000)
        except Exception as exc:  # surfaced through `errors`
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert errors == []
    status, paid, activated_at = _state(database, sub_id)
    assert paid == 60000
    assert status == SubscriptionStatus.ACTIVE
    assert activated_at is not None
    with database.session() as s:
        assert PaymentRepository(s).confirmed_total(sub_id) == 60000


def test_payments_past_price_keep_subscription_active(database):
    user_id = _add_user(database)
    pack_id = _add_pack(database, 50000)
    sub_id = _subscribe(database, user_id, pack_id)
    _, _, first_activation = _confirm(database, sub_id, 50000)
    status, paid, activated_at = _confirm(database, sub_id, 5000)
    assert status == SubscriptionStatus.ACTIVE
    assert paid == 55000
    assert activated_at == first_activation


def test_amount_paid_never_decreases(database):
    user_id = _add_user(database)
    pack_id = _add_pack(database, 100000)
    sub_id = _subscribe(database, user_id, pack_id)
    seen = []
    for amount in (10000, 25000, 5000, 70000):
        seen.append(_confirm(database, sub_id, amount)[1])
    assert seen == sorted(seen)
    assert seen[-1] == 110000


def test_confirmation_replaces_provisional_claim_with_ledger_total(database):
    user_id = _add_user(database)
    pack_id = _add_pack(database, 150000, 100000, 50000)
    sub_id = _subscribe(database, user_id, pack_id)
    with database.session() as s:
        SubscriptionEngine(s).notify_payment(s.get(models.User, user_id), "WAVE", "TX-9", 100000)
    status, paid, _ = _confirm(database, sub_id, 90000)
    assert (status, paid) == (SubscriptionStatus.PARTIAL, 90000)


def test_partial_payment_on_superseded_subscription_deactivates_sibling(database):
    user_id = _add_user(database)
    p1 = _add_pack(database, 100000)
    p2 = _add_pack(database, 65000)
    s1 = _subscribe(database, user_id, p1)
    s2 = _subscribe(database, user_id, p2)
    assert _state(database, s1)[0] == SubscriptionStatus.DEACTIVATED

    status, paid, _ = _confirm(database, s1, 20000)
    assert (status, paid) == (SubscriptionStatus.PARTIAL, 20000)
    assert _state(database, s2)[0] == SubscriptionStatus.DEACTIVATED
    assert _live_count(database, user_id) == 1


def test_forced_activation_deactivates_siblings(database):
    user_id = _add_user(database)
    p1 = _add_pack(database, 100000)
    p2 = _add_pack(database, 65000)
    s1 = _subscribe(database, user_id, p1)
    s2 = _subscribe(database, user_id, p2)
    with database.session() as s:
        sub = SubscriptionEngine(s).activate(s1)
        assert sub.status == SubscriptionStatus.ACTIVE
        assert sub.amount_paid == 0
    assert _state(database, s2)[0] == SubscriptionStatus.DEACTIVATED
    assert _live_count(database, user_id) == 1


def test_closed_subscription_rejects_payments(database):
    user_id = _add_user(database)
    pack_id = _add_pack(database, 100000)
    sub_id = _subscribe(database, user_id, pack_id)
    with database.session() as s:
        assert SubscriptionEngine(s).close(sub_id, SubscriptionStatus.CANCELLED).status == SubscriptionStatus.CANCELLED
    with pytest.raises(InvalidStateError):
        _confirm(database, sub_id, 1000)
    assert _live_count(database, user_id) == 0


def test_close_rejects_non_closing_status(database):
    user_id = _add_user(database)
    sub_id = _subscribe(database, user_id, _add_pack(database, 1000))
    with database.session() as s:
        with pytest.raises(ValidationFailedError):
            SubscriptionEngine(s).close(sub_id, SubscriptionStatus.ACTIVE)


def test_subscribe_to_inactive_pack_is_rejected(database):
    user_id = _add_user(database)
    pack_id = _add_pack(database, 1000, is_active=False)
    with pytest.raises(NotFoundError):
        _subscribe(database, user_id, pack_id)
    with database.session() as s:
        assert SubscriptionEngine(s).list_for_user(user_id) == []


def test_claim_without_actionable_subscription_is_not_found(database):
    user_id = _add_user(database)
    with database.session() as s:
        with pytest.raises(NotFoundError):
            SubscriptionEngine(s).notify_payment(s.get(models.User, user_id), "WAVE", None, 1000)
        assert s.exec(select(models.Payment)).all() == []


def test_single_live_subscription_after_mixed_operations(database):
    user_id = _add_user(database)
    packs = [_add_pack(database, price) for price in (1000, 2000, 3000)]
    subs = [_subscribe(database, user_id, p) for p in packs]
    _confirm(database, subs[0], 500)
    _confirm(database, subs[2], 3000)
    with database.session() as s:
        SubscriptionEngine(s).activate(subs[1])
    assert _live_count(database, user_id) == 1
    assert _state(database, subs[1])[0] == SubscriptionStatus.ACTIVE


def test_concurrent_subscribes_leave_one_live_subscription(database):
    user_id = _add_user(database)
    packs = [_add_pack(database, 50000), _add_pack(database, 65000)]
    workers = 8
    barrier = threading.Barrier(workers)
    errors = []

    def worker(n):
        barrier.wait()
        try:
            _subscribe(database, user_id, packs[n % 2])
        except Exception as exc:  # surfaced through `errors`
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert errors == []
    with database.session() as s:
        assert len(SubscriptionEngine(s).list_for_user(user_id)) == workers
    assert _live_count(database, user_id) == 1


def test_storage_failure_rolls_back_confirmation(database, monkeypatch):
    user_id = _add_user(database)
    s1 = _subscribe(database, user_id, _add_pack(database, 100000))
    s2 = _subscribe(database, user_id, _add_pack(database, 65000))
    before = {s1: _state(database, s1), s2: _state(database, s2)}
    assert before[s1][0] == SubscriptionStatus.DEACTIVATED
    assert before[s2][0] == SubscriptionStatus.PENDING

    def failing_append(self, payment):
        raise OperationalError("INSERT INTO payment", {}, Exception("disk I/O error"))

    monkeypatch.setattr(PaymentRepository, "append", failing_append)
    with pytest.raises(StorageError):
        _confirm(database, s1, 100000)

    assert _state(database, s1) == before[s1]
    assert _state(database, s2) == before[s2]
    assert _live_count(database, user_id) == 1
    with database.session() as s:
        assert s.exec(select(models.Payment)).all() == []
