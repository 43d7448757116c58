from datetime import datetime, timedelta, timezone
from decimal import Decimal

from marketplace.domain.statuses import TransactionType
from marketplace.services.lock_service import LockService
from marketplace.services.notification_service import NotificationService
from marketplace.services.unlock_service import UnlockService
from marketplace.tasks.unlock import JOB_NAME, run_unlocks


class FakeRedis:
    """Just enough of redis-py for SET NX EX and the release script."""

    def __init__(self):
        self.store = {}

    def set(self, name, value, nx=False, ex=None):
        if nx and name in self.store:
            return None
        self.store[name] = value
        return True

    def eval(self, script, numkeys, key, owner):
        if self.store.get(key) == owner:
            del self.store[key]
            return 1
        return 0


def test_lock_is_exclusive_and_released():
    locks = LockService(client=FakeRedis())

    with locks.hold("job", ttl=30) as first:
        with locks.hold("job", ttl=30) as second:
            assert first is True
            assert second is False
    with locks.hold("job", ttl=30) as third:
        assert third is True


def test_release_only_by_owner():
    client = FakeRedis()
    locks = LockService(client=client)
    assert locks.acquire("job", "worker-a", 30)

    assert locks.release("job", "worker-b") is False
    assert client.store == {"job:job:lock": "worker-a"}
    assert locks.release("job", "worker-a") is True


def test_unlock_run_under_the_job_lock(services, db, session_factory):
    now = datetime.now(timezone.utc)
    services.ledger.credit_wallet(
        "vendor-1", 30, TransactionType.VENDOR_EARNING, locked=True, unlock_at=now - timedelta(minutes=1)
    )
    db.commit()
    client = FakeRedis()

    result = run_unlocks(LockService(client=client), UnlockService(session_factory))

    assert result == {"skipped": False, "unlocked": 1, "amount": "30.00", "failed": 0}
    assert client.store == {}
    db.expire_all()
    assert services.ledger.get_balance("vendor-1").available == Decimal("30.00")


def test_unlock_run_skips_when_another_holds_the_lock(session_factory):
    client = FakeRedis()
    client.set(f"job:{JOB_NAME}:lock", "other-worker", nx=True)

    result = run_unlocks(LockService(client=client), UnlockService(session_factory))

    assert result == {"skipped": True}
    assert client.store[f"job:{JOB_NAME}:lock"] == "other-worker"


class BrokenTask:
    name = "notify"

    def delay(self, *args):
        raise ConnectionError("broker down")


def test_notifications_survive_a_broker_outage():
    NotificationService()._dispatch(BrokenTask(), "user-1", "12345678")
