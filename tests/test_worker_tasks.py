import sys
import types
from datetime import timedelta

import pytest

from portal.models.base import utcnow
from portal.models.payment_attempt import PaymentAttempt
from portal.services.payment_service import PaymentService
from portal.worker import dispatch
from portal.worker.tasks import reconcile_one, reconcile_stale
from tests._client import load_attempt
from tests.conftest import VERIFY_PATH


class _FakeTask:
    def __init__(self, *, fail: bool = False) -> None:
        self.calls = []
        self.fail = fail

    def apply_async(self, *, args, countdown):
        if self.fail:
            raise RuntimeError("broker unreachable")
        self.calls.append({"args": args, "countdown": countdown})


def _install_fake_tasks(monkeypatch, task):
    fake = types.ModuleType("portal.worker.tasks")
    fake.reconcile_payment = task
    monkeypatch.setitem(sys.modules, "portal.worker.tasks", fake)


def test_dispatch_is_noop_when_disabled(monkeypatch):
    task = _FakeTask()
    _install_fake_tasks(monkeypatch, task)
    monkeypatch.setattr(dispatch.settings, "celery_enabled", False)

    dispatch.enqueue_reconcile_payment(checkout_request_id="ws_CO_0001")
    assert task.calls == []


def test_dispatch_enqueues_when_enabled(monkeypatch):
    task = _FakeTask()
    _install_fake_tasks(monkeypatch, task)
    monkeypatch.setattr(dispatch.settings, "celery_enabled", True)

    dispatch.enqueue_reconcile_payment(checkout_request_id="ws_CO_0001", countdown=30)
    assert task.calls == [{"args": ["ws_CO_0001"], "countdown": 30}]


def test_dispatch_swallows_enqueue_errors(monkeypatch):
    _install_fake_tasks(monkeypatch, _FakeTask(fail=True))
    monkeypatch.setattr(dispatch.settings, "celery_enabled", True)

    dispatch.enqueue_reconcile_payment(checkout_request_id="ws_CO_0001")


async def _add_attempt(session_factory, checkout_request_id, *, age):
    created = utcnow() - age
    async with session_factory() as session:
        session.add(
            PaymentAttempt(
                checkout_request_id=checkout_request_id,
                purpose="application",
                phone_number="254712345678",
                amount=250,
                status="pending",
                created_at=created,
                updated_at=created,
            )
        )
        await session.commit()


@pytest.mark.anyio
async def test_reconcile_one_applies_proxy_outcome(session_factory, swiftpay_client, swiftpay_api):
    await _add_attempt(session_factory, "ws_CO_0001", age=timedelta(minutes=2))
    swiftpay_api.set(VERIFY_PATH, (200, {"success": True, "payment": {"status": "success"}}))

    status = await reconcile_one(session_factory, PaymentService(swiftpay_client), "ws_CO_0001")
    assert status == "success"

    attempt = await load_attempt(session_factory, "ws_CO_0001")
    assert attempt.status == "success"


@pytest.mark.anyio
async def test_reconcile_one_unknown_checkout(session_factory, swiftpay_client, swiftpay_api):
    status = await reconcile_one(session_factory, PaymentService(swiftpay_client), "ws_CO_missing")
    assert status is None
    assert swiftpay_api.requests == []


@pytest.mark.anyio
async def test_reconcile_one_leaves_pending_when_proxy_undecided(session_factory, swiftpay_client):
    await _add_attempt(session_factory, "ws_CO_0001", age=timedelta(minutes=2))

    status = await reconcile_one(session_factory, PaymentService(swiftpay_client), "ws_CO_0001")
    assert status == "pending"


@pytest.mark.anyio
async def test_reconcile_stale_only_touches_old_pending_attempts(session_factory, swiftpay_client, swiftpay_api):
    await _add_attempt(session_factory, "ws_CO_old", age=timedelta(minutes=30))
    await _add_attempt(session_factory, "ws_CO_fresh", age=timedelta(seconds=10))
    swiftpay_api.set(VERIFY_PATH, (200, {"success": True, "payment": {"status": "cancelled"}}))

    moved = await reconcile_stale(
        session_factory,
        PaymentService(swiftpay_client),
        older_than=timedelta(minutes=5),
    )
    assert moved == 1

    assert (await load_attempt(session_factory, "ws_CO_old")).status == "cancelled"
    assert (await load_attempt(session_factory, "ws_CO_fresh")).status == "pending"
    assert len(swiftpay_api.calls(VERIFY_PATH)) == 1
