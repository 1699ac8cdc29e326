from datetime import datetime, timedelta, timezone

import pytest

from portal.main import create_app
from portal.models.application import Application
from portal.models.interview_booking import InterviewBooking
from portal.models.payment_attempt import PaymentAttempt
from tests._client import get_async_client

pytestmark = pytest.mark.anyio

BASE_TIME = datetime(2026, 10, 1, 8, 0, tzinfo=timezone.utc)


async def _seed(session_factory):
    async with session_factory() as session:
        app = Application(
            project_name="portal",
            full_name="Jane Wanjiku",
            email="jane@example.com",
            phone="254712345678",
            job_title="Warehouse Clerk",
            payment_status="paid",
        )
        booking = InterviewBooking(
            user_id="user-1",
            company="Acme Logistics",
            position="Driver",
            interview_type="video",
            interview_at=BASE_TIME + timedelta(days=30),
        )
        session.add_all([app, booking])
        await session.flush()

        session.add_all(
            [
                PaymentAttempt(
                    checkout_request_id="ws_CO_app",
                    application_id=app.id,
                    purpose="application",
                    phone_number="254712345678",
                    amount=160,
                    status="success",
                    mpesa_receipt="QKL12ABC34",
                    created_at=BASE_TIME,
                    updated_at=BASE_TIME,
                ),
                PaymentAttempt(
                    checkout_request_id="ws_CO_interview",
                    interview_booking_id=booking.id,
                    user_id="user-1",
                    purpose="interview_booking",
                    phone_number="254722000111",
                    amount=500,
                    status="pending",
                    created_at=BASE_TIME + timedelta(minutes=1),
                    updated_at=BASE_TIME + timedelta(minutes=1),
                ),
                PaymentAttempt(
                    checkout_request_id="ws_CO_loose",
                    purpose="unknown",
                    phone_number="254733000222",
                    amount=250,
                    status="cancelled",
                    created_at=BASE_TIME + timedelta(minutes=2),
                    updated_at=BASE_TIME + timedelta(minutes=2),
                ),
            ]
        )
        await session.commit()


async def test_transactions_lists_newest_first_with_joined_details(client, session_factory):
    await _seed(session_factory)

    r = await client.get("/api/transactions")
    assert r.status_code == 200, r.text

    body = r.json()
    assert body["success"] is True
    assert body["count"] == 3
    assert body["page"] == 1
    assert body["pageSize"] == 25
    assert [row["checkout_request_id"] for row in body["data"]] == ["ws_CO_loose", "ws_CO_interview", "ws_CO_app"]

    loose, interview, application = body["data"]
    assert loose["application_id"] is None
    assert loose["interview_booking_id"] is None

    assert interview["interview_company"] == "Acme Logistics"
    assert interview["interview_position"] == "Driver"
    assert interview["interview_type"] == "video"

    assert application["application_full_name"] == "Jane Wanjiku"
    assert application["application_email"] == "jane@example.com"
    assert application["application_payment_status"] == "paid"
    assert application["mpesa_receipt"] == "QKL12ABC34"
    assert application["amount"] == 160


@pytest.mark.parametrize(
    "params, expected",
    [
        ({"purpose": "application"}, ["ws_CO_app"]),
        ({"status": "pending"}, ["ws_CO_interview"]),
        ({"q": "acme"}, ["ws_CO_interview"]),
        ({"q": "JANE@"}, ["ws_CO_app"]),
        ({"q": "722000"}, ["ws_CO_interview"]),
        ({"q": "loose"}, ["ws_CO_loose"]),
        ({"q": "100%"}, []),
        ({"q": "  ", "purpose": ""}, ["ws_CO_loose", "ws_CO_interview", "ws_CO_app"]),
    ],
)
async def test_transactions_filters(client, session_factory, params, expected):
    await _seed(session_factory)

    r = await client.get("/api/transactions", params=params)
    assert r.status_code == 200
    assert [row["checkout_request_id"] for row in r.json()["data"]] == expected
    assert r.json()["count"] == len(expected)


async def test_transactions_paginates(client, session_factory):
    await _seed(session_factory)

    r = await client.get("/api/transactions", params={"page": 2, "pageSize": 2})
    body = r.json()
    assert body["count"] == 3
    assert body["page"] == 2
    assert body["pageSize"] == 2
    assert [row["checkout_request_id"] for row in body["data"]] == ["ws_CO_app"]


@pytest.mark.parametrize(
    "params, page, page_size",
    [
        ({"page": "0", "pageSize": "-5"}, 1, 25),
        ({"page": "abc", "pageSize": "x"}, 1, 25),
        ({"pageSize": "5000"}, 1, 200),
    ],
)
async def test_transactions_normalizes_paging(client, params, page, page_size):
    r = await client.get("/api/transactions", params=params)
    assert r.status_code == 200
    assert r.json()["page"] == page
    assert r.json()["pageSize"] == page_size


def _admin_client(settings, engine, swiftpay_client, **overrides):
    configured = settings.model_copy(update=overrides)
    app = create_app(configured, engine=engine, swiftpay=swiftpay_client)
    return get_async_client(app)


async def test_transactions_requires_configured_token(settings, engine, swiftpay_client):
    async with _admin_client(settings, engine, swiftpay_client, transactions_admin_token="s3cret") as client:
        missing = await client.get("/api/transactions")
        wrong = await client.get("/api/transactions", headers={"X-Admin-Token": "nope"})
        via_header = await client.get("/api/transactions", headers={"X-Admin-Token": "s3cret"})
        via_bearer = await client.get("/api/transactions", headers={"Authorization": "Bearer s3cret"})

    assert missing.status_code == 401
    assert missing.json()["message"] == "Unauthorized"
    assert wrong.status_code == 401
    assert via_header.status_code == 200
    assert via_bearer.status_code == 200


async def test_transactions_refuses_in_production_without_token(settings, engine, swiftpay_client):
    async with _admin_client(settings, engine, swiftpay_client, environment="production") as client:
        r = await client.get("/api/transactions")

    assert r.status_code == 500
    assert r.json()["message"] == "Server misconfigured"
