# -*- coding: utf-8 -*-
"""
Tests HTTP del endpoint POST /billing/webhooks/stripe.

- 400 sin Stripe-Signature o con body mal formado
- 401 con firma inválida
- 200 processed / skipped (idempotencia)
- 500 con outcome=failure persistido
- Un fallo transitorio del almacén no deja registro: el reenvío acredita
- Mismo comportamiento bajo el prefijo /api

Autor: WedAI
Fecha: 2026-01-14
"""

import json
import os

import pytest
from sqlalchemy import func, select

from app.modules.billing.credits import Ledger, LedgerEntry
from app.modules.billing.models import IdempotencyOutcome
from app.modules.billing.webhook_routes import get_webhook_processor
from app.modules.billing.webhooks import (
    EventDispatcher,
    IdempotencyGate,
    WebhookProcessor,
    build_signature_header,
)
from app.shared.errors import BackingStoreUnavailable

pytestmark = pytest.mark.anyio

URL = "/billing/webhooks/stripe"
WEBHOOK_SECRET = os.environ["STRIPE_WEBHOOK_SECRET"]


def _checkout(event_id="evt_123", *, metadata=None, customer="cus_route", amount=999) -> bytes:
    return json.dumps({
        "id": event_id,
        "type": "checkout.session.completed",
        "data": {"object": {
            "id": "cs_route",
            "customer": customer,
            "payment_intent": "pi_route",
            "amount_total": amount,
            "currency": "usd",
            "metadata": {"user_id": "user-route"} if metadata is None else metadata,
        }},
    }).encode()


def _signed(body: bytes, secret: str = WEBHOOK_SECRET) -> dict:
    return {
        "Stripe-Signature": build_signature_header(body, secret),
        "Content-Type": "application/json",
    }


async def test_missing_signature_header_returns_400(async_client, db_session):
    resp = await async_client.post(URL, content=_checkout())

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Missing Stripe-Signature header"
    assert await IdempotencyGate().get_record(db_session, "evt_123") is None


async def test_invalid_signature_returns_401(async_client, db_session):
    body = _checkout()
    resp = await async_client.post(URL, content=body, headers=_signed(body, secret="whsec_other"))

    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid signature"
    assert await IdempotencyGate().get_record(db_session, "evt_123") is None


async def test_tampered_body_returns_401(async_client):
    body = _checkout()
    headers = _signed(body)
    resp = await async_client.post(URL, content=_checkout(amount=99999), headers=headers)

    assert resp.status_code == 401


async def test_malformed_body_with_valid_signature_returns_400(async_client):
    body = b'{"id": "evt_bad", "type": 42}'
    resp = await async_client.post(URL, content=body, headers=_signed(body))

    assert resp.status_code == 400


async def test_checkout_credits_once_and_duplicate_is_skipped(async_client, db_session):
    body = _checkout()

    first = await async_client.post(URL, content=body, headers=_signed(body))
    assert first.status_code == 200
    assert first.json() == {
        "received": True,
        "processed": True,
        "event_type": "checkout.session.completed",
    }

    second = await async_client.post(URL, content=body, headers=_signed(body))
    assert second.status_code == 200
    assert second.json() == {
        "received": True,
        "skipped": True,
        "event_type": "checkout.session.completed",
    }

    balance = await Ledger().get_balance(db_session, "user-route")
    assert balance.total == 25
    entries = (await db_session.execute(
        select(func.count()).select_from(LedgerEntry).where(LedgerEntry.account_id == "user-route")
    )).scalar_one()
    assert entries == 1


async def test_unknown_event_type_is_acknowledged(async_client):
    body = json.dumps({"id": "evt_misc", "type": "invoice.paid", "data": {"object": {"id": "in_9"}}}).encode()
    resp = await async_client.post(URL, content=body, headers=_signed(body))

    assert resp.status_code == 200
    assert resp.json() == {"received": True, "processed": True, "event_type": "invoice.paid"}


async def test_handler_failure_returns_500_and_persists_outcome(async_client, db_session):
    body = _checkout("evt_fail", customer="cus_nobody", metadata={})
    resp = await async_client.post(URL, content=body, headers=_signed(body))

    assert resp.status_code == 500
    assert resp.json()["detail"].startswith("Webhook processing error: Customer not found")

    record = await IdempotencyGate().get_record(db_session, "evt_fail")
    assert record is not None
    assert record.outcome == IdempotencyOutcome.FAILURE


async def test_api_prefix_serves_the_same_endpoint(async_client):
    body = _checkout("evt_api")
    resp = await async_client.post("/api" + URL, content=body, headers=_signed(body))

    assert resp.status_code == 200
    assert resp.json()["processed"] is True


class _FlakyLedger(Ledger):
    """Ledger cuyo primer credit() falla como un almacén caído."""

    def __init__(self, failures: int = 1):
        super().__init__()
        self.failures = failures

    async def credit(self, session, account_id, amount, **kwargs):
        if self.failures:
            self.failures -= 1
            raise BackingStoreUnavailable("ledger credit timed out")
        return await super().credit(session, account_id, amount, **kwargs)


async def test_store_failure_rolls_back_admission_and_redelivery_credits(app, async_client, session_factory):
    ledger = _FlakyLedger()
    app.dependency_overrides[get_webhook_processor] = lambda: WebhookProcessor(
        dispatcher=EventDispatcher(ledger=ledger)
    )
    body = _checkout("evt_flaky")

    first = await async_client.post(URL, content=body, headers=_signed(body))
    assert first.status_code == 500
    assert first.json()["error_code"] == "BACKING_STORE_UNAVAILABLE"

    async with session_factory() as session:
        assert await IdempotencyGate().get_record(session, "evt_flaky") is None

    second = await async_client.post(URL, content=body, headers=_signed(body))
    assert second.status_code == 200
    assert second.json()["processed"] is True

    async with session_factory() as session:
        assert (await Ledger().get_balance(session, "user-route")).total == 25
        record = await IdempotencyGate().get_record(session, "evt_flaky")
        assert record.outcome == IdempotencyOutcome.SUCCESS
