# -*- coding: utf-8 -*-
"""
Tests del pipeline de webhooks: Idempotency Gate + Event Dispatcher.

Cubre:
- Un evento nuevo se procesa una vez; el duplicado se omite sin efectos
- Dos entregas concurrentes en sesiones distintas: gana la primera
- Un handler que falla deja outcome=failure y se re-admite en el reenvío
- replay_failed re-despacha desde el payload guardado
- Auditoría de pagos y upsert de suscripciones
- Tipos desconocidos: success sin efectos

Autor: WedAI
Fecha: 2026-01-14
"""

import asyncio

import pytest
from sqlalchemy import func, select

from app.modules.billing.credits import Ledger, LedgerEntry
from app.modules.billing.models import (
    IdempotencyOutcome,
    PaymentCustomer,
    PaymentLog,
    Subscription,
)
from app.modules.billing.webhooks import (
    AdmitResult,
    EventDispatcher,
    IdempotencyGate,
    PaymentCustomerRepository,
    WebhookProcessor,
    parse_payment_event,
)
from app.modules.billing.webhooks.processor import ProcessResult
from app.shared.database.database import session_scope
from app.shared.errors import DuplicateEvent, HandlerFailure

pytestmark = pytest.mark.anyio


def checkout_event(event_id="evt_checkout_1", *, customer="cus_1", amount=999, metadata=None, payment_intent="pi_1"):
    return parse_payment_event({
        "id": event_id,
        "type": "checkout.session.completed",
        "data": {"object": {
            "id": f"cs_{event_id}",
            "customer": customer,
            "payment_intent": payment_intent,
            "amount_total": amount,
            "currency": "usd",
            "metadata": {"user_id": "user-1"} if metadata is None else metadata,
        }},
    })


async def _ledger_rows(session, account_id="user-1") -> int:
    stmt = select(func.count()).select_from(LedgerEntry).where(LedgerEntry.account_id == account_id)
    return (await session.execute(stmt)).scalar_one()


async def _balance(session, account_id="user-1") -> int:
    return (await Ledger().get_balance(session, account_id)).total


# ---------------------------------------------------------------------------
# Idempotencia
# ---------------------------------------------------------------------------

async def test_new_checkout_credits_account_and_links_customer(db_session):
    processor = WebhookProcessor()

    result = await processor.process(db_session, checkout_event())
    await db_session.commit()

    assert result.duplicate is False
    assert result.success is True
    assert result.processed is True
    assert result.credits_applied == 25
    assert result.outcome == "success"

    assert await _balance(db_session) == 25
    assert await PaymentCustomerRepository().get_account_id(db_session, "cus_1") == "user-1"

    record = await processor.gate.get_record(db_session, "evt_checkout_1")
    assert record.outcome == IdempotencyOutcome.SUCCESS
    assert record.processed_at is not None


async def test_duplicate_event_is_skipped_without_effects(db_session):
    processor = WebhookProcessor()

    await processor.process(db_session, checkout_event())
    await db_session.commit()
    again = await processor.process(db_session, checkout_event())
    await db_session.commit()

    assert again.duplicate is True
    assert again.outcome == "duplicate"
    assert await _balance(db_session) == 25
    assert await _ledger_rows(db_session) == 1


async def test_gate_admits_only_once(db_session):
    gate = IdempotencyGate()
    event = checkout_event("evt_gate")

    assert await gate.admit(db_session, event) == AdmitResult.NEW
    await gate.record_outcome(db_session, event.id, success=True)
    assert await gate.admit(db_session, event) == AdmitResult.ALREADY_PROCESSED


async def test_concurrent_deliveries_on_separate_sessions_credit_once(session_factory):
    event = checkout_event("evt_race")

    async def deliver():
        async with session_scope(session_factory) as session:
            return await WebhookProcessor().process(session, event)

    results = await asyncio.gather(deliver(), deliver())

    assert sorted(r.duplicate for r in results) == [False, True]
    assert all(r.success for r in results)
    async with session_factory() as session:
        assert await _balance(session) == 25
        assert await _ledger_rows(session) == 1
        record = await IdempotencyGate().get_record(session, "evt_race")
        assert record.outcome == IdempotencyOutcome.SUCCESS
        assert record.attempts == 1


async def test_customer_mapping_wins_over_metadata(db_session):
    db_session.add(PaymentCustomer(provider_customer_id="cus_known", account_id="user-mapped"))
    await db_session.commit()

    result = await WebhookProcessor().process(
        db_session,
        checkout_event("evt_mapped", customer="cus_known", metadata={"user_id": "user-other"}),
    )
    await db_session.commit()

    assert result.success is True
    assert await _balance(db_session, "user-mapped") == 25
    assert await _balance(db_session, "user-other") == 0


async def test_checkout_with_amount_below_one_credit_applies_nothing(db_session):
    result = await WebhookProcessor().process(db_session, checkout_event("evt_tiny", amount=30))
    await db_session.commit()

    assert result.success is True
    assert result.credits_applied == 0
    assert await _ledger_rows(db_session) == 0


# ---------------------------------------------------------------------------
# Fallos y replay
# ---------------------------------------------------------------------------

async def test_handler_failure_records_failure_and_redelivery_retries(db_session):
    processor = WebhookProcessor()
    orphan = checkout_event("evt_orphan", customer="cus_unknown", metadata={})

    first = await processor.process(db_session, orphan)
    await db_session.commit()

    assert first.success is False
    assert first.outcome == "failure"
    assert "Customer not found: cus_unknown" in first.error
    assert await _balance(db_session) == 0

    record = await processor.gate.get_record(db_session, "evt_orphan")
    assert record.outcome == IdempotencyOutcome.FAILURE
    assert "Customer not found" in record.error

    # El reenvío del proveedor re-admite el evento fallido
    second = await processor.process(db_session, orphan)
    await db_session.commit()

    assert second.duplicate is False
    record = await processor.gate.get_record(db_session, "evt_orphan")
    assert record.attempts == 2
    assert record.outcome == IdempotencyOutcome.FAILURE


async def test_replay_failed_event_after_fixing_customer(db_session):
    processor = WebhookProcessor()
    await processor.process(db_session, checkout_event("evt_replay", customer="cus_late", metadata={}))
    await db_session.commit()

    assert await processor.gate.list_failed(db_session) == ["evt_replay"]

    db_session.add(PaymentCustomer(provider_customer_id="cus_late", account_id="user-late"))
    await db_session.commit()

    replayed = await processor.replay_failed(db_session, "evt_replay")
    await db_session.commit()

    assert replayed is not None
    assert replayed.success is True
    assert replayed.credits_applied == 25
    assert await _balance(db_session, "user-late") == 25
    assert await processor.gate.list_failed(db_session) == []

    # Un segundo replay no encuentra nada en failure
    assert await processor.replay_failed(db_session, "evt_replay") is None


async def test_replay_unknown_event_returns_none(db_session):
    assert await WebhookProcessor().replay_failed(db_session, "evt_missing") is None


class _ExplodingLedger(Ledger):
    async def credit(self, session, account_id, amount, **kwargs):
        await super().credit(session, account_id, amount, **kwargs)
        raise RuntimeError("boom after write")


async def test_failed_handler_rolls_back_partial_writes(db_session):
    processor = WebhookProcessor(dispatcher=EventDispatcher(ledger=_ExplodingLedger()))

    result = await processor.process(db_session, checkout_event("evt_partial"))
    await db_session.commit()

    assert result.success is False
    assert result.error == "boom after write"
    assert await _balance(db_session) == 0
    assert await _ledger_rows(db_session) == 0


# ---------------------------------------------------------------------------
# Otros handlers
# ---------------------------------------------------------------------------

async def test_payment_failed_is_logged_without_touching_balance(db_session):
    event = parse_payment_event({
        "id": "evt_pf",
        "type": "payment_intent.payment_failed",
        "data": {"object": {
            "id": "pi_declined",
            "customer": "cus_1",
            "amount": 499,
            "currency": "usd",
            "last_payment_error": {"code": "card_declined", "message": "Your card was declined."},
        }},
    })

    result = await WebhookProcessor().process(db_session, event)
    await db_session.commit()

    assert result.success is True
    log = (await db_session.execute(select(PaymentLog))).scalar_one()
    assert log.status == "failed"
    assert log.error_code == "card_declined"
    assert log.amount_cents == 499
    assert await _ledger_rows(db_session) == 0


async def test_subscription_created_is_upserted(db_session):
    def sub_event(event_id, status):
        return parse_payment_event({
            "id": event_id,
            "type": "customer.subscription.created",
            "data": {"object": {
                "id": "sub_1",
                "customer": "cus_sub",
                "status": status,
                "current_period_start": 1700000000,
                "current_period_end": 1702592000,
                "items": {"data": [{"price": {"id": "price_pro"}}]},
                "metadata": {"user_id": "user-sub"},
            }},
        })

    processor = WebhookProcessor()
    first = await processor.process(db_session, sub_event("evt_sub_1", "incomplete"))
    second = await processor.process(db_session, sub_event("evt_sub_2", "active"))
    await db_session.commit()

    assert first.success and second.success
    rows = (await db_session.execute(select(Subscription))).scalars().all()
    assert len(rows) == 1
    assert rows[0].status == "active"
    assert rows[0].plan_id == "price_pro"
    assert rows[0].account_id == "user-sub"


async def test_unknown_event_type_succeeds_without_effects(db_session):
    event = parse_payment_event({"id": "evt_other", "type": "invoice.paid", "data": {"object": {"id": "in_1"}}})
    processor = WebhookProcessor()

    result = await processor.process(db_session, event)
    await db_session.commit()

    assert result.success is True
    assert result.processed is True
    assert result.credits_applied == 0
    record = await IdempotencyGate().get_record(db_session, "evt_other")
    assert record.outcome == IdempotencyOutcome.SUCCESS
    assert (await processor.process(db_session, event)).duplicate is True


def test_raise_for_outcome_maps_result_to_domain_errors():
    ProcessResult(event_id="evt_ok", event_type="x", processed=True).raise_for_outcome()

    with pytest.raises(DuplicateEvent) as dup:
        ProcessResult(event_id="evt_dup", event_type="x", duplicate=True).raise_for_outcome()
    assert dup.value.event_id == "evt_dup"

    with pytest.raises(HandlerFailure) as failed:
        ProcessResult(event_id="evt_bad", event_type="x", success=False, error="boom").raise_for_outcome()
    assert failed.value.event_id == "evt_bad"
    assert failed.value.error == "boom"
