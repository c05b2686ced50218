# -*- coding: utf-8 -*-
"""
Tests de parsing de eventos de pago a la unión cerrada de modelos.

Autor: WedAI
Fecha: 2025-12-13
"""
import json

import pytest

from app.modules.billing.webhooks.events import (
    CheckoutCompleted,
    EventKind,
    PaymentFailed,
    PaymentSucceeded,
    SubscriptionCreated,
    UnknownEvent,
    parse_payment_event,
)
from app.shared.errors import ValidationError


def _checkout(**overrides):
    obj = {
        "id": "cs_test_1",
        "customer": "cus_1",
        "payment_intent": "pi_1",
        "amount_total": 999,
        "currency": "usd",
        "metadata": {"user_id": "user-1"},
    }
    obj.update(overrides)
    return {"id": "evt_1", "type": "checkout.session.completed", "created": 1700000000, "data": {"object": obj}}


def test_parses_checkout_completed_from_bytes():
    event = parse_payment_event(json.dumps(_checkout()).encode())

    assert isinstance(event, CheckoutCompleted)
    assert event.kind == EventKind.CHECKOUT_COMPLETED
    assert event.data.object.amount_total == 999
    assert event.data.object.metadata["user_id"] == "user-1"
    assert event.raw["id"] == "evt_1"


def test_parses_payment_intents():
    succeeded = parse_payment_event({
        "id": "evt_2",
        "type": "payment_intent.succeeded",
        "data": {"object": {"id": "pi_2", "amount": 499, "currency": "usd"}},
    })
    failed = parse_payment_event({
        "id": "evt_3",
        "type": "payment_intent.payment_failed",
        "data": {"object": {
            "id": "pi_3",
            "amount": 499,
            "last_payment_error": {"code": "card_declined", "message": "Your card was declined."},
        }},
    })

    assert isinstance(succeeded, PaymentSucceeded)
    assert isinstance(failed, PaymentFailed)
    assert failed.data.object.last_payment_error.code == "card_declined"


def test_parses_subscription_with_plan_id():
    event = parse_payment_event({
        "id": "evt_4",
        "type": "customer.subscription.created",
        "data": {"object": {
            "id": "sub_1",
            "customer": "cus_1",
            "status": "active",
            "current_period_start": 1700000000,
            "current_period_end": 1702592000,
            "items": {"data": [{"price": {"id": "price_pro"}}]},
        }},
    })

    assert isinstance(event, SubscriptionCreated)
    sub = event.data.object
    assert sub.plan_id == "price_pro"
    assert sub.to_datetime(sub.current_period_start).year == 2023


def test_unknown_type_becomes_unknown_event():
    event = parse_payment_event({"id": "evt_5", "type": "invoice.paid", "data": {"object": {"id": "in_1"}}})
    assert isinstance(event, UnknownEvent)
    assert event.kind == EventKind.OTHER


@pytest.mark.parametrize("body", [
    b"not json",
    b"[1, 2, 3]",
    json.dumps({"type": "checkout.session.completed", "data": {"object": {}}}).encode(),
    json.dumps({"id": "", "type": "x", "data": {"object": {}}}).encode(),
    json.dumps({"id": "evt_6", "type": "invoice.paid"}).encode(),
])
def test_malformed_envelope_raises_validation_error(body):
    with pytest.raises(ValidationError):
        parse_payment_event(body)


def test_known_type_missing_required_fields_raises():
    # Suscripción sin customer ni status
    with pytest.raises(ValidationError):
        parse_payment_event({
            "id": "evt_7",
            "type": "customer.subscription.created",
            "data": {"object": {"id": "sub_2"}},
        })
