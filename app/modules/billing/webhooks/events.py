# -*- coding: utf-8 -*-
"""
backend/app/modules/billing/webhooks/events.py

Parsing de eventos de pago a una unión cerrada de modelos Pydantic.

Tipos conocidos (campo `type` del proveedor):
- checkout.session.completed      -> CheckoutCompleted
- payment_intent.succeeded        -> PaymentSucceeded
- payment_intent.payment_failed   -> PaymentFailed
- customer.subscription.created   -> SubscriptionCreated

Cualquier otro tipo se convierte en UnknownEvent: se admite y se marca
success sin efectos.

Autor: WedAI
Fecha: 2025-12-13
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, ClassVar, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from app.shared.errors import ValidationError

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    """Unión cerrada de tipos de evento que maneja el dispatcher."""
    CHECKOUT_COMPLETED = "checkout_completed"
    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"
    SUBSCRIPTION_CREATED = "subscription_created"
    OTHER = "other"


# =============================================================================
# OBJETOS DEL PROVEEDOR (data.object)
# =============================================================================

class _ProviderObject(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    customer: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class CheckoutSessionObject(_ProviderObject):
    payment_intent: Optional[str] = None
    amount_total: Optional[int] = None
    currency: Optional[str] = None


class PaymentError(BaseModel):
    model_config = ConfigDict(extra="allow")

    code: Optional[str] = None
    message: Optional[str] = None


class PaymentIntentObject(_ProviderObject):
    amount: int = 0
    currency: Optional[str] = None
    status: Optional[str] = None
    last_payment_error: Optional[PaymentError] = None


class SubscriptionObject(_ProviderObject):
    customer: str
    status: str
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None
    cancel_at_period_end: bool = False
    items: Optional[Dict[str, Any]] = None

    @property
    def plan_id(self) -> Optional[str]:
        """items.data[0].price.id, si viene."""
        data = (self.items or {}).get("data") or []
        if not data:
            return None
        price = data[0].get("price") or {}
        return price.get("id")

    @staticmethod
    def to_datetime(epoch: Optional[int]) -> Optional[datetime]:
        if epoch is None:
            return None
        return datetime.fromtimestamp(epoch, tz=timezone.utc)


# =============================================================================
# EVENTOS
# =============================================================================

class _EventBase(BaseModel):
    model_config = ConfigDict(extra="ignore")

    kind: ClassVar[EventKind]

    id: str = Field(min_length=1, description="ID único del evento en el proveedor")
    created: Optional[int] = None
    raw: Dict[str, Any] = Field(default_factory=dict, exclude=True, description="Payload original")


class _DataCheckout(BaseModel):
    object: CheckoutSessionObject


class _DataPaymentIntent(BaseModel):
    object: PaymentIntentObject


class _DataSubscription(BaseModel):
    object: SubscriptionObject


class CheckoutCompleted(_EventBase):
    kind: ClassVar[EventKind] = EventKind.CHECKOUT_COMPLETED
    type: Literal["checkout.session.completed"]
    data: _DataCheckout


class PaymentSucceeded(_EventBase):
    kind: ClassVar[EventKind] = EventKind.PAYMENT_SUCCEEDED
    type: Literal["payment_intent.succeeded"]
    data: _DataPaymentIntent


class PaymentFailed(_EventBase):
    kind: ClassVar[EventKind] = EventKind.PAYMENT_FAILED
    type: Literal["payment_intent.payment_failed"]
    data: _DataPaymentIntent


class SubscriptionCreated(_EventBase):
    kind: ClassVar[EventKind] = EventKind.SUBSCRIPTION_CREATED
    type: Literal["customer.subscription.created"]
    data: _DataSubscription


class UnknownEvent(_EventBase):
    kind: ClassVar[EventKind] = EventKind.OTHER
    type: str


KnownEvent = Annotated[
    Union[CheckoutCompleted, PaymentSucceeded, PaymentFailed, SubscriptionCreated],
    Field(discriminator="type"),
]

PaymentEventModel = Union[CheckoutCompleted, PaymentSucceeded, PaymentFailed, SubscriptionCreated, UnknownEvent]

KNOWN_EVENT_TYPES = frozenset({
    "checkout.session.completed",
    "payment_intent.succeeded",
    "payment_intent.payment_failed",
    "customer.subscription.created",
})

_known_adapter: TypeAdapter = TypeAdapter(KnownEvent)


class _Envelope(BaseModel):
    """Forma mínima común a todo evento: {id, type, data.object}."""

    class _Data(BaseModel):
        object: Dict[str, Any]

    id: str = Field(min_length=1)
    type: str = Field(min_length=1)
    data: _Data


def parse_payment_event(raw_body: Union[bytes, str, Dict[str, Any]]) -> PaymentEventModel:
    """
    Valida el envelope y devuelve la variante tipada del evento.

    Raises:
        ValidationError: body no es JSON, falta id/type/data.object o el objeto
            de un tipo conocido no tiene los campos requeridos
    """
    if isinstance(raw_body, dict):
        payload = raw_body
    else:
        try:
            payload = json.loads(raw_body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ValidationError(f"Malformed event body: {e}") from e

    if not isinstance(payload, dict):
        raise ValidationError("Malformed event body: expected a JSON object")

    try:
        envelope = _Envelope.model_validate(payload)
        if envelope.type in KNOWN_EVENT_TYPES:
            event = _known_adapter.validate_python(payload)
        else:
            event = UnknownEvent.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(f"Malformed event: {e.errors(include_url=False)}") from e

    event.raw = payload
    return event


__all__ = [
    "EventKind",
    "CheckoutSessionObject",
    "PaymentIntentObject",
    "SubscriptionObject",
    "CheckoutCompleted",
    "PaymentSucceeded",
    "PaymentFailed",
    "SubscriptionCreated",
    "UnknownEvent",
    "PaymentEventModel",
    "KNOWN_EVENT_TYPES",
    "parse_payment_event",
]
