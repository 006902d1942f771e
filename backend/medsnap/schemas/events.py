"""
MedSnap Backend — Stripe Webhook Event Schemas
================================================

What:  Tagged variants for the webhook events the reconciler understands.
Why:   Stripe payloads are large, loosely typed dicts. Validating the few
       fields we use at the boundary means the reconciler only ever sees
       typed objects, and a malformed event fails before any state changes.
How:   The envelope's `type` is read first. Known types are validated as a
       pydantic discriminated union keyed by `type`; every other type becomes
       an UnhandledEvent, which is acknowledged and ignored.

Handled event types:
    checkout.session.completed     → CheckoutCompletedEvent
    customer.subscription.updated  → SubscriptionChangedEvent
    customer.subscription.deleted  → SubscriptionChangedEvent
"""

from typing import Annotated, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from medsnap.exceptions import ValidationError

CHECKOUT_COMPLETED = "checkout.session.completed"
SUBSCRIPTION_UPDATED = "customer.subscription.updated"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"

HANDLED_EVENT_TYPES = frozenset({CHECKOUT_COMPLETED, SUBSCRIPTION_UPDATED, SUBSCRIPTION_DELETED})


class CheckoutSessionObject(BaseModel):
    model_config = {"extra": "ignore"}

    id: Optional[str] = None
    customer: Optional[str] = None
    client_reference_id: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)

    @property
    def owner_ref(self) -> Optional[str]:
        """The MedSnap user who started checkout (set when the session was created)."""
        return self.client_reference_id or self.metadata.get("userId")


class SubscriptionObject(BaseModel):
    model_config = {"extra": "ignore"}

    id: Optional[str] = None
    customer: str
    status: str


class CheckoutData(BaseModel):
    object: CheckoutSessionObject


class SubscriptionData(BaseModel):
    object: SubscriptionObject


class CheckoutCompletedEvent(BaseModel):
    model_config = {"extra": "ignore"}

    type: Literal["checkout.session.completed"]
    id: Optional[str] = None
    data: CheckoutData


class SubscriptionChangedEvent(BaseModel):
    model_config = {"extra": "ignore"}

    type: Literal["customer.subscription.updated", "customer.subscription.deleted"]
    id: Optional[str] = None
    data: SubscriptionData


class UnhandledEvent(BaseModel):
    """Any event type the reconciler does not act on."""

    type: str
    id: Optional[str] = None


class _Envelope(BaseModel):
    model_config = {"extra": "ignore"}

    type: str
    id: Optional[str] = None


KnownEvent = Annotated[
    Union[CheckoutCompletedEvent, SubscriptionChangedEvent],
    Field(discriminator="type"),
]

StripeEvent = Union[CheckoutCompletedEvent, SubscriptionChangedEvent, UnhandledEvent]

_known_event_adapter = TypeAdapter(KnownEvent)


def parse_event(payload: bytes) -> StripeEvent:
    """
    Parse a verified webhook body into a tagged event.

    Raises:
        ValidationError: The body is not JSON, has no `type`, or a handled
            event type is missing a field the reconciler needs.
    """
    try:
        envelope = _Envelope.model_validate_json(payload)
        if envelope.type not in HANDLED_EVENT_TYPES:
            return UnhandledEvent(type=envelope.type, id=envelope.id)
        return _known_event_adapter.validate_json(payload)
    except PydanticValidationError as e:
        raise ValidationError(
            message="Malformed webhook payload",
            field="body",
            context={"errors": e.error_count()},
        ) from e
