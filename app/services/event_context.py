"""Event context — pure helpers over raw Stripe webhook events.

Responsible for:
- Resolving the event type into a closed EventKind
- Extracting the owning user, root correlation id and related Stripe ids
- Deriving the canonical purchase status for an event
- Capturing amount/currency for a purchase created from an event

Nothing here touches the database or the Stripe API. Events are plain
dicts of the shape {id, type, created, data: {object}}.
"""

from dataclasses import dataclass, field
from enum import Enum


# Used when the event object carries no status/payment_status of its own.
STATUS_BY_EVENT_TYPE = {
    # Checkout Session
    "checkout.session.completed": "paid",
    "checkout.session.async_payment_succeeded": "paid",
    "checkout.session.async_payment_failed": "failed",
    "checkout.session.expired": "expired",
    # Payment Intent
    "payment_intent.succeeded": "succeeded",
    "payment_intent.payment_failed": "failed",
    "payment_intent.canceled": "canceled",
    "payment_intent.processing": "processing",
    # Invoice
    "invoice.paid": "paid",
    "invoice.payment_failed": "failed",
    "invoice.finalized": "finalized",
    "invoice.voided": "voided",
    "invoice.marked_uncollectible": "uncollectible",
    # Charge
    "charge.succeeded": "succeeded",
    "charge.failed": "failed",
    "charge.refunded": "refunded",
    # Refund
    "refund.succeeded": "refunded",
    "refund.updated": "refund_updated",
    # Subscription
    "customer.subscription.created": "created",
    "customer.subscription.updated": "updated",
    "customer.subscription.deleted": "canceled",
    "customer.subscription.pending_update_applied": "updated",
    "customer.subscription.pending_update_expired": "expired",
}


class EventKind(str, Enum):
    CHECKOUT_SESSION = "checkout_session"
    PAYMENT_INTENT = "payment_intent"
    INVOICE = "invoice"
    SUBSCRIPTION = "subscription"
    CHARGE = "charge"
    REFUND = "refund"
    UNKNOWN = "unknown"

    @classmethod
    def from_event_type(cls, event_type):
        """Resolve an event type string like "charge.refunded" to a kind."""
        event_type = event_type or ""
        for prefix, kind in _KIND_PREFIXES:
            if event_type.startswith(prefix):
                return kind
        return cls.UNKNOWN


# Order matters: first matching prefix wins.
_KIND_PREFIXES = (
    ("checkout.session", EventKind.CHECKOUT_SESSION),
    ("payment_intent", EventKind.PAYMENT_INTENT),
    ("invoice", EventKind.INVOICE),
    ("customer.subscription", EventKind.SUBSCRIPTION),
    ("charge.", EventKind.CHARGE),
    ("refund.", EventKind.REFUND),
)


@dataclass
class RelatedIds:
    """Foreign ids observed on a single event. None means "not observed"."""

    session_id: str = None
    payment_intent_id: str = None
    invoice_id: str = None
    subscription_id: str = None
    charge_id: str = None
    refund_id: str = None

    def observed(self):
        """(id_type, value) pairs for the ids this event actually carried."""
        pairs = [
            ("session_id", self.session_id),
            ("payment_intent_id", self.payment_intent_id),
            ("invoice_id", self.invoice_id),
            ("subscription_id", self.subscription_id),
            ("charge_id", self.charge_id),
            ("refund_id", self.refund_id),
        ]
        return [(id_type, value) for id_type, value in pairs if value]


@dataclass
class EventContext:
    user_id: str = None
    root_id: str = None
    kind: EventKind = EventKind.UNKNOWN
    related_ids: RelatedIds = field(default_factory=RelatedIds)

    @property
    def is_attributable(self):
        """True when the event can be tied to a user and a purchase."""
        return bool(self.user_id and self.root_id)


@dataclass
class EventRecord:
    """What gets appended to a purchase's event log."""

    event_id: str
    event_type: str
    status: str
    stripe_created: int = None


def _event_object(event):
    obj = (event.get("data") or {}).get("object")
    return obj if isinstance(obj, dict) else {}


def _get_string(obj, key):
    """Return obj[key] only if it is a string (expanded objects are ignored)."""
    value = obj.get(key)
    return value if isinstance(value, str) and value else None


def _first_charge_id(obj):
    charges = obj.get("charges")
    if not isinstance(charges, dict):
        return None
    data = charges.get("data")
    if isinstance(data, list) and data and isinstance(data[0], dict):
        return _get_string(data[0], "id")
    return None


def derive_status(obj, event_type):
    """Canonical status for an event.

    The object's own ``status`` (or ``payment_status``) wins when it is a
    non-empty string; otherwise STATUS_BY_EVENT_TYPE, and finally the
    event type itself for unmapped types.
    """
    if isinstance(obj, dict):
        for key in ("status", "payment_status"):
            value = obj.get(key)
            if isinstance(value, str) and value:
                return value
    return STATUS_BY_EVENT_TYPE.get(event_type, event_type)


def extract_context(event):
    """Extract user, root correlation id, kind and related ids from an event.

    Returns an EventContext. An event whose object carries no
    metadata.userId, or whose type is not a purchase-related kind, comes
    back with is_attributable == False.
    """
    obj = _event_object(event)

    user_id = None
    metadata = obj.get("metadata")
    if isinstance(metadata, dict):
        user_value = metadata.get("userId")
        if isinstance(user_value, str) and user_value:
            user_id = user_value

    kind = EventKind.from_event_type(event.get("type"))
    related = RelatedIds()
    root_id = None
    object_id = _get_string(obj, "id")

    if kind is EventKind.CHECKOUT_SESSION:
        root_id = object_id
        related.session_id = object_id
        related.payment_intent_id = _get_string(obj, "payment_intent")
        related.subscription_id = _get_string(obj, "subscription")

    elif kind is EventKind.PAYMENT_INTENT:
        root_id = object_id
        related.payment_intent_id = object_id
        related.charge_id = _first_charge_id(obj)

    elif kind is EventKind.INVOICE:
        root_id = object_id
        related.invoice_id = object_id
        related.subscription_id = _get_string(obj, "subscription")
        related.payment_intent_id = _get_string(obj, "payment_intent")

    elif kind is EventKind.SUBSCRIPTION:
        root_id = object_id
        related.subscription_id = object_id

    elif kind is EventKind.CHARGE:
        payment_intent = _get_string(obj, "payment_intent")
        root_id = payment_intent or object_id
        related.charge_id = object_id
        related.payment_intent_id = payment_intent

    elif kind is EventKind.REFUND:
        payment_intent = _get_string(obj, "payment_intent")
        root_id = payment_intent or object_id
        related.refund_id = object_id
        related.payment_intent_id = payment_intent
        related.charge_id = _get_string(obj, "charge")

    return EventContext(
        user_id=user_id, root_id=root_id, kind=kind, related_ids=related
    )


def extract_amount(obj, kind):
    """Amount (minor units) and lowercase currency for a new purchase.

    Checkout sessions may report no total; the reconciler then derives it
    from line items.
    """
    obj = obj if isinstance(obj, dict) else {}
    currency = (_get_string(obj, "currency") or "usd").lower()

    def _int(key):
        value = obj.get(key)
        return value if isinstance(value, int) and not isinstance(value, bool) else None

    if kind is EventKind.CHECKOUT_SESSION:
        amount = _int("amount_total")
    elif kind is EventKind.INVOICE:
        amount = _int("amount_paid")
        if amount is None:
            amount = _int("amount_due")
    elif kind in (EventKind.PAYMENT_INTENT, EventKind.CHARGE, EventKind.REFUND):
        amount = _int("amount")
    else:
        # Subscription objects don't carry a paid total.
        amount = None

    return amount or 0, currency


def build_event_record(event, status):
    created = event.get("created")
    return EventRecord(
        event_id=event["id"],
        event_type=event["type"],
        status=status,
        stripe_created=created if isinstance(created, int) else None,
    )
