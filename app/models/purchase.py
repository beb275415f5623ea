"""Purchase ledger models.

- Purchase: one row per logical transaction per user, keyed by the Stripe
  id of the object that first produced it (session, payment intent,
  invoice, subscription, or a bare charge/refund).
- PurchaseItem: line items captured once when a checkout purchase is created.
- PurchaseRelatedId: secondary index of every foreign Stripe id observed
  for a purchase. Lookups by any correlation id go through this table.
- PurchaseEvent: append-only log of applied webhook events. The
  (purchase_id, event_id) unique constraint is the idempotency guard.

to_dict() produces the persisted purchase shape read by order history
and admin views; do not change it without updating those readers.
"""

import uuid
from datetime import datetime, timezone

from app.extensions import db


def _utcnow():
    return datetime.now(timezone.utc)


# id_type -> serialized key. Scalar types hold one value per purchase
# (a later observation replaces it); set types only ever grow.
SCALAR_ID_TYPES = {
    "session_id": "sessionId",
    "payment_intent_id": "paymentIntentId",
    "invoice_id": "invoiceId",
    "subscription_id": "subscriptionId",
}
SET_ID_TYPES = {
    "charge_id": "chargeIds",
    "refund_id": "refundIds",
}


class Purchase(db.Model):
    __tablename__ = "purchases"

    KINDS = [
        "checkout_session",
        "payment_intent",
        "invoice",
        "subscription",
        "charge",
        "refund",
    ]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    external_id = db.Column(
        db.String(255), nullable=False
    )  # root correlation id, e.g. "cs_test_..." or "pi_..."
    kind = db.Column(db.String(50), nullable=False)  # see KINDS, write-once
    status = db.Column(db.String(100), nullable=False)  # last applied event wins
    amount_total = db.Column(db.Integer, nullable=False, default=0)  # minor units
    currency = db.Column(db.String(10), nullable=False, default="usd")
    created_at = db.Column(
        db.DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at = db.Column(
        db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        db.UniqueConstraint(
            "user_id", "external_id", name="uq_purchase_user_external_id"
        ),
    )

    # --- Relationships ---
    user = db.relationship("User", back_populates="purchases")
    items = db.relationship(
        "PurchaseItem",
        back_populates="purchase",
        order_by="PurchaseItem.position",
        cascade="all, delete-orphan",
    )
    related_ids = db.relationship(
        "PurchaseRelatedId",
        back_populates="purchase",
        order_by="PurchaseRelatedId.created_at",
        cascade="all, delete-orphan",
    )
    events = db.relationship(
        "PurchaseEvent",
        back_populates="purchase",
        order_by="PurchaseEvent.processed_at",
        cascade="all, delete-orphan",
    )

    def related_values(self, id_type):
        """All values currently stored for one related-id type."""
        return [r.value for r in self.related_ids if r.id_type == id_type]

    def related_ids_dict(self):
        out = {}
        for id_type, key in SCALAR_ID_TYPES.items():
            values = self.related_values(id_type)
            if values:
                out[key] = values[0]
        for id_type, key in SET_ID_TYPES.items():
            values = self.related_values(id_type)
            if values:
                out[key] = values
        return out

    def to_dict(self):
        return {
            "id": self.external_id,
            "kind": self.kind,
            "status": self.status,
            "amountTotal": self.amount_total,
            "currency": self.currency,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "items": [item.to_dict() for item in self.items],
            "relatedIds": self.related_ids_dict(),
            "events": [event.to_dict() for event in self.events],
        }

    def __repr__(self):
        return f"<Purchase {self.external_id} ({self.status})>"


class PurchaseItem(db.Model):
    __tablename__ = "purchase_items"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    purchase_id = db.Column(
        db.String(36), db.ForeignKey("purchases.id"), nullable=False, index=True
    )
    position = db.Column(db.Integer, nullable=False, default=0)
    name = db.Column(db.String(500), nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    unit_amount = db.Column(db.Integer, nullable=True)  # minor units
    price_id = db.Column(db.String(255), nullable=True)

    # --- Relationships ---
    purchase = db.relationship("Purchase", back_populates="items")

    def to_dict(self):
        return {
            "name": self.name,
            "quantity": self.quantity,
            "unitAmount": self.unit_amount,
            "priceId": self.price_id,
        }

    def __repr__(self):
        return f"<PurchaseItem {self.name} x{self.quantity}>"


class PurchaseRelatedId(db.Model):
    __tablename__ = "purchase_related_ids"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    purchase_id = db.Column(
        db.String(36), db.ForeignKey("purchases.id"), nullable=False
    )
    # Denormalized from purchases.user_id so lookups stay on one index.
    user_id = db.Column(db.String(36), nullable=False)
    id_type = db.Column(db.String(50), nullable=False)  # see SCALAR_ID_TYPES / SET_ID_TYPES
    value = db.Column(db.String(255), nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), default=_utcnow, nullable=False
    )

    __table_args__ = (
        db.UniqueConstraint(
            "purchase_id", "id_type", "value", name="uq_purchase_related_id"
        ),
        db.Index("ix_purchase_related_ids_user_value", "user_id", "value"),
    )

    # --- Relationships ---
    purchase = db.relationship("Purchase", back_populates="related_ids")

    def __repr__(self):
        return f"<PurchaseRelatedId {self.id_type}={self.value}>"


class PurchaseEvent(db.Model):
    __tablename__ = "purchase_events"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    purchase_id = db.Column(
        db.String(36), db.ForeignKey("purchases.id"), nullable=False
    )
    event_id = db.Column(db.String(255), nullable=False)  # e.g. "evt_1Abc..."
    event_type = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(100), nullable=False)  # status at application
    processed_at = db.Column(
        db.DateTime(timezone=True), default=_utcnow, nullable=False
    )
    stripe_created = db.Column(db.Integer, nullable=True)  # epoch seconds

    __table_args__ = (
        db.UniqueConstraint(
            "purchase_id", "event_id", name="uq_purchase_event"
        ),
    )

    # --- Relationships ---
    purchase = db.relationship("Purchase", back_populates="events")

    def to_dict(self):
        return {
            "eventId": self.event_id,
            "type": self.event_type,
            "status": self.status,
            "createdAt": self.processed_at.isoformat() if self.processed_at else None,
            "stripeCreated": self.stripe_created,
        }

    def __repr__(self):
        return f"<PurchaseEvent {self.event_id} ({self.event_type})>"
