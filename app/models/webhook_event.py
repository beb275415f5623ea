"""Webhook delivery log.

One row per parsed delivery, including redeliveries, so the same
stripe_event_id may appear several times with different outcomes.
Idempotency is NOT decided here; that lives on purchase_events.
"""

import uuid

from app.extensions import db


class WebhookEvent(db.Model):
    __tablename__ = "webhook_events"

    OUTCOMES = ["created", "applied", "duplicate", "ignored", "failed"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    stripe_event_id = db.Column(
        db.String(255), nullable=False, index=True
    )  # e.g. "evt_1Abc..."
    event_type = db.Column(
        db.String(255), nullable=False
    )  # e.g. "checkout.session.completed"
    user_id = db.Column(db.String(36), nullable=True)  # metadata.userId, unverified
    root_id = db.Column(db.String(255), nullable=True)
    outcome = db.Column(db.String(50), nullable=False)  # see OUTCOMES
    received_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now(), index=True
    )

    def to_dict(self):
        return {
            "eventId": self.stripe_event_id,
            "type": self.event_type,
            "userId": self.user_id,
            "rootId": self.root_id,
            "outcome": self.outcome,
            "receivedAt": self.received_at.isoformat() if self.received_at else None,
        }

    def __repr__(self):
        return f"<WebhookEvent {self.stripe_event_id} ({self.outcome})>"
