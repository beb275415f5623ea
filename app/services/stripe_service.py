"""Stripe service — webhook verification, parsing and dispatch.

Responsible for:
- Verifying the Stripe-Signature header against STRIPE_WEBHOOK_SECRET
- Parsing raw bodies into event dicts (unsigned fallback for local dev)
- Fetching checkout line items (the only outbound Stripe call)
- Driving extraction -> status derivation -> purchase reconciliation
- Recording every parsed delivery in webhook_events
"""

import json
import logging

import stripe
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from app.extensions import db
from app.models.webhook_event import WebhookEvent
from app.services.event_context import (
    build_event_record,
    derive_status,
    extract_amount,
    extract_context,
)
from app.services.purchase_service import apply_event
from app.services.webhook_errors import (
    DownstreamFetchError,
    PayloadError,
    SignatureError,
)

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────
# Verification & Parsing
# ──────────────────────────────────────────────

def verify_webhook_signature(payload, sig_header):
    """Verify the Stripe-Signature header for a raw payload.

    Raises SignatureError if the header is missing or doesn't match.
    """
    webhook_secret = current_app.config["STRIPE_WEBHOOK_SECRET"]
    if not sig_header:
        raise SignatureError("Missing signature")
    try:
        stripe.WebhookSignature.verify_header(
            payload,
            sig_header,
            webhook_secret,
            tolerance=stripe.Webhook.DEFAULT_TOLERANCE,
        )
    except stripe.SignatureVerificationError as e:
        raise SignatureError(f"Webhook Error: {e}") from e


def read_event(payload, sig_header):
    """Turn a raw webhook body into an event dict.

    When STRIPE_WEBHOOK_SECRET is configured the signature must verify.
    Without it the body is trusted as-is, which is only acceptable locally.

    Returns {id, type, created, data: {object}}.
    Raises SignatureError or PayloadError.
    """
    if current_app.config.get("STRIPE_WEBHOOK_SECRET"):
        verify_webhook_signature(payload, sig_header)
    else:
        logger.warning(
            "STRIPE_WEBHOOK_SECRET not set — accepting unsigned webhook payload"
        )

    try:
        event = json.loads(payload)
    except ValueError as e:
        raise PayloadError(f"Invalid JSON: {e}") from e

    if not _is_event(event):
        raise PayloadError("Invalid JSON: not a Stripe event object")
    return event


def _is_event(event):
    if not isinstance(event, dict):
        return False
    if not isinstance(event.get("id"), str) or not isinstance(event.get("type"), str):
        return False
    data = event.get("data")
    return isinstance(data, dict) and isinstance(data.get("object"), dict)


# ──────────────────────────────────────────────
# Line Items
# ──────────────────────────────────────────────

def fetch_line_items(session_id):
    """List a checkout session's line items from Stripe.

    Returns a list of {name, quantity, unit_amount, price_id} dicts.
    Raises DownstreamFetchError on Stripe API failures.
    """
    stripe.api_key = current_app.config["STRIPE_SECRET_KEY"]
    limit = current_app.config.get("STRIPE_LINE_ITEMS_LIMIT", 100)

    try:
        line_items = stripe.checkout.Session.list_line_items(session_id, limit=limit)
    except stripe.StripeError as e:
        raise DownstreamFetchError(
            f"Failed to list line items for {session_id}: {e}"
        ) from e

    items = []
    for li in line_items.data:
        price = getattr(li, "price", None)
        items.append({
            "name": getattr(li, "description", None),
            "quantity": getattr(li, "quantity", None) or 0,
            "unit_amount": getattr(price, "unit_amount", None) if price else None,
            "price_id": getattr(price, "id", None) if price else None,
        })
    logger.info(f"Fetched {len(items)} line items for checkout session {session_id}")
    return items


# ──────────────────────────────────────────────
# Webhook Handling
# ──────────────────────────────────────────────

def handle_webhook_event(event):
    """Process a parsed Stripe webhook event.

    Idempotency is per purchase: re-applying an event id that is already
    in the purchase's event log is a no-op ("duplicate"). Events that
    can't be attributed to a user and a root id are acknowledged and
    dropped ("ignored").

    Returns (success: bool, message: str). success=False means the
    caller should answer 500 so Stripe retries.
    """
    event_id = event["id"]
    event_type = event["type"]
    obj = event["data"]["object"]
    context = None

    try:
        context = extract_context(event)
        if not context.is_attributable:
            logger.info(
                f"Webhook {event_id} ({event_type}) has no userId/root id, ignoring"
            )
            _record_delivery(event, context, "ignored")
            return True, "ignored"

        status = derive_status(obj, event_type)
        event_record = build_event_record(event, status)

        result = apply_event(
            context,
            event_record,
            amount=extract_amount(obj, context.kind),
            item_fetcher=fetch_line_items,
        )
        _record_delivery(event, context, result.outcome)
    except Exception as e:
        db.session.rollback()
        logger.error(
            f"Error handling {event_type} ({event_id}): {e}", exc_info=True
        )
        _record_failed_delivery(event, context)
        return False, "Webhook handler failed"

    return True, result.outcome


def _record_delivery(event, context, outcome):
    db.session.add(WebhookEvent(
        stripe_event_id=event["id"],
        event_type=event["type"],
        user_id=context.user_id if context else None,
        root_id=context.root_id if context else None,
        outcome=outcome,
    ))
    db.session.commit()


def _record_failed_delivery(event, context):
    try:
        _record_delivery(event, context, "failed")
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Could not record failed delivery {event['id']}: {e}")


def list_recent_deliveries(limit=50):
    """Newest webhook deliveries first. limit is clamped to 1..200."""
    limit = max(1, min(int(limit), 200))
    return (
        WebhookEvent.query
        .order_by(WebhookEvent.received_at.desc())
        .limit(limit)
        .all()
    )
