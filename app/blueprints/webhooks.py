"""Webhooks blueprint — /stripe/webhooks

Receives Stripe webhook events.
Raw body is required for signature verification.
"""

import logging

from flask import Blueprint, request, jsonify
from werkzeug.exceptions import BadRequest

from app.services.stripe_service import read_event, handle_webhook_event
from app.services.webhook_errors import WebhookError

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/stripe")


@webhooks_bp.route("/webhooks", methods=["POST"])
def stripe_webhook():
    """Receive and process Stripe webhook events.

    1. Read the raw body (required for signature verification)
    2. Verify signature with STRIPE_WEBHOOK_SECRET, or parse unsigned JSON
       when no secret is configured
    3. Pass to handle_webhook_event (idempotent per event id)
    4. Return 200 for any handled outcome, 500 so Stripe retries on failure
    """
    try:
        payload = request.get_data(cache=False).decode("utf-8")
    except (BadRequest, UnicodeDecodeError) as e:
        logger.warning(f"Failed to read webhook body: {e}")
        return jsonify({"error": "Failed to read body"}), 400

    sig_header = request.headers.get("Stripe-Signature")

    # --- Verify + parse ---
    try:
        event = read_event(payload, sig_header)
    except WebhookError as e:
        logger.warning(f"Webhook rejected: {e}")
        return jsonify({"error": str(e)}), e.status_code

    # --- Process event (idempotent) ---
    success, message = handle_webhook_event(event)

    if success:
        return jsonify({"status": message}), 200
    else:
        logger.error(f"Webhook processing failed for {event['id']}: {message}")
        return jsonify({"error": message}), 500
