"""Purchase status notifications.

notify_purchase_status_change() is the routine the rest of the system
calls after it observes a purchase status change. The webhook path does
not call it; callers decide when a change is worth an email (see
ApplyResult.status_changed).
"""

import logging

from flask import current_app

from app.extensions import db
from app.models.user import User
from app.services.email_service import send_email
from app.services.purchase_service import get_purchase

logger = logging.getLogger(__name__)


def format_amount(amount, currency):
    """Minor units -> "12.34 USD"."""
    if amount is None:
        return ""
    return f"{amount / 100:.2f} {(currency or 'usd').upper()}"


def notify_purchase_status_change(user_id, purchase_id, status):
    """Email the purchaser that an order's status changed.

    Args:
        user_id:     Owning user's id.
        purchase_id: The purchase's external id (e.g. "cs_..." or "pi_...").
        status:      The new canonical status.

    Returns True if an email was queued. Missing users, users without an
    email and send failures return False; failures are logged, never raised.
    """
    user = db.session.get(User, user_id)
    if not user or not user.email:
        logger.info(f"No email on file for user {user_id}, skipping status notification")
        return False

    purchase = get_purchase(user_id, purchase_id)
    currency = purchase.currency if purchase else "usd"
    items = []
    if purchase:
        items = [
            {
                "name": item.name or "",
                "quantity": item.quantity,
                "unit_price": format_amount(item.unit_amount, currency)
                if item.unit_amount is not None else "",
            }
            for item in purchase.items
        ]

    try:
        send_email(
            to=user.email,
            subject=f"Order #{purchase_id} status updated: {status}",
            template="emails/purchase_status.html",
            context={
                "customer_name": user.name or "",
                "order_id": purchase_id,
                "status": status,
                "items": items,
                "total": format_amount(purchase.amount_total, currency) if purchase else "",
                "support_email": current_app.config.get("MAIL_SUPPORT_ADDRESS"),
            },
        )
    except Exception as e:
        # Never let email failure break the caller's flow
        logger.error(f"Failed to notify user {user_id} of status change on {purchase_id}: {e}")
        return False

    logger.info(f"Status notification queued for {user.email}: {purchase_id} -> {status}")
    return True
