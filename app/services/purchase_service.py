"""Purchase service — folds webhook events into per-user purchase records.

Responsible for:
- Finding a user's purchase by its own id or any related Stripe id
- Applying an event exactly once (status, event log, related ids)
- Creating the purchase on first sight, with line items for checkouts
- Read helpers used by the CLI and notifications

Each apply_event() call is its own transaction and commits. There is no
in-process locking: concurrent deliveries are serialized by the row lock
taken in find_purchase(lock=True) and by the unique constraints on
purchase_events (purchase_id, event_id) and purchases (user_id, external_id).
"""

import logging
from dataclasses import dataclass

from sqlalchemy import case, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.extensions import db
from app.models.purchase import (
    SCALAR_ID_TYPES,
    Purchase,
    PurchaseEvent,
    PurchaseItem,
    PurchaseRelatedId,
)
from app.models.user import User
from app.services.event_context import EventKind
from app.services.webhook_errors import ProcessingError

logger = logging.getLogger(__name__)


@dataclass
class ApplyResult:
    outcome: str  # created | applied | duplicate | ignored
    external_id: str = None  # root Stripe id, not Purchase.id
    status: str = None
    previous_status: str = None

    @property
    def created(self):
        return self.outcome == "created"

    @property
    def status_changed(self):
        """Whether the caller should treat this as a status change to notify on."""
        if self.outcome == "created":
            return True
        return self.outcome == "applied" and self.status != self.previous_status


# ──────────────────────────────────────────────
# Lookup
# ──────────────────────────────────────────────

def find_purchase(user_id, correlation_id, lock=False):
    """Find the user's purchase reachable by correlation_id.

    Matches purchases.external_id first, then any value in the
    purchase_related_ids index. With lock=True the row is selected
    FOR UPDATE (ignored by SQLite).

    Returns a Purchase or None.
    """
    related_match = select(PurchaseRelatedId.purchase_id).where(
        PurchaseRelatedId.user_id == user_id,
        PurchaseRelatedId.value == correlation_id,
    )
    query = Purchase.query.filter(
        Purchase.user_id == user_id,
        or_(
            Purchase.external_id == correlation_id,
            Purchase.id.in_(related_match),
        ),
    ).order_by(
        case((Purchase.external_id == correlation_id, 0), else_=1),
        Purchase.created_at,
    )
    if lock:
        query = query.with_for_update()
    return query.first()


def get_purchase(user_id, external_id):
    return Purchase.query.filter_by(
        user_id=user_id, external_id=external_id
    ).first()


def list_purchases(user_id):
    """All purchases for a user, oldest first, in their persisted shape."""
    purchases = (
        Purchase.query
        .filter_by(user_id=user_id)
        .order_by(Purchase.created_at)
        .all()
    )
    return [p.to_dict() for p in purchases]


# ──────────────────────────────────────────────
# Reconciliation
# ──────────────────────────────────────────────

def apply_event(context, event_record, amount=(0, "usd"), item_fetcher=None):
    """Apply one webhook event to the owning user's purchase, exactly once.

    Args:
        context:      EventContext (user_id, root_id, kind, related_ids).
                      Must be attributable.
        event_record: EventRecord to append; its status becomes the
                      purchase status.
        amount:       (amount_total, currency) used only when creating.
        item_fetcher: Callable(session_id) -> list of item dicts. Called
                      at most once, only when a new checkout_session
                      purchase is created.

    Returns an ApplyResult. Outcome "ignored" when the user doesn't exist.

    Raises:
        ProcessingError: on any database failure or a failed fetch. The
            session is rolled back first, so a retry starts clean.
    """
    try:
        if db.session.get(User, context.user_id) is None:
            logger.warning(
                f"Event {event_record.event_id}: unknown user {context.user_id}, ignoring"
            )
            return ApplyResult(outcome="ignored")

        try:
            return _apply_once(context, event_record, amount, item_fetcher)
        except IntegrityError:
            # Lost a race with a concurrent delivery: either the purchase was
            # created or this event was applied after our lookup.
            db.session.rollback()
            logger.info(
                f"Event {event_record.event_id}: concurrent write on "
                f"{context.root_id}, retrying via update path"
            )
            return _apply_once(context, event_record, amount, item_fetcher)

    except SQLAlchemyError as e:
        db.session.rollback()
        raise ProcessingError(
            f"Failed to persist event {event_record.event_id}: {e}"
        ) from e
    except ProcessingError:
        db.session.rollback()
        raise


def _apply_once(context, event_record, amount, item_fetcher):
    purchase = find_purchase(context.user_id, context.root_id, lock=True)
    if purchase is not None:
        return _update_purchase(purchase, context, event_record)
    return _create_purchase(context, event_record, amount, item_fetcher)


def _update_purchase(purchase, context, event_record):
    external_id = purchase.external_id
    previous_status = purchase.status

    already_applied = PurchaseEvent.query.filter_by(
        purchase_id=purchase.id, event_id=event_record.event_id
    ).first()
    if already_applied:
        db.session.rollback()  # release the row lock
        logger.info(
            f"Event {event_record.event_id} already applied to purchase {external_id}, skipping"
        )
        return ApplyResult(
            outcome="duplicate",
            external_id=external_id,
            status=previous_status,
            previous_status=previous_status,
        )

    purchase.status = event_record.status
    db.session.add(_new_event(event_record, purchase_id=purchase.id))
    _merge_related_ids(purchase, context.related_ids)
    db.session.commit()

    logger.info(
        f"Applied {event_record.event_type} ({event_record.event_id}) to purchase "
        f"{external_id}: {previous_status} -> {event_record.status}"
    )
    return ApplyResult(
        outcome="applied",
        external_id=external_id,
        status=event_record.status,
        previous_status=previous_status,
    )


def _create_purchase(context, event_record, amount, item_fetcher):
    amount_total, currency = amount

    items = []
    if context.kind is EventKind.CHECKOUT_SESSION and item_fetcher is not None:
        items = item_fetcher(context.root_id)
        if not amount_total:
            amount_total = sum(
                (item["unit_amount"] or 0) * item["quantity"] for item in items
            )

    purchase = Purchase(
        user_id=context.user_id,
        external_id=context.root_id,
        kind=context.kind.value,
        status=event_record.status,
        amount_total=amount_total,
        currency=currency,
    )
    for position, item in enumerate(items):
        purchase.items.append(PurchaseItem(
            position=position,
            name=item["name"],
            quantity=item["quantity"],
            unit_amount=item["unit_amount"],
            price_id=item["price_id"],
        ))
    _merge_related_ids(purchase, context.related_ids)
    purchase.events.append(_new_event(event_record))

    db.session.add(purchase)
    db.session.commit()

    logger.info(
        f"Created {context.kind.value} purchase {context.root_id} for user "
        f"{context.user_id} from {event_record.event_type} ({event_record.event_id})"
    )
    return ApplyResult(
        outcome="created",
        external_id=context.root_id,
        status=event_record.status,
    )


def _new_event(event_record, purchase_id=None):
    return PurchaseEvent(
        purchase_id=purchase_id,
        event_id=event_record.event_id,
        event_type=event_record.event_type,
        status=event_record.status,
        stripe_created=event_record.stripe_created,
    )


def _merge_related_ids(purchase, related_ids):
    """Union the ids observed on one event into the purchase's index.

    Scalar ids (session, payment intent, invoice, subscription) are
    replaced when a different value is observed; charge and refund ids
    are only ever added.
    """
    existing = purchase.related_ids
    for id_type, value in related_ids.observed():
        if id_type in SCALAR_ID_TYPES:
            current = next((r for r in existing if r.id_type == id_type), None)
            if current is None:
                existing.append(PurchaseRelatedId(
                    user_id=purchase.user_id, id_type=id_type, value=value
                ))
            elif current.value != value:
                current.value = value
        elif not any(r.id_type == id_type and r.value == value for r in existing):
            existing.append(PurchaseRelatedId(
                user_id=purchase.user_id, id_type=id_type, value=value
            ))
