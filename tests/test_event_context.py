"""Tests for the pure event helpers (no database, no Stripe).

Covers:
- Status table fidelity for every mapped event type
- Object status / payment_status taking precedence over the table
- Unmapped event types falling back to the type string
- Kind resolution from event type prefixes
- Context extraction per kind (root id + related ids)
- Missing metadata.userId -> not attributable
- Amount/currency capture per kind
"""

import pytest

from app.services.event_context import (
    STATUS_BY_EVENT_TYPE,
    EventKind,
    build_event_record,
    derive_status,
    extract_amount,
    extract_context,
)


def build_event(event_id, event_type, obj, created=1760000000):
    return {
        "id": event_id,
        "type": event_type,
        "created": created,
        "data": {"object": obj},
    }


EXPECTED_STATUSES = [
    ("checkout.session.completed", "paid"),
    ("checkout.session.async_payment_succeeded", "paid"),
    ("checkout.session.async_payment_failed", "failed"),
    ("checkout.session.expired", "expired"),
    ("payment_intent.succeeded", "succeeded"),
    ("payment_intent.payment_failed", "failed"),
    ("payment_intent.canceled", "canceled"),
    ("payment_intent.processing", "processing"),
    ("invoice.paid", "paid"),
    ("invoice.payment_failed", "failed"),
    ("invoice.finalized", "finalized"),
    ("invoice.voided", "voided"),
    ("invoice.marked_uncollectible", "uncollectible"),
    ("charge.succeeded", "succeeded"),
    ("charge.failed", "failed"),
    ("charge.refunded", "refunded"),
    ("refund.succeeded", "refunded"),
    ("refund.updated", "refund_updated"),
    ("customer.subscription.created", "created"),
    ("customer.subscription.updated", "updated"),
    ("customer.subscription.deleted", "canceled"),
    ("customer.subscription.pending_update_applied", "updated"),
    ("customer.subscription.pending_update_expired", "expired"),
]


class TestDeriveStatus:
    """Tests for derive_status."""

    @pytest.mark.parametrize("event_type,expected", EXPECTED_STATUSES)
    def test_table_status_without_own_status(self, event_type, expected):
        assert derive_status({"id": "obj_1"}, event_type) == expected

    def test_table_covers_exactly_the_known_types(self):
        assert STATUS_BY_EVENT_TYPE == dict(EXPECTED_STATUSES)

    def test_own_status_wins(self):
        obj = {"status": "requires_capture"}
        assert derive_status(obj, "payment_intent.succeeded") == "requires_capture"

    def test_payment_status_used_when_no_status(self):
        obj = {"payment_status": "unpaid"}
        assert derive_status(obj, "checkout.session.completed") == "unpaid"

    def test_status_preferred_over_payment_status(self):
        obj = {"status": "complete", "payment_status": "paid"}
        assert derive_status(obj, "checkout.session.completed") == "complete"

    def test_empty_or_non_string_status_falls_back_to_table(self):
        assert derive_status({"status": ""}, "charge.failed") == "failed"
        assert derive_status({"status": None}, "charge.failed") == "failed"
        assert derive_status({"status": 3}, "charge.failed") == "failed"

    def test_unmapped_type_falls_back_to_type(self):
        assert derive_status({}, "payout.paid") == "payout.paid"


class TestEventKind:
    """Tests for event type -> kind resolution."""

    @pytest.mark.parametrize("event_type,kind", [
        ("checkout.session.completed", EventKind.CHECKOUT_SESSION),
        ("payment_intent.succeeded", EventKind.PAYMENT_INTENT),
        ("invoice.paid", EventKind.INVOICE),
        ("customer.subscription.updated", EventKind.SUBSCRIPTION),
        ("charge.refunded", EventKind.CHARGE),
        ("refund.updated", EventKind.REFUND),
        ("customer.created", EventKind.UNKNOWN),
        ("payout.paid", EventKind.UNKNOWN),
        ("", EventKind.UNKNOWN),
        (None, EventKind.UNKNOWN),
    ])
    def test_from_event_type(self, event_type, kind):
        assert EventKind.from_event_type(event_type) is kind


class TestExtractContext:
    """Tests for extract_context."""

    def test_checkout_session(self):
        event = build_event("evt_1", "checkout.session.completed", {
            "id": "cs_1",
            "payment_intent": "pi_1",
            "subscription": "sub_1",
            "metadata": {"userId": "u1"},
        })
        ctx = extract_context(event)

        assert ctx.user_id == "u1"
        assert ctx.root_id == "cs_1"
        assert ctx.kind is EventKind.CHECKOUT_SESSION
        assert ctx.related_ids.observed() == [
            ("session_id", "cs_1"),
            ("payment_intent_id", "pi_1"),
            ("subscription_id", "sub_1"),
        ]
        assert ctx.is_attributable

    def test_payment_intent_captures_first_charge(self):
        event = build_event("evt_2", "payment_intent.succeeded", {
            "id": "pi_1",
            "charges": {"data": [{"id": "ch_1"}, {"id": "ch_2"}]},
            "metadata": {"userId": "u1"},
        })
        ctx = extract_context(event)

        assert ctx.root_id == "pi_1"
        assert ctx.related_ids.payment_intent_id == "pi_1"
        assert ctx.related_ids.charge_id == "ch_1"

    def test_invoice(self):
        event = build_event("evt_3", "invoice.paid", {
            "id": "in_1",
            "subscription": "sub_1",
            "payment_intent": "pi_1",
            "metadata": {"userId": "u1"},
        })
        ctx = extract_context(event)

        assert ctx.kind is EventKind.INVOICE
        assert ctx.root_id == "in_1"
        assert ctx.related_ids.invoice_id == "in_1"
        assert ctx.related_ids.subscription_id == "sub_1"
        assert ctx.related_ids.payment_intent_id == "pi_1"

    def test_subscription(self):
        event = build_event("evt_4", "customer.subscription.created", {
            "id": "sub_1",
            "metadata": {"userId": "u1"},
        })
        ctx = extract_context(event)

        assert ctx.kind is EventKind.SUBSCRIPTION
        assert ctx.root_id == "sub_1"
        assert ctx.related_ids.observed() == [("subscription_id", "sub_1")]

    def test_charge_roots_on_payment_intent(self):
        event = build_event("evt_5", "charge.succeeded", {
            "id": "ch_1",
            "payment_intent": "pi_9",
            "metadata": {"userId": "u2"},
        })
        ctx = extract_context(event)

        assert ctx.kind is EventKind.CHARGE
        assert ctx.root_id == "pi_9"
        assert ctx.related_ids.charge_id == "ch_1"
        assert ctx.related_ids.payment_intent_id == "pi_9"

    def test_charge_without_payment_intent_roots_on_itself(self):
        event = build_event("evt_6", "charge.succeeded", {
            "id": "ch_1",
            "payment_intent": None,
            "metadata": {"userId": "u2"},
        })
        ctx = extract_context(event)

        assert ctx.root_id == "ch_1"
        assert ctx.related_ids.payment_intent_id is None

    def test_refund(self):
        event = build_event("evt_7", "refund.succeeded", {
            "id": "re_1",
            "charge": "ch_1",
            "payment_intent": "pi_1",
            "metadata": {"userId": "u1"},
        })
        ctx = extract_context(event)

        assert ctx.kind is EventKind.REFUND
        assert ctx.root_id == "pi_1"
        assert ctx.related_ids.refund_id == "re_1"
        assert ctx.related_ids.charge_id == "ch_1"
        assert ctx.related_ids.payment_intent_id == "pi_1"

    def test_expanded_objects_are_not_ids(self):
        event = build_event("evt_8", "checkout.session.completed", {
            "id": "cs_1",
            "payment_intent": {"id": "pi_1", "object": "payment_intent"},
            "metadata": {"userId": "u1"},
        })
        ctx = extract_context(event)

        assert ctx.related_ids.payment_intent_id is None

    def test_missing_user_id_is_not_attributable(self):
        event = build_event("evt_9", "payment_intent.succeeded", {"id": "pi_1"})
        ctx = extract_context(event)

        assert ctx.user_id is None
        assert ctx.root_id == "pi_1"
        assert not ctx.is_attributable

    def test_non_string_user_id_ignored(self):
        event = build_event("evt_10", "payment_intent.succeeded", {
            "id": "pi_1",
            "metadata": {"userId": 42},
        })
        assert extract_context(event).user_id is None

    def test_unknown_kind_has_no_root(self):
        event = build_event("evt_11", "customer.created", {
            "id": "cus_1",
            "metadata": {"userId": "u1"},
        })
        ctx = extract_context(event)

        assert ctx.kind is EventKind.UNKNOWN
        assert ctx.root_id is None
        assert not ctx.is_attributable


class TestExtractAmount:
    """Tests for extract_amount."""

    def test_checkout_session_total(self):
        obj = {"amount_total": 2500, "currency": "EUR"}
        assert extract_amount(obj, EventKind.CHECKOUT_SESSION) == (2500, "eur")

    def test_checkout_session_without_total(self):
        assert extract_amount({}, EventKind.CHECKOUT_SESSION) == (0, "usd")

    def test_invoice_prefers_amount_paid(self):
        obj = {"amount_paid": 0, "amount_due": 900, "currency": "usd"}
        assert extract_amount(obj, EventKind.INVOICE) == (0, "usd")

    def test_invoice_falls_back_to_amount_due(self):
        obj = {"amount_due": 900}
        assert extract_amount(obj, EventKind.INVOICE) == (900, "usd")

    @pytest.mark.parametrize("kind", [
        EventKind.PAYMENT_INTENT, EventKind.CHARGE, EventKind.REFUND,
    ])
    def test_amount_field_kinds(self, kind):
        assert extract_amount({"amount": 1234, "currency": "gbp"}, kind) == (1234, "gbp")

    def test_subscription_has_no_total(self):
        obj = {"amount": 5000, "currency": "usd"}
        assert extract_amount(obj, EventKind.SUBSCRIPTION) == (0, "usd")


def test_build_event_record():
    event = build_event("evt_1", "invoice.paid", {"id": "in_1"}, created=1700000000)
    record = build_event_record(event, "paid")

    assert record.event_id == "evt_1"
    assert record.event_type == "invoice.paid"
    assert record.status == "paid"
    assert record.stripe_created == 1700000000
