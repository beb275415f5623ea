"""Shared test fixtures for the purchase ledger test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- seed_data: two users ("u1" with an email, "u2" without)
- make_event: builds a Stripe-shaped event dict
- sign: builds a Stripe-Signature header for a payload
- post_event: signs and POSTs an event to /stripe/webhooks
"""

import hashlib
import hmac
import json
import time

import pytest

from app import create_app
from app.extensions import db as _db
from app.models.user import User


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def seed_data(app, db_session):
    """Seed two users. u1 has an email address, u2 does not."""
    with app.app_context():
        u1 = User(id="u1", email="buyer@example.com", name="Buyer One")
        u2 = User(id="u2", email=None, name="Buyer Two")
        _db.session.add_all([u1, u2])
        _db.session.commit()

        return {"user_id": "u1", "other_user_id": "u2"}


def build_event(event_id, event_type, obj, created=1760000000):
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": created,
        "data": {"object": obj},
    }


def sign_payload(payload, secret, timestamp=None):
    """Build a Stripe-Signature header the same way Stripe does."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


@pytest.fixture
def make_event():
    return build_event


@pytest.fixture
def sign():
    return sign_payload


@pytest.fixture
def post_event(app, client):
    """POST an event dict to the webhook endpoint with a valid signature."""

    def _post(event):
        payload = json.dumps(event)
        header = sign_payload(payload, app.config["STRIPE_WEBHOOK_SECRET"])
        return client.post(
            "/stripe/webhooks",
            data=payload,
            content_type="application/json",
            headers={"Stripe-Signature": header},
        )

    return _post
