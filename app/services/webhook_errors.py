"""Exceptions raised while receiving and applying Stripe webhooks.

Each carries the HTTP status the webhook endpoint answers with. 4xx
errors are terminal for a delivery; 5xx tells Stripe to retry, which is
safe because applying an event is idempotent per event id.
"""


class WebhookError(Exception):
    """Base class for webhook failures."""

    status_code = 400


class SignatureError(WebhookError):
    """Missing or invalid Stripe-Signature header."""


class PayloadError(WebhookError):
    """Body could not be read, is not JSON, or is not an event object."""


class ProcessingError(WebhookError):
    """Persistence or downstream failure after the event was parsed."""

    status_code = 500


class DownstreamFetchError(ProcessingError):
    """A Stripe API call made while applying the event failed."""
