"""Webhook service — PayArc event verification and reconciliation.

Responsible for:
- Parsing the raw webhook body
- HMAC-SHA256 signature verification (x-payarc-signature) before any
  field of the payload is trusted or any state is touched
- Dispatching each event type to a handler through a total table

PayArc delivers at least once and in no particular order, and payloads
carry no event ID. Every transition is therefore latest-wins and
idempotent: re-applying an event leaves state unchanged.
"""

import enum
import hashlib
import hmac
import json
import logging

from flask import current_app

from payarc_mid.extensions import db
from payarc_mid.models.subscription import Subscription
from payarc_mid.services.linkage_service import SUBSCRIPTION_KEY, find_entity_id
from payarc_mid.services.order_service import (
    add_note,
    get_last_order,
    process_payment_failure,
    process_payment_success,
    update_subscription_status,
)

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-payarc-signature"


class WebhookEventType(enum.Enum):
    INVOICE_PAID = "invoice.paid"
    SUBSCRIPTION_CANCELLED = "subscription.cancelled"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
    UNKNOWN = None

    @classmethod
    def parse(cls, value):
        """Map an event name to a member; anything unrecognised is UNKNOWN."""
        for member in cls:
            if member.value is not None and member.value == value:
                return member
        return cls.UNKNOWN


class WebhookError(Exception):
    """Webhook rejected before processing."""

    def __init__(self, code, message, status):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status

    def to_dict(self):
        return {"code": self.code, "message": self.message}


def parse_payload(raw_body):
    """Decode the webhook body.

    Returns the payload dict.
    Raises WebhookError(invalid_payload, 400) if it is not a JSON object.
    """
    try:
        payload = json.loads(raw_body)
    except (TypeError, ValueError):
        payload = None

    if not isinstance(payload, dict) or not payload:
        raise WebhookError("invalid_payload", "Invalid webhook payload", 400)
    return payload


def compute_signature(raw_body, secret):
    """Hex HMAC-SHA256 of the raw body."""
    if isinstance(raw_body, str):
        raw_body = raw_body.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify_signature(raw_body, signature, secret):
    """Check the signature header against the body, in constant time.

    Raises WebhookError(invalid_signature, 401) on a missing secret,
    missing header or mismatch.
    """
    if not secret or not signature:
        raise WebhookError("invalid_signature", "Invalid webhook signature", 401)

    # Bytes on both sides: compare_digest rejects non-ASCII str
    expected = compute_signature(raw_body, secret).encode("ascii")
    received = signature.strip().lower().encode("utf-8", "surrogateescape")
    if not hmac.compare_digest(expected, received):
        raise WebhookError("invalid_signature", "Invalid webhook signature", 401)


def find_subscription(payarc_subscription_id):
    """Local Subscription linked to a PayArc subscription ID, or None."""
    subscription_id = find_entity_id(
        "subscription", SUBSCRIPTION_KEY, payarc_subscription_id
    )
    if not subscription_id:
        return None
    return db.session.get(Subscription, subscription_id)


# ──────────────────────────────────────────────
# Event handlers
# ──────────────────────────────────────────────

def _handle_invoice_paid(subscription, data):
    """invoice.paid: subscription active, payment success on the latest order."""
    update_subscription_status(subscription, "active", "PayArc invoice paid.")
    process_payment_success(get_last_order(subscription))


def _handle_subscription_cancelled(subscription, data):
    """subscription.cancelled: cancelled at PayArc, mirror it locally."""
    update_subscription_status(
        subscription, "cancelled", "PayArc subscription cancelled."
    )


def _handle_payment_failed(subscription, data):
    """invoice.payment_failed: on hold, payment failure on the latest order."""
    changed = update_subscription_status(
        subscription, "on-hold", "PayArc payment failed."
    )
    order = get_last_order(subscription)
    reason = data.get("message")
    process_payment_failure(order, reason if isinstance(reason, str) else None)
    if changed:
        # Buyer-visible notice on the order they see in their account
        add_note(order or subscription, "Subscription payment failed.", is_customer_note=True)


def _ignore(subscription, data):
    """Forward compatibility: unknown events are accepted and ignored."""


EVENT_HANDLERS = {
    WebhookEventType.INVOICE_PAID: _handle_invoice_paid,
    WebhookEventType.SUBSCRIPTION_CANCELLED: _handle_subscription_cancelled,
    WebhookEventType.INVOICE_PAYMENT_FAILED: _handle_payment_failed,
    WebhookEventType.UNKNOWN: _ignore,
}


def handle_webhook_event(payload):
    """Apply a verified webhook payload.

    Returns a short status string: "processed", "ignored" or
    "unknown_subscription". Events for subscriptions this installation
    does not track are no-ops, not errors.
    """
    event_name = payload.get("event")
    event_type = WebhookEventType.parse(event_name)
    data = payload.get("data")
    if not isinstance(data, dict):
        data = {}

    if current_app.config.get("PAYARC_DEBUG"):
        logger.info(f"PayArc webhook received: {event_name} | Data: {json.dumps(data)}")

    if event_type is WebhookEventType.UNKNOWN:
        logger.info(f"Ignoring PayArc webhook event {event_name!r}")
        return "ignored"

    subscription = find_subscription(data.get("subscription_id"))
    if subscription is None:
        logger.info(
            f"{event_name}: no local subscription for "
            f"{data.get('subscription_id')!r}, skipping"
        )
        return "unknown_subscription"

    try:
        EVENT_HANDLERS[event_type](subscription, data)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    return "processed"


def process_webhook(raw_body, signature):
    """Parse, verify and apply one webhook delivery.

    Returns the event status string.
    Raises WebhookError for the two rejection cases.
    """
    payload = parse_payload(raw_body)
    secret = current_app.config.get("PAYARC_WEBHOOK_SECRET") or ""
    try:
        verify_signature(raw_body, signature, secret)
    except WebhookError:
        logger.warning("PayArc webhook rejected: invalid signature")
        raise
    return handle_webhook_event(payload)
