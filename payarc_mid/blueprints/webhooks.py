"""Webhooks blueprint — /payarc-mid/v1/webhook

Receives PayArc webhook events. CSRF-exempt, no session auth:
authenticity comes solely from the x-payarc-signature HMAC over the
raw body, so the body must be read untouched.
"""

import logging

from flask import Blueprint, request, jsonify

from payarc_mid.services.webhook_service import (
    SIGNATURE_HEADER,
    WebhookError,
    process_webhook,
)

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/payarc-mid/v1")


@webhooks_bp.route("/webhook", methods=["POST"])
def payarc_webhook():
    """Receive and process PayArc webhook events.

    1. Get raw body (required for signature verification)
    2. Parse it (400 invalid_payload)
    3. Verify signature with PAYARC_WEBHOOK_SECRET (401 invalid_signature)
    4. Apply the event; unknown events and subscriptions are no-ops
    5. Return 200 {"status": "success"}

    CSRF is exempted for this blueprint in create_app().
    """
    payload = request.get_data()
    signature = request.headers.get(SIGNATURE_HEADER)

    try:
        result = process_webhook(payload, signature)
    except WebhookError as e:
        return jsonify(e.to_dict()), e.status
    except Exception as e:
        # Unexpected failure: a 5xx lets PayArc redeliver
        logger.error(f"PayArc webhook processing failed: {e}", exc_info=True)
        return jsonify({"code": "processing_error", "message": "Webhook processing failed"}), 500

    logger.info(f"PayArc webhook handled: {result}")
    return jsonify({"status": "success"}), 200
