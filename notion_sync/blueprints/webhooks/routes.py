"""Webhook routes for Stripe events."""

import json

import stripe
from flask import Blueprint, current_app, jsonify, request

from notion_sync.services.sync_service import SyncService

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/webhooks")


@webhooks_bp.route("/stripe", methods=["POST"])
def stripe_webhook():
    """Handle incoming Stripe webhook events.

    Validates the signature, then syncs the record the event refers to into
    the Notion workspace of the connected account that emitted it.

    Returns:
        JSON response with status. Processing failures answer 500 so Stripe
        redelivers the event.
    """
    webhook_secret = SyncService.get_webhook_secret()
    if not webhook_secret:
        current_app.logger.error("Stripe webhook received but no webhook secret configured")
        return jsonify({"error": "Webhook secret not configured"}), 503

    payload = request.get_data()
    sig_header = request.headers.get("Stripe-Signature")

    if not sig_header:
        current_app.logger.warning("Stripe webhook missing signature header")
        return jsonify({"error": "Missing stripe-signature header"}), 400

    # Verify the webhook signature, then work on the plain JSON payload
    try:
        stripe.Webhook.construct_event(payload, sig_header, webhook_secret)
        event = json.loads(payload)
    except stripe.SignatureVerificationError as sig_error:
        # Invalid signature - return 400 so Stripe doesn't retry
        current_app.logger.error(f"Stripe webhook signature verification failed: {sig_error}")
        return jsonify({"error": "Invalid signature"}), 400
    except ValueError as value_error:
        current_app.logger.error(f"Stripe webhook invalid payload: {value_error}")
        return jsonify({"error": "Invalid payload"}), 400

    tenant_id = event.get("account") or SyncService.get_default_tenant()
    if not tenant_id:
        current_app.logger.warning(f"Stripe event {event['id']} has no account, ignoring")
        return jsonify({"received": True, "synced": False}), 200

    try:
        engine = SyncService.get_engine(tenant_id)
        if engine is None:
            current_app.logger.info(f"Stripe event {event['id']} ignored, {tenant_id} is not connected")
            return jsonify({"received": True, "synced": False}), 200

        result = engine.process_event(event)

    except Exception as exc:
        current_app.logger.exception(f"Error processing Stripe event {event['id']}: {exc}")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info(
        f"Stripe webhook processed successfully: {event['type']} (id: {event['id']})"
    )

    if result is None:
        return jsonify({"received": True, "synced": False}), 200

    return jsonify({
        "received": True,
        "synced": result.destination_id is not None,
        "destination_id": result.destination_id,
        "entities_processed": result.entities_processed,
        "sub_entity_failures": result.sub_entity_failures,
    }), 200
