"""Administrative API for backfills and entity mappings of a tenant."""

import hmac
from functools import wraps

from flask import Blueprint, current_app, jsonify, request

from notion_sync.services.account_service import AccountService
from notion_sync.services.entity_sync.coordinator import get_coordinator
from notion_sync.services.entity_sync.errors import ConfigurationError
from notion_sync.services.sync_service import SyncService

sync_bp = Blueprint("sync", __name__, url_prefix="/api/sync")


def require_api_key(view):
    """Reject requests whose X-API-Key header does not match the sync_api_key setting."""

    @wraps(view)
    def wrapper(*args, **kwargs):
        expected = SyncService.get_api_key()
        provided = request.headers.get("X-API-Key", "")
        if not expected:
            current_app.logger.warning("Sync API called but no API key is configured")
            return jsonify({"error": "API key not configured"}), 503
        if not hmac.compare_digest(provided.encode(), expected.encode()):
            return jsonify({"error": "Invalid API key"}), 401
        return view(*args, **kwargs)

    return wrapper


def _mapping_to_dict(mapping):
    return {
        "key": mapping.key,
        "entity_type": mapping.entity_type,
        "source_id": mapping.source_id,
        "destination_id": mapping.destination_id,
        "created_at": mapping.created_at.isoformat(),
        "updated_at": mapping.updated_at.isoformat(),
    }


@sync_bp.route("/<tenant_id>/backfill", methods=["POST"])
@require_api_key
def start_backfill(tenant_id):
    """Start a backfill, or return the one already running.

    Body (optional): {"restart": true} discards existing progress.
    """
    driver = SyncService.get_backfill_driver(tenant_id)
    if driver is None:
        return jsonify({"error": "Tenant is not connected"}), 404

    body = request.get_json(silent=True) or {}
    try:
        progress = driver.start(body.get("entity_types"), restart=bool(body.get("restart")))
    except ConfigurationError as exc:
        return jsonify({"error": str(exc)}), 400

    current_app.logger.info(f"Backfill requested for {tenant_id}")
    return jsonify(progress.to_dict()), 202


@sync_bp.route("/<tenant_id>/backfill", methods=["GET"])
@require_api_key
def backfill_status(tenant_id):
    driver = SyncService.get_backfill_driver(tenant_id)
    if driver is None:
        return jsonify({"error": "Tenant is not connected"}), 404

    progress = driver.status()
    if progress is None:
        return jsonify({"status": None}), 200
    return jsonify(progress.to_dict()), 200


@sync_bp.route("/<tenant_id>/backfill/step", methods=["POST"])
@require_api_key
def backfill_step(tenant_id):
    """Run one backfill step synchronously."""
    driver = SyncService.get_backfill_driver(tenant_id)
    if driver is None:
        return jsonify({"error": "Tenant is not connected"}), 404

    try:
        more = driver.step()
    except ConfigurationError as exc:
        return jsonify({"error": str(exc)}), 409
    except Exception as exc:
        current_app.logger.exception(f"Backfill step failed for {tenant_id}: {exc}")
        return jsonify({"error": str(exc)}), 500

    response = driver.status().to_dict()
    response["has_more"] = more
    return jsonify(response), 200


@sync_bp.route("/<tenant_id>/mappings", methods=["GET"])
@require_api_key
def list_mappings(tenant_id):
    """List mappings, optionally filtered by key prefix (e.g. ?prefix=entity:customer:)."""
    prefix = request.args.get("prefix", "")
    mappings = get_coordinator(tenant_id).list_mappings(prefix)
    return jsonify({"mappings": [_mapping_to_dict(m) for m in mappings]}), 200


@sync_bp.route("/<tenant_id>/mappings/reset", methods=["POST"])
@require_api_key
def reset_mappings(tenant_id):
    deleted = get_coordinator(tenant_id).reset()
    current_app.logger.warning(f"Mappings reset for {tenant_id}: {deleted} deleted")
    return jsonify({"deleted": deleted}), 200


@sync_bp.route("/<tenant_id>/status", methods=["GET"])
@require_api_key
def tenant_status(tenant_id):
    status = AccountService.get_status(tenant_id)
    if status is None:
        return jsonify({"error": "Unknown tenant"}), 404
    return jsonify(status), 200


@sync_bp.route("/<tenant_id>/account", methods=["PUT"])
@require_api_key
def save_account(tenant_id):
    """Connect a tenant to Notion.

    Body: {"notion_token": "...", "databases": {"customer": "<database id>", ...}}
    """
    body = request.get_json(silent=True) or {}
    try:
        AccountService.save_account(
            tenant_id,
            notion_token=body.get("notion_token"),
            databases=body.get("databases"),
        )
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    current_app.logger.info(f"Notion connection saved for {tenant_id}")
    return jsonify(AccountService.get_status(tenant_id)), 200
