"""Sync trigger routes: spreadsheet edit webhook and manual runs."""

import hmac
import logging

from flask import Blueprint, request, jsonify, current_app

logger = logging.getLogger(__name__)

sync_bp = Blueprint('sync', __name__, url_prefix='/sync')


def get_service():
    """Get the sync service from app context."""
    return current_app.config['sync_service']


def _authorized() -> bool:
    secret = current_app.config.get('webhook_secret')
    if not secret:
        return True
    supplied = request.headers.get('X-Sync-Secret', '')
    return hmac.compare_digest(supplied.encode('utf-8'), secret.encode('utf-8'))


@sync_bp.route('/edit', methods=['POST'])
def edit_event():
    """
    Spreadsheet edit notification.

    Called by the sheet's on-edit script for single-cell edits and pasted
    ranges alike. The body is optional; ``range`` is only logged.
    """
    if not _authorized():
        logger.warning("Rejected edit event with a bad secret from %s", request.remote_addr)
        return jsonify({"error": "Invalid sync secret"}), 401

    data = request.get_json(silent=True) or {}
    state = get_service().notify_edit(data.get('range'))
    return jsonify({"accepted": True, "state": state.value}), 202


@sync_bp.route('/run', methods=['POST'])
def run_sync():
    """Request a sync run (coalesced with any run already in progress)."""
    if not _authorized():
        return jsonify({"error": "Invalid sync secret"}), 401

    state = get_service().request_run('manual')
    return jsonify({"accepted": True, "state": state.value}), 202


@sync_bp.route('/status', methods=['GET'])
def sync_status():
    """Scheduler state and the last run's report."""
    return jsonify(get_service().status()), 200
