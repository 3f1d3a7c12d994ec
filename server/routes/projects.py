"""Project listing routes."""

import logging

from flask import Blueprint, request, jsonify, current_app

logger = logging.getLogger(__name__)

projects_bp = Blueprint('projects', __name__)


def get_service():
    """Get the sync service from app context."""
    return current_app.config['sync_service']


@projects_bp.route('/projects', methods=['GET'])
def list_projects():
    """
    All projects ordered by serial, with summary metrics.

    ``?refresh=1`` bypasses the cache TTL. A failed refresh still answers 200
    with the last snapshot and ``stale: true``; with nothing to serve it
    answers 503.
    """
    force_refresh = request.args.get('refresh', '').lower() in ('1', 'true', 'yes')
    view = get_service().projects_view(force_refresh=force_refresh)

    if view['error'] and view['fetched_at'] is None:
        logger.error("Projects unavailable: %s", view['error'])
        return jsonify(view), 503
    return jsonify(view), 200
