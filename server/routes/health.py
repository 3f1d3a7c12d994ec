"""Health check routes."""

from flask import Blueprint, jsonify, current_app

health_bp = Blueprint('health', __name__)


def get_service():
    """Get the sync service from app context."""
    return current_app.config['sync_service']


@health_bp.route('/', methods=['GET'])
def root():
    """Root endpoint - API information."""
    return jsonify({
        "name": "Project Dashboard Sync API",
        "version": "1.0.0",
        "status": "running",
        "endpoints": {
            "health": "GET /health",
            "projects": "GET /projects",
            "sync_edit": "POST /sync/edit",
            "sync_run": "POST /sync/run",
            "sync_status": "GET /sync/status"
        }
    }), 200


@health_bp.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    service = get_service()
    return jsonify({
        "status": "healthy",
        "scheduler": service.scheduler.state.value
    }), 200
