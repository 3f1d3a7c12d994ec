"""Route blueprints package."""

from server.routes.health import health_bp
from server.routes.projects import projects_bp
from server.routes.sync import sync_bp

__all__ = ['health_bp', 'projects_bp', 'sync_bp']
