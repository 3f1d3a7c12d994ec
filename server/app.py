"""Flask application factory."""

import logging

from flask import Flask
from flask_cors import CORS

from core.config import settings
from frontend.dashboard.sync_service import DashboardSyncService


def create_app(config_override: dict = None, service: DashboardSyncService = None) -> Flask:
    """
    Create and configure the Flask application.

    Args:
        config_override: Optional configuration overrides
        service: Sync service to expose, built from settings if omitted

    Returns:
        Configured Flask application
    """
    app = Flask(__name__)
    app.config['webhook_secret'] = settings.webhook_secret

    # Apply configuration overrides
    if config_override:
        app.config.update(config_override)

    # Configure CORS
    CORS(app, origins=settings.cors_origins)

    # Store in app config for route access
    app.config['sync_service'] = service or DashboardSyncService()

    # Register blueprints
    from server.routes.health import health_bp
    from server.routes.projects import projects_bp
    from server.routes.sync import sync_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(projects_bp)
    app.register_blueprint(sync_bp)

    return app


def main():
    """Run the application."""
    logging.basicConfig(
        level=settings.log_level,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )
    logger = logging.getLogger(__name__)

    app = create_app()
    service = app.config['sync_service']

    logger.info("Starting Project Dashboard Sync API server")
    logger.info("Source: %s, store: %s, removal policy: %s",
                service.source.name, service.store.name, service.engine.removal_policy.value)
    logger.info("Endpoints: GET /projects, POST /sync/edit, POST /sync/run, GET /sync/status, GET /health")

    service.start(run_immediately=True)
    try:
        # The reloader would start a second scheduler
        app.run(host=settings.host, port=settings.port, debug=settings.debug, use_reloader=False)
    finally:
        service.stop(wait=False)


if __name__ == '__main__':
    main()
