"""
app.py — Flask entry point for the garden planner.

Loads configuration, builds the Garden (persistence tiers, session, catalog,
patch registry, placement engine), registers the JSON blueprints and keeps
the Garden in app.extensions['garden'].

Run: python app.py → localhost:5000
"""

import os
import logging
from flask import Flask, jsonify
from flask_wtf.csrf import CSRFProtect

from garden import Garden
from routes.garden import garden_bp
from routes.patches import patches_bp
from routes.plants import plants_bp
from routes.export import export_bp
from routes.settings import settings_bp


def create_app(test_config=None):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(os.getenv('APP_CONFIG', 'config.BaseConfig'))

    if test_config:
        app.config.update(test_config)

    logging.basicConfig(format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    logging.getLogger().setLevel(app.config.get('LOG_LEVEL', 'INFO'))
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    CSRFProtect(app)

    os.makedirs(app.config['GARDEN_BACKUP_DIR'], exist_ok=True)

    garden = Garden.from_config(app.config).load()
    garden.engine.add_error_listener(
        lambda error: app.logger.warning("Garden change not saved: %s", error)
    )
    app.extensions['garden'] = garden

    # Register blueprints
    app.register_blueprint(garden_bp)
    app.register_blueprint(patches_bp)
    app.register_blueprint(plants_bp)
    app.register_blueprint(export_bp)
    app.register_blueprint(settings_bp)

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'success': False, 'error': 'Not found'}), 404

    return app


if __name__ == '__main__':
    app = create_app()
    # Debug mode: enabled by default for development (auto-reload on file changes)
    # Set FLASK_DEBUG=0 to disable for production
    debug = os.environ.get('FLASK_DEBUG', '1') != '0'
    app.run(host='localhost', port=5000, debug=debug)
