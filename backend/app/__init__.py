"""Flask application factory."""

import json
import os
from flask import Flask
from flask_cors import CORS

from app.session import AccessSessionRegistry

DEFAULT_ACCESS_CONFIG = {
    "discoveryEnabled": False,
    "knownUserProjects": {},
    "fallbackProjects": None,
    "jqlProbeProjects": None,
    "discoveryCacheSeconds": 300
}


def default_config_path():
    return os.path.join(
        os.path.dirname(__file__), "..", "config", "access-config.json"
    )


def load_access_config(app, config_path=None):
    """Load discovery and allow-list settings from the access config file."""
    config_path = config_path or os.environ.get("ACCESS_CONFIG_PATH") or default_config_path()
    config = dict(DEFAULT_ACCESS_CONFIG)

    if os.path.exists(config_path):
        try:
            with open(config_path, "r") as f:
                loaded = json.load(f)
            if not isinstance(loaded, dict):
                raise ValueError("access config must be a JSON object")
            config.update(loaded)
            config["knownUserProjects"] = config["knownUserProjects"] or {}
            app.logger.info(
                f"Loaded access config: discoveryEnabled={config['discoveryEnabled']}, "
                f"{len(config['knownUserProjects'])} known users"
            )
        except (ValueError, TypeError, IOError) as e:
            app.logger.warning(f"Failed to load access config: {e}")
            config = dict(DEFAULT_ACCESS_CONFIG)
    else:
        app.logger.info("No access-config.json found, automatic discovery disabled")

    return config


def create_app(config_path=None):
    """Create and configure the Flask application."""
    app = Flask(__name__)

    # Enable CORS for frontend
    CORS(app, resources={
        r"/api/*": {
            "origins": ["http://localhost:5173", "http://127.0.0.1:5173"],
            "methods": ["GET", "POST", "DELETE", "OPTIONS"],
            "allow_headers": [
                "Content-Type",
                "X-Jira-Token", "X-Jira-Email", "X-Jira-Server"
            ]
        }
    })

    access_config = load_access_config(app, config_path)
    app.config["ACCESS_CONFIG"] = access_config
    app.extensions["access_sessions"] = AccessSessionRegistry(access_config)

    # Register blueprints
    from app.api import auth, access, projects, boards, issues, metrics, debug
    app.register_blueprint(auth.bp)
    app.register_blueprint(access.bp)
    app.register_blueprint(projects.bp)
    app.register_blueprint(boards.bp)
    app.register_blueprint(issues.bp)
    app.register_blueprint(metrics.bp)
    app.register_blueprint(debug.bp)

    # Health check endpoint
    @app.route("/health")
    def health():
        return {"status": "ok"}

    return app
