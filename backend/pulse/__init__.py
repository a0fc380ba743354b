"""Flask application factory."""

import json
import os
from flask import Flask, current_app
from flask_cors import CORS

from services.models import DEFAULT_WORKSPACE_ID, utcnow
from services.sqlite_store import SqliteEntityStore
from services.store import InMemoryEntityStore

__version__ = "1.0.0"

CONFIG_PATH = os.path.join(
    os.path.dirname(__file__), "..", "config", "pulse-config.json"
)

DEFAULT_CONFIG = {
    "storeBackend": "memory",
    "dataDir": "./.pulse-data",
    "allowedOrigins": ["http://localhost:3002", "http://127.0.0.1:3002"],
    "defaultWorkspaceId": DEFAULT_WORKSPACE_ID,
}

ENV_OVERRIDES = {
    "PULSE_STORE_BACKEND": "storeBackend",
    "PULSE_DATA_DIR": "dataDir",
}


def load_config(app, overrides=None):
    """Merge defaults, the optional JSON config file, env vars and overrides."""
    config = dict(DEFAULT_CONFIG)

    if os.path.exists(CONFIG_PATH):
        try:
            with open(CONFIG_PATH, "r") as f:
                file_config = json.load(f)
            if isinstance(file_config, dict):
                config.update(file_config)
                app.logger.info(f"Loaded config from {CONFIG_PATH}")
            else:
                app.logger.warning("Ignoring pulse-config.json: not a JSON object")
        except (json.JSONDecodeError, IOError) as e:
            app.logger.warning(f"Failed to load pulse config: {e}")
    else:
        app.logger.info("No pulse-config.json found, using defaults")

    for env_var, key in ENV_OVERRIDES.items():
        if os.environ.get(env_var):
            config[key] = os.environ[env_var]

    config.update(overrides or {})
    return config


def create_store(app, config):
    """Build the entity store named by the storeBackend setting."""
    backend = config["storeBackend"]
    if backend == "sqlite":
        store = SqliteEntityStore(config["dataDir"])
    elif backend == "memory":
        store = InMemoryEntityStore()
    else:
        raise ValueError(f"Unknown store backend: {backend}")

    app.logger.info(f"Using {store.name} entity store")
    return store


def get_store():
    """Entity store bound to the current application."""
    return current_app.extensions["pulse.store"]


def get_default_workspace_id():
    return current_app.config["PULSE"]["defaultWorkspaceId"]


def create_app(overrides=None, store=None):
    """Create and configure the Flask application.

    ``overrides`` replaces individual config keys; ``store`` injects a ready
    entity store instead of building one from config.
    """
    app = Flask(__name__)

    config = load_config(app, overrides)
    app.config["PULSE"] = config

    # Enable CORS for the web frontend
    CORS(app, resources={
        r"/api/*": {
            "origins": config["allowedOrigins"],
            "methods": ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type"]
        }
    })

    app.extensions["pulse.store"] = store or create_store(app, config)

    # Register blueprints
    from pulse.api import workspaces, issues, cycles, metrics, search
    app.register_blueprint(workspaces.bp)
    app.register_blueprint(issues.bp)
    app.register_blueprint(cycles.bp)
    app.register_blueprint(metrics.bp)
    app.register_blueprint(search.bp)

    # Health check endpoint
    @app.route("/health")
    @app.route("/api/health")
    def health():
        return {
            "status": "ok",
            "timestamp": utcnow().isoformat(),
            "version": __version__,
            "store": get_store().name
        }

    return app
