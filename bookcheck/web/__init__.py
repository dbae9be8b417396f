"""Flask application factory for the bookcheck scan API."""

from flask import Flask, jsonify

from bookcheck.config import ScanConfig


def create_app(base_config: ScanConfig | None = None) -> Flask:
    app = Flask(__name__)
    app.config["SCAN_CONFIG"] = base_config or ScanConfig()

    from bookcheck.web.routes import bp
    app.register_blueprint(bp)

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"error": "Not found"}), 404

    return app
