from __future__ import annotations

import logging

from flask import Flask
from flask_cors import CORS

from splitledger.api.routes import api_bp
from splitledger.config import Config
from splitledger.db.repository import parse_isolation_level


def create_app() -> Flask:
    app = Flask(__name__)
    app.config.from_object(Config)
    # Fail at startup rather than on every request.
    parse_isolation_level(app.config["LEDGER_ISOLATION_LEVEL"])

    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    CORS(app)  # ok for MVP; tighten later

    app.register_blueprint(api_bp)
    return app
