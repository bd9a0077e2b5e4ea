# app.py

import logging
import os

from dotenv import load_dotenv
from flask import Flask, Response, abort, jsonify
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import event

# .env must be loaded before config classes read os.environ
load_dotenv()

from config import CONFIG_BY_ENV, DevelopmentConfig  # noqa: E402
from config.monitoring import monitoring_settings  # noqa: E402
from config.validation import validate_and_exit  # noqa: E402
from personnel_app.importer import init_importer  # noqa: E402
from personnel_app.models import db  # noqa: E402
from personnel_app.utils.logging_config import setup_logging  # noqa: E402

logger = logging.getLogger(__name__)

flask_env = os.environ.get("FLASK_ENV", "development")
if flask_env == "production":
    validate_and_exit(flask_env)

app = Flask(__name__)
app.config.from_object(CONFIG_BY_ENV.get(flask_env, DevelopmentConfig))
app.config.from_mapping(monitoring_settings(flask_env))

db.init_app(app)
setup_logging(app)


def _sqlite_connect_hook(*, enable_foreign_keys: bool):
    def on_connect(dbapi_connection, connection_record):  # pragma: no cover - instrumentation
        # SQLAlchemy issues BEGIN itself so nested SAVEPOINTs behave
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        try:
            for pragma in ("journal_mode=WAL", "synchronous=NORMAL", "busy_timeout=5000"):
                cursor.execute(f"PRAGMA {pragma}")
            if enable_foreign_keys:
                cursor.execute("PRAGMA foreign_keys=ON")
        except Exception as exc:
            logger.warning("Could not apply SQLite pragmas: %s", exc)
        finally:
            cursor.close()

    return on_connect


def _sqlite_begin(conn):  # pragma: no cover - instrumentation
    conn.exec_driver_sql("BEGIN")


with app.app_context():
    engine = db.engine
    if engine.url.drivername.startswith("sqlite") and not getattr(engine, "_personnel_hooks", False):
        event.listen(engine, "connect", _sqlite_connect_hook(enable_foreign_keys=not app.config.get("TESTING")))
        event.listen(engine, "begin", _sqlite_begin)
        engine._personnel_hooks = True  # type: ignore[attr-defined]
    # Tests build their own schema per test
    if not app.config.get("TESTING"):
        db.create_all()

init_importer(app)


@app.get("/health")
def health():
    return jsonify({"status": "ok", "app": app.config.get("APP_NAME")}), 200


def metrics():
    if not app.config.get("MONITORING_ENABLED"):
        abort(404)
    return Response(generate_latest(), mimetype=CONTENT_TYPE_LATEST)


app.add_url_rule(app.config["METRICS_ENDPOINT"], "metrics", metrics)


@app.errorhandler(404)
def not_found_error(error):
    return jsonify({"error": "Not found."}), 404


@app.errorhandler(413)
def payload_too_large(error):
    limit = app.config.get("IMPORTER_MAX_UPLOAD_MB")
    return jsonify({"error": f"Upload exceeds the {limit} MB limit."}), 413


@app.errorhandler(500)
def internal_error(error):
    db.session.rollback()
    return jsonify({"error": "Internal server error."}), 500


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", 5000)))
