import os

from flask import Flask, jsonify, send_from_directory
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def create_app():
    app = Flask(__name__)
    app.secret_key = os.getenv("SECRET_KEY", "dev")

    DB_USER = os.getenv("DB_USER", "societyhub")
    DB_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
    DB_HOST = os.getenv("DB_HOST", "db")
    DB_NAME = os.getenv("DB_NAME", "societyhub")
    DATABASE_URL = os.getenv(
        "DATABASE_URL",
        f"postgresql+psycopg2://{DB_USER}:{DB_PASSWORD}@{DB_HOST}/{DB_NAME}",
    )

    app.config["SQLALCHEMY_DATABASE_URI"] = DATABASE_URL
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

    app.config["UPLOAD_ROOT"] = os.getenv(
        "UPLOAD_ROOT", os.path.join(PROJECT_ROOT, "uploads")
    )
    app.config["PUBLIC_BASE_URL"] = os.getenv("PUBLIC_BASE_URL") or None
    app.config["CERT_REQUIRE_PAST_EVENT"] = _env_flag("CERT_REQUIRE_PAST_EVENT")
    app.config["CERT_PURGE_ALLOWED"] = (
        os.getenv("FLASK_ENV") != "production" or _env_flag("ALLOW_CERT_PURGE")
    )
    app.config["CERT_RENDER_TIMEOUT_SECONDS"] = float(
        os.getenv("CERT_RENDER_TIMEOUT_SECONDS", "30")
    )
    app.config["CERT_PDF_RENDERER"] = None

    app.logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())

    db.init_app(app)

    @app.get("/health")
    def health():  # pragma: no cover - simple healthcheck
        return "OK", 200

    @app.get("/uploads/certificates/<path:filename>")
    def certificate_file(filename: str):
        cert_dir = os.path.join(app.config["UPLOAD_ROOT"], "certificates")
        return send_from_directory(cert_dir, filename, mimetype="application/pdf")

    @app.errorhandler(404)
    def not_found(_error):
        return jsonify({"success": False, "message": "Not found"}), 404

    from .routes.certificates import bp as certificates_bp
    from .routes.cert_templates import bp as cert_templates_bp

    app.register_blueprint(certificates_bp)
    app.register_blueprint(cert_templates_bp)

    return app
